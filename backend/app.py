from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit

import httpx
from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from .auth import current_user, current_user_async
from .config import LOG_LEVEL, SYNC_ON_CREATE
from .db import get_engine, init_db
from .storage import DuplicateFeedError, Storage, StorageError

from crawler.client import build_client
from crawler.opml import export_opml, import_opml, parse_opml
from crawler.parser import FeedParser
from crawler.sync import sync_all_user_feeds, sync_feed

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


def _enqueue_sync(feed_id: int) -> None:
	"""Hand the first sync of a new feed to Celery; the request never waits on it."""
	try:
		from tasks.sync_feed import sync_feed as sync_feed_task  # lazy import to avoid broker setup on import
		sync_feed_task.delay(feed_id)
	except Exception as e:  # broker down must not fail feed creation
		logger.warning("could not enqueue sync for feed %s: %s", feed_id, e)


def _is_valid_url(url: str) -> bool:
	try:
		parts = urlsplit(url)
	except ValueError:
		return False
	return parts.scheme in ("http", "https") and bool(parts.netloc)


def _flag(value: Any) -> Optional[bool]:
	if value is None:
		return None
	if isinstance(value, bool):
		return value
	return str(value).strip().lower() == "true"


def create_app(
	storage: Optional[Storage] = None,
	client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
) -> Flask:
	app = Flask(__name__)
	CORS(app)
	app.config.setdefault("SYNC_ON_CREATE", SYNC_ON_CREATE)
	if storage is None:
		storage = Storage()
		if get_engine().dialect.name == "sqlite":
			init_db()
	make_client = client_factory or build_client

	def unauthorized():
		return jsonify({"error": "Unauthorized"}), 401

	@app.errorhandler(DuplicateFeedError)
	def duplicate_feed(e):
		return jsonify({"error": "Feed already exists"}), 409

	@app.errorhandler(StorageError)
	def storage_failure(e):
		logger.error("storage failure: %s", e)
		return jsonify({"error": str(e)}), 500

	@app.route("/health", methods=["GET"])  # simple health check
	def health():
		return jsonify({"status": "ok"})

	@app.route("/users", methods=["POST"])  # create user, returns its API token
	def create_user():
		payload = request.get_json(silent=True) or {}
		email = (payload.get("email") or "").strip()
		if not email:
			return jsonify({"error": "email is required"}), 400
		return jsonify({"user": storage.create_user(email)}), 201

	@app.route("/feeds", methods=["GET"])
	def list_feeds():
		user = current_user(storage)
		if not user:
			return unauthorized()
		return jsonify({"feeds": storage.list_feeds(user["id"])})

	@app.route("/feeds", methods=["POST"])  # locate + parse, store, then sync in the background
	async def create_feed():
		user = await current_user_async(storage)
		if not user:
			return unauthorized()
		payload = request.get_json(silent=True) or {}
		url = (payload.get("url") or "").strip()
		if not url:
			return jsonify({"error": "URL is required"}), 400
		if not _is_valid_url(url):
			return jsonify({"error": "Invalid URL"}), 400

		async with make_client() as client:
			parsed = await FeedParser(client).parse(url)
		if parsed.error:
			return jsonify({"error": f"Failed to parse feed: {parsed.error}"}), 400

		feed = await asyncio.to_thread(
			storage.create_feed,
			user["id"],
			url,
			title=parsed.title,
			description=parsed.description,
			site_url=parsed.link,
			favicon=parsed.favicon,
			category=(payload.get("category") or "").strip() or None,
		)
		if app.config["SYNC_ON_CREATE"]:
			_enqueue_sync(feed["id"])
		return jsonify({"feed": feed}), 201

	@app.route("/feeds/<int:feed_id>", methods=["PATCH"])
	def update_feed(feed_id: int):
		user = current_user(storage)
		if not user:
			return unauthorized()
		if not storage.get_user_feed(user["id"], feed_id):
			return jsonify({"error": "Feed not found"}), 404
		payload = request.get_json(silent=True) or {}
		updates: Dict[str, Any] = {}
		for key in ("title", "category"):
			if key in payload:
				updates[key] = (payload.get(key) or "").strip() or None
		if "category" in updates and updates["category"] is None:
			updates["category"] = "Uncategorized"
		if "refresh_interval" in payload:
			try:
				interval = int(payload["refresh_interval"])
			except (TypeError, ValueError):
				interval = 0
			if interval <= 0:
				return jsonify({"error": "refresh_interval must be a positive number of minutes"}), 400
			updates["refresh_interval"] = interval
		if "is_active" in payload:
			updates["is_active"] = bool(_flag(payload["is_active"]))
		feed = storage.update_feed(feed_id, **updates)
		return jsonify({"feed": feed})

	@app.route("/feeds/<int:feed_id>", methods=["DELETE"])  # cascades to the feed's articles
	def delete_feed(feed_id: int):
		user = current_user(storage)
		if not user:
			return unauthorized()
		if not storage.get_user_feed(user["id"], feed_id):
			return jsonify({"error": "Feed not found"}), 404
		storage.delete_feed(feed_id)
		return jsonify({"success": True})

	@app.route("/feeds/<int:feed_id>/sync", methods=["POST"])
	async def sync_one(feed_id: int):
		user = await current_user_async(storage)
		if not user:
			return unauthorized()
		if not await asyncio.to_thread(storage.get_user_feed, user["id"], feed_id):
			return jsonify({"error": "Feed not found"}), 404
		async with make_client() as client:
			result = await sync_feed(feed_id, storage, FeedParser(client))
		return jsonify(result.to_dict())

	@app.route("/sync", methods=["POST"])  # sync all active feeds of the caller
	async def sync_all():
		user = await current_user_async(storage)
		if not user:
			return unauthorized()
		async with make_client() as client:
			results = await sync_all_user_feeds(user["id"], storage, FeedParser(client))
		return jsonify({"results": results})

	@app.route("/articles", methods=["GET"])  # filtered listing, newest first
	def list_articles():
		user = current_user(storage)
		if not user:
			return unauthorized()
		limit = request.args.get("limit", default=20, type=int)
		offset = request.args.get("offset", default=0, type=int)
		articles = storage.list_articles(
			user["id"],
			feed_id=request.args.get("feed_id", type=int),
			is_read=_flag(request.args.get("is_read")),
			is_starred=_flag(request.args.get("is_starred")),
			q=(request.args.get("q") or "").strip() or None,
			limit=min(max(limit, 0), MAX_PAGE_SIZE),
			offset=max(offset, 0),
		)
		return jsonify({"articles": articles})

	@app.route("/articles/<int:article_id>", methods=["PATCH"])  # read / starred state
	def update_article(article_id: int):
		user = current_user(storage)
		if not user:
			return unauthorized()
		if not storage.get_user_article(user["id"], article_id):
			return jsonify({"error": "Not found"}), 404
		payload = request.get_json(silent=True) or {}
		article = storage.update_article(
			article_id,
			is_read=_flag(payload.get("is_read")),
			is_starred=_flag(payload.get("is_starred")),
		)
		return jsonify({"article": article})

	@app.route("/opml", methods=["GET"])
	def opml_export():
		user = current_user(storage)
		if not user:
			return unauthorized()
		body = export_opml(storage.list_feeds(user["id"]))
		return Response(
			body,
			mimetype="application/xml",
			headers={"Content-Disposition": 'attachment; filename="subscriptions.opml"'},
		)

	@app.route("/opml", methods=["POST"])  # multipart upload under "file"
	def opml_import():
		user = current_user(storage)
		if not user:
			return unauthorized()
		upload = request.files.get("file")
		if upload is None:
			return jsonify({"error": "No file provided"}), 400
		text = upload.read().decode("utf-8", errors="replace")
		entries = parse_opml(text)
		if not entries:
			return jsonify({"error": "No feed URLs found in OPML"}), 400
		return jsonify(import_opml(user["id"], entries, storage).to_dict())

	return app


if __name__ == "__main__":
	logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
	port = int(os.getenv("PORT", "5000"))
	app = create_app()
	app.run(host="0.0.0.0", port=port, debug=True)

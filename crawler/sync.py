"""Sync engine: parse a feed, insert the items we have not seen, refresh feed health.

Storage calls are blocking SQLAlchemy work, so they run through
asyncio.to_thread and every stage is a suspend point. Within one feed the
stages are strictly sequential; across feeds they run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from backend.models import utcnow
from backend.storage import Storage, StorageError
from .parser import FeedParser

logger = logging.getLogger(__name__)

NO_ARTICLES = "No articles found"
FEED_NOT_FOUND = "Feed not found"


@dataclass
class SyncResult:
	feed_id: int
	inserted: int = 0
	errors: List[str] = field(default_factory=list)

	def to_dict(self) -> Dict[str, Any]:
		return {"feed_id": self.feed_id, "inserted": self.inserted, "errors": list(self.errors)}


async def sync_feed(feed_id: int, storage: Storage, parser: FeedParser) -> SyncResult:
	result = SyncResult(feed_id=feed_id)
	try:
		feed = await asyncio.to_thread(storage.get_feed, feed_id)
	except StorageError as e:
		result.errors.append(str(e))
		return result
	if not feed:
		result.errors.append(FEED_NOT_FOUND)
		return result

	parsed = await parser.parse(feed["url"])

	if not parsed.articles:
		reason = parsed.error or NO_ARTICLES
		logger.warning("feed %s (%s): %s", feed_id, feed["url"], reason)
		result.errors.append(reason)
		try:
			await asyncio.to_thread(
				storage.update_feed,
				feed_id,
				last_fetched=utcnow(),
				error_count=(feed.get("error_count") or 0) + 1,
				last_error=reason,
			)
		except StorageError as e:
			result.errors.append(str(e))
		return result

	try:
		known = await asyncio.to_thread(storage.get_guids, feed_id)
	except StorageError as e:
		result.errors.append(str(e))
		known = None

	if known is not None:
		fresh: Dict[str, Dict[str, Any]] = {}
		for article in parsed.articles:
			if article.guid not in known and article.guid not in fresh:
				fresh[article.guid] = article.to_row()
		if fresh:
			try:
				result.inserted = await asyncio.to_thread(storage.insert_articles, feed_id, list(fresh.values()))
			except StorageError as e:
				logger.warning("insert failed for feed %s: %s", feed_id, e)
				result.errors.append(str(e))

	# a successful parse always clears the error streak, even if the insert failed
	try:
		await asyncio.to_thread(
			storage.update_feed,
			feed_id,
			title=parsed.title or feed.get("title"),
			description=parsed.description or feed.get("description"),
			site_url=parsed.link or feed.get("site_url"),
			favicon=parsed.favicon or feed.get("favicon"),
			last_fetched=utcnow(),
			error_count=0,
			last_error=None,
		)
	except StorageError as e:
		result.errors.append(str(e))

	logger.info("synced feed %s: %d new", feed_id, result.inserted)
	return result


async def _sync_many(feed_ids: List[int], storage: Storage, parser: FeedParser) -> List[Dict[str, Any]]:
	outcomes = await asyncio.gather(
		*(sync_feed(feed_id, storage, parser) for feed_id in feed_ids),
		return_exceptions=True,
	)
	results: List[Dict[str, Any]] = []
	for feed_id, outcome in zip(feed_ids, outcomes):
		if isinstance(outcome, BaseException):
			logger.error("sync crashed for feed %s", feed_id, exc_info=outcome)
			results.append({"feed_id": feed_id, "inserted": 0, "error": str(outcome) or type(outcome).__name__})
		else:
			results.append({"feed_id": feed_id, "inserted": outcome.inserted})
	return results


async def sync_all_user_feeds(user_id: int, storage: Storage, parser: FeedParser) -> List[Dict[str, Any]]:
	"""Sync every active feed of a user concurrently; one failure never stops the rest."""
	feed_ids = await asyncio.to_thread(storage.list_active_feed_ids, user_id)
	return await _sync_many(feed_ids, storage, parser)


async def sync_due_feeds(storage: Storage, parser: FeedParser, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
	feed_ids = await asyncio.to_thread(storage.list_due_feed_ids, now)
	if not feed_ids:
		return []
	logger.info("syncing %d due feeds", len(feed_ids))
	return await _sync_many(feed_ids, storage, parser)

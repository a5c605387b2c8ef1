"""SQLAlchemy-backed storage gateway.

Every method opens its own session and hands back plain dicts, so callers
(Flask views, the sync engine running in worker threads, Celery tasks) never
share ORM state. Failures surface as StorageError; a unique violation on a
user's feed URL surfaces as DuplicateFeedError.
"""

from __future__ import annotations

import secrets
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, sessionmaker

from .db import SessionLocal
from .models import Article, Feed, User, utcnow

FEED_UPDATABLE = {
	"title", "description", "site_url", "favicon", "category", "refresh_interval",
	"last_fetched", "error_count", "last_error", "is_active",
}

ARTICLE_COLUMNS = (
	"guid", "title", "content", "content_html", "summary", "author", "link", "image_url", "pub_date",
)


class StorageError(Exception):
	pass


class DuplicateFeedError(StorageError):
	pass


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
	# SQLite hands timezone-aware columns back naive
	if value is None or value.tzinfo is not None:
		return value
	return value.replace(tzinfo=timezone.utc)


class Storage:
	def __init__(self, session_factory: Optional[sessionmaker] = None) -> None:
		self._session_factory = session_factory or SessionLocal

	@contextmanager
	def _session(self) -> Iterator[Session]:
		s = self._session_factory()
		try:
			yield s
		except StorageError:
			s.rollback()
			raise
		except SQLAlchemyError as e:
			s.rollback()
			raise StorageError(str(getattr(e, "orig", None) or e)) from e
		finally:
			s.close()

	# users

	def create_user(self, email: str) -> Dict[str, Any]:
		"""Create a user with a fresh API token; an existing email returns that user."""
		with self._session() as s:
			try:
				user = User(email=email, api_token=secrets.token_hex(24))
				s.add(user)
				s.commit()
				return user.to_dict()
			except IntegrityError:
				s.rollback()
			existing = s.execute(select(User).where(User.email == email)).scalars().first()
			if existing is None:
				raise StorageError(f"could not create user {email}")
			return existing.to_dict()

	def get_user_by_token(self, token: str) -> Optional[Dict[str, Any]]:
		with self._session() as s:
			user = s.execute(select(User).where(User.api_token == token)).scalars().first()
			return user.to_dict() if user else None

	# feeds

	def get_feed(self, feed_id: int) -> Optional[Dict[str, Any]]:
		with self._session() as s:
			feed = s.get(Feed, feed_id)
			return feed.to_dict() if feed else None

	def get_user_feed(self, user_id: int, feed_id: int) -> Optional[Dict[str, Any]]:
		feed = self.get_feed(feed_id)
		if not feed or feed["user_id"] != user_id:
			return None
		return feed

	def list_feeds(self, user_id: int) -> List[Dict[str, Any]]:
		with self._session() as s:
			rows = (
				s.execute(select(Feed).where(Feed.user_id == user_id).order_by(Feed.created_at.desc(), Feed.id.desc()))
				.scalars()
				.all()
			)
			return [f.to_dict() for f in rows]

	def list_active_feed_ids(self, user_id: int) -> List[int]:
		with self._session() as s:
			return list(
				s.execute(select(Feed.id).where(Feed.user_id == user_id, Feed.is_active.is_(True))).scalars().all()
			)

	def list_due_feed_ids(self, now: Optional[datetime] = None) -> List[int]:
		"""Active feeds never fetched, or fetched longer than refresh_interval ago."""
		now = now or utcnow()
		with self._session() as s:
			rows = s.execute(
				select(Feed.id, Feed.last_fetched, Feed.refresh_interval).where(Feed.is_active.is_(True))
			).all()
		due: List[int] = []
		for feed_id, last_fetched, interval in rows:
			last = as_utc(last_fetched)
			if last is None or last + timedelta(minutes=interval or 0) <= now:
				due.append(feed_id)
		return due

	def find_feed_by_url(self, user_id: int, url: str) -> Optional[Dict[str, Any]]:
		with self._session() as s:
			feed = s.execute(select(Feed).where(Feed.user_id == user_id, Feed.url == url)).scalars().first()
			return feed.to_dict() if feed else None

	def create_feed(self, user_id: int, url: str, **fields: Any) -> Dict[str, Any]:
		with self._session() as s:
			values = {k: v for k, v in fields.items() if k in FEED_UPDATABLE and v is not None}
			feed = Feed(user_id=user_id, url=url, **values)
			s.add(feed)
			try:
				s.commit()
			except IntegrityError as e:
				raise DuplicateFeedError(f"Feed already exists: {url}") from e
			return feed.to_dict()

	def update_feed(self, feed_id: int, **fields: Any) -> Optional[Dict[str, Any]]:
		with self._session() as s:
			feed = s.get(Feed, feed_id)
			if feed is None:
				return None
			for key, value in fields.items():
				if key in FEED_UPDATABLE:
					setattr(feed, key, value)
			s.commit()
			return feed.to_dict()

	def delete_feed(self, feed_id: int) -> bool:
		"""Delete a feed together with its articles."""
		with self._session() as s:
			feed = s.get(Feed, feed_id)
			if feed is None:
				return False
			s.delete(feed)
			s.commit()
			return True

	# articles

	def get_guids(self, feed_id: int) -> Set[str]:
		with self._session() as s:
			return set(s.execute(select(Article.guid).where(Article.feed_id == feed_id)).scalars().all())

	def insert_articles(self, feed_id: int, rows: Iterable[Dict[str, Any]]) -> int:
		"""Insert all rows in one transaction; nothing is kept if any row fails."""
		with self._session() as s:
			articles = [Article(feed_id=feed_id, **{k: r.get(k) for k in ARTICLE_COLUMNS}) for r in rows]
			s.add_all(articles)
			s.commit()
			return len(articles)

	def list_articles(
		self,
		user_id: int,
		feed_id: Optional[int] = None,
		is_read: Optional[bool] = None,
		is_starred: Optional[bool] = None,
		q: Optional[str] = None,
		limit: int = 20,
		offset: int = 0,
	) -> List[Dict[str, Any]]:
		with self._session() as s:
			query = (
				select(Article)
				.join(Feed, Feed.id == Article.feed_id)
				.options(joinedload(Article.feed))
				.where(Feed.user_id == user_id)
			)
			if feed_id is not None:
				query = query.where(Article.feed_id == feed_id)
			if is_read is not None:
				query = query.where(Article.is_read.is_(is_read))
			if is_starred is not None:
				query = query.where(Article.is_starred.is_(is_starred))
			if q:
				pattern = f"%{q}%"
				query = query.where(Article.title.ilike(pattern) | Article.summary.ilike(pattern))
			query = (
				query.order_by(Article.pub_date.desc().nullslast(), Article.id.desc())
				.offset(max(0, offset))
				.limit(max(0, limit))
			)
			return [a.to_dict(with_feed=True) for a in s.execute(query).scalars().all()]

	def get_user_article(self, user_id: int, article_id: int) -> Optional[Dict[str, Any]]:
		"""The article, only if it belongs to one of the user's feeds."""
		with self._session() as s:
			article = s.get(Article, article_id)
			if article is None or article.feed is None or article.feed.user_id != user_id:
				return None
			return article.to_dict()

	def update_article(
		self,
		article_id: int,
		is_read: Optional[bool] = None,
		is_starred: Optional[bool] = None,
	) -> Optional[Dict[str, Any]]:
		with self._session() as s:
			article = s.get(Article, article_id)
			if article is None:
				return None
			if is_read is not None:
				article.is_read = is_read
				article.read_at = utcnow() if is_read else None
			if is_starred is not None:
				article.is_starred = is_starred
			s.commit()
			return article.to_dict()

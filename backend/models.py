from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped

from .config import DEFAULT_REFRESH_INTERVAL
from .db import Base


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
	return value.isoformat() if value else None


class User(Base):
	__tablename__ = "users"

	id: Mapped[int] = Column(Integer, primary_key=True)
	email: Mapped[str] = Column(String(256), unique=True, nullable=False, index=True)
	api_token: Mapped[str] = Column(String(64), unique=True, nullable=False, index=True)
	created_at: Mapped[datetime] = Column(DateTime(timezone=True), default=utcnow, nullable=False)

	feeds = relationship("Feed", back_populates="user", cascade="all, delete-orphan")

	def to_dict(self):
		return {"id": self.id, "email": self.email, "api_token": self.api_token}


class Feed(Base):
	__tablename__ = "feeds"
	__table_args__ = (
		UniqueConstraint("user_id", "url", name="uq_feed_user_url"),
	)

	id: Mapped[int] = Column(Integer, primary_key=True)
	user_id: Mapped[int] = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
	url: Mapped[str] = Column(String(2048), nullable=False)
	title: Mapped[Optional[str]] = Column(String(512), nullable=True)
	description: Mapped[Optional[str]] = Column(Text, nullable=True)
	site_url: Mapped[Optional[str]] = Column(String(2048), nullable=True)
	favicon: Mapped[Optional[str]] = Column(String(2048), nullable=True)
	category: Mapped[str] = Column(String(128), nullable=False, default="Uncategorized")
	# minutes between scheduled syncs
	refresh_interval: Mapped[int] = Column(Integer, nullable=False, default=DEFAULT_REFRESH_INTERVAL)
	last_fetched: Mapped[Optional[datetime]] = Column(DateTime(timezone=True), nullable=True)
	error_count: Mapped[int] = Column(Integer, nullable=False, default=0)
	last_error: Mapped[Optional[str]] = Column(Text, nullable=True)
	is_active: Mapped[bool] = Column(Boolean, nullable=False, default=True, index=True)
	created_at: Mapped[datetime] = Column(DateTime(timezone=True), default=utcnow, nullable=False)
	updated_at: Mapped[datetime] = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

	user = relationship("User", back_populates="feeds")
	articles = relationship("Article", back_populates="feed", cascade="all, delete-orphan")

	def to_dict(self):
		return {
			"id": self.id,
			"user_id": self.user_id,
			"url": self.url,
			"title": self.title,
			"description": self.description,
			"site_url": self.site_url,
			"favicon": self.favicon,
			"category": self.category,
			"refresh_interval": self.refresh_interval,
			"last_fetched": _iso(self.last_fetched),
			"error_count": self.error_count,
			"last_error": self.last_error,
			"is_active": self.is_active,
			"created_at": _iso(self.created_at),
			"updated_at": _iso(self.updated_at),
		}


class Article(Base):
	__tablename__ = "articles"
	__table_args__ = (
		UniqueConstraint("feed_id", "guid", name="uq_article_feed_guid"),
	)

	id: Mapped[int] = Column(Integer, primary_key=True)
	feed_id: Mapped[int] = Column(Integer, ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False, index=True)
	guid: Mapped[str] = Column(String(2048), nullable=False)
	title: Mapped[str] = Column(String(1024), nullable=False)
	content: Mapped[Optional[str]] = Column(Text, nullable=True)
	content_html: Mapped[Optional[str]] = Column(Text, nullable=True)
	summary: Mapped[Optional[str]] = Column(Text, nullable=True)
	author: Mapped[Optional[str]] = Column(String(512), nullable=True)
	link: Mapped[Optional[str]] = Column(String(2048), nullable=True)
	image_url: Mapped[Optional[str]] = Column(String(2048), nullable=True)
	pub_date: Mapped[Optional[datetime]] = Column(DateTime(timezone=True), nullable=True, index=True)
	is_read: Mapped[bool] = Column(Boolean, nullable=False, default=False, index=True)
	is_starred: Mapped[bool] = Column(Boolean, nullable=False, default=False, index=True)
	read_at: Mapped[Optional[datetime]] = Column(DateTime(timezone=True), nullable=True)
	created_at: Mapped[datetime] = Column(DateTime(timezone=True), default=utcnow, nullable=False)

	feed = relationship("Feed", back_populates="articles")

	def to_dict(self, with_feed: bool = False):
		data = {
			"id": self.id,
			"feed_id": self.feed_id,
			"guid": self.guid,
			"title": self.title,
			"content": self.content,
			"content_html": self.content_html,
			"summary": self.summary,
			"author": self.author,
			"link": self.link,
			"image_url": self.image_url,
			"pub_date": _iso(self.pub_date),
			"is_read": self.is_read,
			"is_starred": self.is_starred,
			"read_at": _iso(self.read_at),
			"created_at": _iso(self.created_at),
		}
		if with_feed and self.feed is not None:
			data["feed"] = {
				"title": self.feed.title,
				"favicon": self.feed.favicon,
				"url": self.feed.url,
				"site_url": self.feed.site_url,
			}
		return data

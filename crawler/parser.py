"""Fetch a feed document and normalize its items into article records.

feedparser does the dialect detection. What we read out of each entry is
driven by DIALECT_FIELDS (per dialect) and IMAGE_EXTENSIONS, so the lookup
order for every field lives in one place.
"""

from __future__ import annotations

import asyncio
import calendar
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import feedparser
import httpx

from backend.config import FAVICON_SERVICE, PARSE_TIMEOUT
from backend.text_utils import clean_url, extract_image, extract_summary, sanitize_html
from .client import FEED_ACCEPT
from .locator import FeedLocator

logger = logging.getLogger(__name__)


class FeedDialect(str, Enum):
	RSS = "rss"
	ATOM = "atom"
	UNKNOWN = "unknown"

	@classmethod
	def from_version(cls, version: Optional[str]) -> "FeedDialect":
		version = (version or "").lower()
		if version.startswith("atom"):
			return cls.ATOM
		if version.startswith("rss"):
			return cls.RSS
		return cls.UNKNOWN


@dataclass(frozen=True)
class DialectFields:
	# first non-empty wins
	body: Tuple[str, ...]
	snippet: Tuple[str, ...]
	author: Tuple[str, ...]
	dates: Tuple[str, ...]


# "content" is content:encoded for RSS and <content> for Atom
DIALECT_FIELDS: Dict[FeedDialect, DialectFields] = {
	FeedDialect.RSS: DialectFields(
		body=("content", "summary"),
		snippet=("summary",),
		author=("author",),
		dates=("published_parsed", "updated_parsed"),
	),
	FeedDialect.ATOM: DialectFields(
		body=("content", "summary"),
		snippet=("summary",),
		author=("author",),
		dates=("published_parsed", "updated_parsed"),
	),
}
DIALECT_FIELDS[FeedDialect.UNKNOWN] = DIALECT_FIELDS[FeedDialect.RSS]

# media:content, then media:thumbnail
IMAGE_EXTENSIONS = ("media_content", "media_thumbnail")


class ParseErrorKind(str, Enum):
	NOT_FOUND = "not_found"
	RATE_LIMITED = "rate_limited"
	TIMEOUT = "timeout"
	GENERIC = "generic"


ERROR_MESSAGES = {
	ParseErrorKind.NOT_FOUND: "No feed found at this URL. Try entering the direct feed URL.",
	ParseErrorKind.RATE_LIMITED: "Too many requests. Please wait a moment and try again.",
	ParseErrorKind.TIMEOUT: "Request timed out. The feed server may be slow or unavailable.",
}


class FeedParseError(Exception):
	pass


@dataclass
class ParsedArticle:
	guid: str
	title: str
	content: str
	content_html: str
	summary: str
	author: str
	link: str
	image_url: Optional[str]
	pub_date: Optional[datetime]

	def to_row(self) -> Dict[str, Any]:
		return {
			"guid": self.guid,
			"title": self.title,
			"content": self.content,
			"content_html": self.content_html,
			"summary": self.summary,
			"author": self.author,
			"link": self.link,
			"image_url": self.image_url,
			"pub_date": self.pub_date,
		}


@dataclass
class ParsedFeed:
	title: str = ""
	description: str = ""
	link: str = ""
	favicon: str = ""
	dialect: FeedDialect = FeedDialect.UNKNOWN
	articles: List[ParsedArticle] = field(default_factory=list)
	error: Optional[str] = None
	error_kind: Optional[ParseErrorKind] = None

	@property
	def ok(self) -> bool:
		return self.error is None


def classify_error(exc: BaseException) -> Tuple[ParseErrorKind, str]:
	"""Map any fetch/parse failure onto a user-facing category and message."""
	status = None
	if isinstance(exc, httpx.HTTPStatusError):
		status = exc.response.status_code
	text = str(exc)
	lowered = text.lower()
	if status == 404 or "404" in text:
		kind = ParseErrorKind.NOT_FOUND
	elif status == 429 or "429" in text:
		kind = ParseErrorKind.RATE_LIMITED
	elif isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)) or "timeout" in lowered \
			or "timed out" in lowered or "abort" in lowered:
		kind = ParseErrorKind.TIMEOUT
	else:
		kind = ParseErrorKind.GENERIC
	message = ERROR_MESSAGES.get(kind) or f"Failed to parse feed: {text or type(exc).__name__}"
	return kind, message


def favicon_for(url: str) -> str:
	try:
		host = urlsplit(url).hostname or ""
	except ValueError:
		host = ""
	if not host:
		return ""
	return FAVICON_SERVICE.format(domain=host)


def _first(entry: Any, keys: Tuple[str, ...]) -> Any:
	for key in keys:
		value = entry.get(key)
		if key == "content" and value:
			# list of {type, value} blocks; richest is the first non-empty
			value = next((block.get("value") for block in value if block.get("value")), None)
		if value:
			return value
	return None


def _image_from_extensions(entry: Any) -> Optional[str]:
	for key in IMAGE_EXTENSIONS:
		for media in entry.get(key) or []:
			url = media.get("url")
			if url:
				return url
	return None


def _to_datetime(value: Any) -> Optional[datetime]:
	# feedparser normalizes dates to UTC struct_time
	try:
		return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
	except (TypeError, ValueError, OverflowError):
		return None


def normalize_entry(entry: Any, dialect: FeedDialect) -> ParsedArticle:
	fields = DIALECT_FIELDS[dialect]
	body = _first(entry, fields.body) or ""
	link = entry.get("link") or ""
	title = entry.get("title") or ""
	pub_date = None
	for key in fields.dates:
		if entry.get(key):
			pub_date = _to_datetime(entry.get(key))
			if pub_date:
				break
	return ParsedArticle(
		# random fallback is not stable across syncs, such items may repeat
		guid=entry.get("id") or link or title or uuid.uuid4().hex,
		title=title or "Untitled",
		content=extract_summary(body),
		content_html=sanitize_html(body),
		summary=extract_summary(_first(entry, fields.snippet) or ""),
		author=_first(entry, fields.author) or "",
		link=clean_url(link),
		image_url=_image_from_extensions(entry) or extract_image(body),
		pub_date=pub_date,
	)


def parse_document(body: bytes, source_url: str) -> ParsedFeed:
	parsed = feedparser.parse(body)
	if parsed.bozo and not parsed.entries and not parsed.feed:
		raise FeedParseError(f"not a feed: {parsed.get('bozo_exception')}")
	if parsed.bozo:
		logger.debug("bozo feed %s: %s", source_url, parsed.get("bozo_exception"))
	dialect = FeedDialect.from_version(parsed.get("version"))
	meta = parsed.feed
	return ParsedFeed(
		title=meta.get("title") or "",
		description=meta.get("subtitle") or meta.get("description") or "",
		link=meta.get("link") or "",
		favicon=favicon_for(source_url),
		dialect=dialect,
		articles=[normalize_entry(entry, dialect) for entry in parsed.entries],
	)


class FeedParser:
	def __init__(
		self,
		client: httpx.AsyncClient,
		locator: Optional[FeedLocator] = None,
		timeout: float = PARSE_TIMEOUT,
	) -> None:
		self._client = client
		self._locator = locator or FeedLocator(client)
		self._timeout = timeout

	async def parse(self, url: str) -> ParsedFeed:
		"""Locate, fetch and parse the feed behind ``url``. Never raises."""
		located = await self._locator.locate(url)
		return await self.parse_feed(located.url, located.body, source_url=url)

	async def parse_feed(self, feed_url: str, body: Optional[bytes] = None, source_url: Optional[str] = None) -> ParsedFeed:
		try:
			if body is None:
				body = await self._fetch(feed_url)
			# feedparser is CPU-bound
			return await asyncio.to_thread(parse_document, body, source_url or feed_url)
		except Exception as e:
			kind, message = classify_error(e)
			logger.warning("parse failed for %s (%s): %s", feed_url, kind.value, e)
			return ParsedFeed(error=message, error_kind=kind)

	async def _fetch(self, url: str) -> bytes:
		resp = await self._client.get(url, headers={"Accept": FEED_ACCEPT}, timeout=self._timeout)
		resp.raise_for_status()
		return resp.content

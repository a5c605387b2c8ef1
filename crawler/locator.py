"""Feed discovery: turn a user-supplied URL into a machine-readable feed URL.

Strategies run in order and stop at the first hit:

1. the path already looks like a feed (no network at all)
2. fetch the URL; an XML content type means it is the feed (body is kept),
   an HTML page is searched for <link rel="alternate"> feed links
3. HEAD probes against common feed paths on the origin
4. give up and hand back the original URL
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
from urllib.parse import urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup

from backend.config import LOCATE_TIMEOUT, PROBE_TIMEOUT
from .client import PAGE_ACCEPT

logger = logging.getLogger(__name__)

NETWORK_ERRORS = (httpx.HTTPError, httpx.InvalidURL, ValueError)

FEED_PATH_RE = re.compile(r"(\.(xml|rss|atom)$)|(/(feed|rss|atom)(/|$))", re.IGNORECASE)

COMMON_FEED_PATHS = ("/feed", "/rss", "/feed.xml", "/rss.xml", "/atom.xml", "/index.xml")

# preference order when a page advertises several feeds
ALTERNATE_TYPES = ("application/rss+xml", "application/atom+xml", "application/feed+json")


class LocateStrategy(str, Enum):
	DIRECT_PATTERN = "direct_pattern"
	CONTENT_TYPE = "content_type"
	HTML_LINK = "html_link"
	COMMON_PATH = "common_path"
	EXHAUSTED = "exhausted"


@dataclass
class LocateResult:
	url: str
	strategy: LocateStrategy
	body: Optional[bytes] = None
	attempts: List[str] = field(default_factory=list)

	@property
	def found(self) -> bool:
		return self.strategy != LocateStrategy.EXHAUSTED


def looks_like_feed_url(url: str) -> bool:
	try:
		path = urlsplit(url).path
	except ValueError:
		return False
	return bool(FEED_PATH_RE.search(path))


def is_feed_content_type(content_type: str) -> bool:
	ct = content_type.lower()
	if "rss" in ct or "atom" in ct or "feed+json" in ct:
		return True
	return "xml" in ct and "html" not in ct


def find_alternate_link(html: bytes | str, base_url: str) -> Optional[str]:
	soup = BeautifulSoup(html, "html.parser")
	links = soup.find_all("link", rel=lambda x: x and "alternate" in x)
	for wanted in ALTERNATE_TYPES:
		for link in links:
			if (link.get("type") or "").strip().lower() == wanted and link.get("href"):
				return urljoin(base_url, link["href"].strip())
	return None


class FeedLocator:
	def __init__(
		self,
		client: httpx.AsyncClient,
		timeout: float = LOCATE_TIMEOUT,
		probe_timeout: float = PROBE_TIMEOUT,
		common_paths: tuple = COMMON_FEED_PATHS,
	) -> None:
		self._client = client
		self._timeout = timeout
		self._probe_timeout = probe_timeout
		self._common_paths = common_paths

	async def locate(self, url: str) -> LocateResult:
		"""Never raises; network failures just move on to the next strategy."""
		if looks_like_feed_url(url):
			return LocateResult(url=url, strategy=LocateStrategy.DIRECT_PATTERN)

		attempts: List[str] = [url]
		hit = await self._inspect_page(url)
		if hit is not None:
			hit.attempts = attempts
			return hit

		for candidate in self._candidates(url):
			attempts.append(candidate)
			if await self._probe(candidate):
				return LocateResult(url=candidate, strategy=LocateStrategy.COMMON_PATH, attempts=attempts)

		logger.debug("no feed discovered for %s, tried %d urls", url, len(attempts))
		return LocateResult(url=url, strategy=LocateStrategy.EXHAUSTED, attempts=attempts)

	async def _inspect_page(self, url: str) -> Optional[LocateResult]:
		try:
			resp = await self._client.get(url, headers={"Accept": PAGE_ACCEPT}, timeout=self._timeout)
		except NETWORK_ERRORS as e:
			logger.debug("discovery fetch failed for %s: %s", url, e)
			return None
		content_type = resp.headers.get("content-type", "")
		if resp.is_success and is_feed_content_type(content_type):
			return LocateResult(url=url, strategy=LocateStrategy.CONTENT_TYPE, body=resp.content)
		if "html" in content_type.lower():
			href = find_alternate_link(resp.content, url)
			if href:
				return LocateResult(url=href, strategy=LocateStrategy.HTML_LINK)
		return None

	def _candidates(self, url: str) -> List[str]:
		try:
			parts = urlsplit(url)
		except ValueError:
			return []
		if not parts.scheme or not parts.netloc:
			return []
		origin = f"{parts.scheme}://{parts.netloc}"
		return [urljoin(origin, path) for path in self._common_paths]

	async def _probe(self, url: str) -> bool:
		try:
			resp = await self._client.head(url, timeout=self._probe_timeout)
		except NETWORK_ERRORS as e:
			logger.debug("probe failed for %s: %s", url, e)
			return False
		return resp.is_success and is_feed_content_type(resp.headers.get("content-type", ""))

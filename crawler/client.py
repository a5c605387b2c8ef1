from __future__ import annotations

import httpx

from backend.config import PARSE_TIMEOUT, USER_AGENT

REQUEST_HEADERS = {
	"User-Agent": USER_AGENT,
	"Accept-Language": "en-US,en;q=0.9",
}

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.9, */*;q=0.8"
PAGE_ACCEPT = "text/html, application/xhtml+xml, application/xml;q=0.9, */*;q=0.8"


def build_client(**kwargs) -> httpx.AsyncClient:
	"""One client per event loop; pass it to FeedLocator/FeedParser and close it when done."""
	options = {
		"timeout": httpx.Timeout(PARSE_TIMEOUT),
		"follow_redirects": True,
		"limits": httpx.Limits(max_connections=20),
		"headers": dict(REQUEST_HEADERS),
	}
	options.update(kwargs)
	return httpx.AsyncClient(**options)

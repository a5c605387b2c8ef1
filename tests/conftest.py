import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SYNC_ON_CREATE", "0")

from typing import Callable, Dict

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from backend.db import init_db
from backend.storage import Storage


RSS_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:content="http://purl.org/rss/1.0/modules/content/"
     xmlns:media="http://search.yahoo.com/mrss/"
     xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel>
    <title>Example Blog</title>
    <link>https://example.com/</link>
    <description>Posts about examples</description>
    {items}
  </channel>
</rss>
"""

RSS_ITEM = """
    <item>
      <title>{title}</title>
      <link>https://example.com/{guid}?utm_source=rss&amp;id=7</link>
      <guid>{guid}</guid>
      <description>Short {title}</description>
      <pubDate>Mon, 06 Jan 2025 10:00:00 GMT</pubDate>
    </item>
"""


def rss_document(*guids: str) -> bytes:
	items = "".join(RSS_ITEM.format(guid=g, title=f"Post {g}") for g in guids)
	return RSS_TEMPLATE.format(items=items).encode("utf-8")


@pytest.fixture
def session_factory(tmp_path):
	# a file database: sync runs storage calls from several worker threads at once
	engine = create_engine(
		f"sqlite:///{tmp_path / 'feeds.db'}",
		connect_args={"check_same_thread": False, "timeout": 15},
		future=True,
	)
	init_db(engine)
	yield sessionmaker(bind=engine, autoflush=False, future=True, expire_on_commit=False)
	engine.dispose()


@pytest.fixture
def storage(session_factory):
	return Storage(session_factory)


@pytest.fixture
def user(storage):
	return storage.create_user("reader@example.com")


class FakeWeb:
	"""Routes requests to canned responses by URL; records every request."""

	def __init__(self) -> None:
		self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
		self.requests: list = []

	def add(self, url: str, body: bytes = b"", status: int = 200, content_type: str = "application/rss+xml") -> None:
		self.routes[url] = lambda request: httpx.Response(status, content=body, headers={"content-type": content_type})

	def add_handler(self, url: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
		self.routes[url] = handler

	def __call__(self, request: httpx.Request) -> httpx.Response:
		self.requests.append(request)
		handler = self.routes.get(str(request.url))
		if handler is None:
			return httpx.Response(404, content=b"not found", headers={"content-type": "text/plain"})
		return handler(request)

	def client(self) -> httpx.AsyncClient:
		return httpx.AsyncClient(transport=httpx.MockTransport(self), follow_redirects=True)


@pytest.fixture
def web():
	return FakeWeb()

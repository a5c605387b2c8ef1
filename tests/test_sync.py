"""Tests for crawler/sync.py"""

from datetime import datetime, timedelta, timezone

import pytest

from backend.storage import StorageError
from crawler.parser import ERROR_MESSAGES, FeedParser, ParseErrorKind
from crawler.sync import FEED_NOT_FOUND, NO_ARTICLES, sync_all_user_feeds, sync_due_feeds, sync_feed

from .conftest import rss_document

FEED_URL = "https://x.com/feed.xml"


@pytest.fixture
def feed(storage, user):
	return storage.create_feed(user["id"], FEED_URL)


@pytest.mark.asyncio
class TestSyncFeed:
	async def test_first_sync_inserts_and_refreshes_metadata(self, storage, feed, web):
		web.add(FEED_URL, rss_document("a", "b"))
		async with web.client() as client:
			result = await sync_feed(feed["id"], storage, FeedParser(client))

		assert result.inserted == 2
		assert result.errors == []
		stored = storage.get_feed(feed["id"])
		assert stored["title"] == "Example Blog"
		assert stored["description"] == "Posts about examples"
		assert stored["site_url"] == "https://example.com/"
		assert stored["favicon"].startswith("https://www.google.com/s2/favicons?domain=x.com")
		assert stored["last_fetched"] is not None
		assert stored["error_count"] == 0

	async def test_second_sync_is_idempotent(self, storage, feed, web):
		web.add(FEED_URL, rss_document("a", "b"))
		async with web.client() as client:
			parser = FeedParser(client)
			await sync_feed(feed["id"], storage, parser)
			again = await sync_feed(feed["id"], storage, parser)
		assert again.inserted == 0
		assert storage.get_guids(feed["id"]) == {"a", "b"}

	async def test_only_new_guids_are_inserted(self, storage, feed, web):
		async with web.client() as client:
			parser = FeedParser(client)
			web.add(FEED_URL, rss_document("a", "b"))
			first = await sync_feed(feed["id"], storage, parser)
			web.add(FEED_URL, rss_document("a", "b", "c"))
			second = await sync_feed(feed["id"], storage, parser)
		assert (first.inserted, second.inserted) == (2, 1)
		assert storage.get_guids(feed["id"]) == {"a", "b", "c"}

	async def test_duplicate_guids_in_one_document_collapse(self, storage, feed, web):
		web.add(FEED_URL, rss_document("a", "a", "b"))
		async with web.client() as client:
			result = await sync_feed(feed["id"], storage, FeedParser(client))
		assert result.inserted == 2
		assert result.errors == []

	async def test_empty_feed_counts_as_failure(self, storage, feed, web):
		web.add(FEED_URL, rss_document())
		async with web.client() as client:
			result = await sync_feed(feed["id"], storage, FeedParser(client))
			await sync_feed(feed["id"], storage, FeedParser(client))

		assert result.inserted == 0
		assert result.errors == [NO_ARTICLES]
		stored = storage.get_feed(feed["id"])
		assert stored["error_count"] == 2
		assert stored["last_error"] == NO_ARTICLES
		assert stored["last_fetched"] is not None

	async def test_parse_error_becomes_last_error(self, storage, feed, web):
		async with web.client() as client:
			result = await sync_feed(feed["id"], storage, FeedParser(client))
		message = ERROR_MESSAGES[ParseErrorKind.NOT_FOUND]
		assert result.errors == [message]
		stored = storage.get_feed(feed["id"])
		assert stored["error_count"] == 1
		assert stored["last_error"] == message

	async def test_success_resets_error_streak(self, storage, feed, web):
		storage.update_feed(feed["id"], error_count=4, last_error="boom")
		web.add(FEED_URL, rss_document("a"))
		async with web.client() as client:
			await sync_feed(feed["id"], storage, FeedParser(client))
		stored = storage.get_feed(feed["id"])
		assert stored["error_count"] == 0
		assert stored["last_error"] is None

	async def test_missing_feed(self, storage, web):
		async with web.client() as client:
			result = await sync_feed(9999, storage, FeedParser(client))
		assert result.inserted == 0
		assert result.errors == [FEED_NOT_FOUND]
		assert web.requests == []

	async def test_insert_failure_still_updates_feed(self, storage, feed, web, monkeypatch):
		def broken_insert(feed_id, rows):
			raise StorageError("disk full")

		monkeypatch.setattr(storage, "insert_articles", broken_insert)
		storage.update_feed(feed["id"], error_count=2)
		web.add(FEED_URL, rss_document("a"))
		async with web.client() as client:
			result = await sync_feed(feed["id"], storage, FeedParser(client))

		assert result.inserted == 0
		assert result.errors == ["disk full"]
		stored = storage.get_feed(feed["id"])
		assert stored["error_count"] == 0
		assert stored["title"] == "Example Blog"

	async def test_keeps_stored_metadata_when_feed_omits_it(self, storage, feed, web):
		storage.update_feed(feed["id"], title="Mine", description="kept")
		bare = b'<?xml version="1.0"?><rss version="2.0"><channel><item><guid>g</guid><title>t</title></item></channel></rss>'
		web.add(FEED_URL, bare)
		async with web.client() as client:
			await sync_feed(feed["id"], storage, FeedParser(client))
		stored = storage.get_feed(feed["id"])
		assert stored["title"] == "Mine"
		assert stored["description"] == "kept"


@pytest.mark.asyncio
class TestSyncMany:
	async def test_all_user_feeds_are_isolated(self, storage, user, web, monkeypatch):
		good = storage.create_feed(user["id"], "https://good.example/feed.xml")
		bad = storage.create_feed(user["id"], "https://bad.example/feed.xml")
		web.add("https://good.example/feed.xml", rss_document("a"))
		web.add("https://bad.example/feed.xml", rss_document("b"))

		real_get_guids = storage.get_guids

		def flaky_get_guids(feed_id):
			if feed_id == bad["id"]:
				raise RuntimeError("exploded")
			return real_get_guids(feed_id)

		monkeypatch.setattr(storage, "get_guids", flaky_get_guids)
		async with web.client() as client:
			results = await sync_all_user_feeds(user["id"], storage, FeedParser(client))

		by_id = {r["feed_id"]: r for r in results}
		assert by_id[good["id"]] == {"feed_id": good["id"], "inserted": 1}
		assert by_id[bad["id"]]["inserted"] == 0
		assert by_id[bad["id"]]["error"] == "exploded"

	async def test_inactive_feeds_are_skipped(self, storage, user, web):
		active = storage.create_feed(user["id"], "https://a.example/feed.xml")
		storage.create_feed(user["id"], "https://b.example/feed.xml", is_active=False)
		web.add("https://a.example/feed.xml", rss_document("a"))
		async with web.client() as client:
			results = await sync_all_user_feeds(user["id"], storage, FeedParser(client))
		assert [r["feed_id"] for r in results] == [active["id"]]

	async def test_no_feeds(self, storage, user, web):
		async with web.client() as client:
			assert await sync_all_user_feeds(user["id"], storage, FeedParser(client)) == []

	async def test_due_feeds_only(self, storage, user, web):
		now = datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc)
		never = storage.create_feed(user["id"], "https://n.example/feed.xml")
		stale = storage.create_feed(user["id"], "https://s.example/feed.xml", last_fetched=now - timedelta(minutes=61))
		storage.create_feed(user["id"], "https://f.example/feed.xml", last_fetched=now - timedelta(minutes=5))
		web.add("https://n.example/feed.xml", rss_document("a"))
		web.add("https://s.example/feed.xml", rss_document("b"))

		assert sorted(storage.list_due_feed_ids(now)) == sorted([never["id"], stale["id"]])
		async with web.client() as client:
			results = await sync_due_feeds(storage, FeedParser(client), now=now)
		assert sorted(r["feed_id"] for r in results) == sorted([never["id"], stale["id"]])
		assert all(r["inserted"] == 1 for r in results)

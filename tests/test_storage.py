"""Tests for backend/storage.py"""

from datetime import datetime, timezone

import pytest

from backend.storage import DuplicateFeedError, StorageError, as_utc


def _row(guid, title=None, pub_date=None, summary=""):
	return {"guid": guid, "title": title or guid, "summary": summary, "pub_date": pub_date}


class TestUsers:
	def test_token_lookup(self, storage, user):
		assert user["api_token"]
		assert storage.get_user_by_token(user["api_token"])["id"] == user["id"]
		assert storage.get_user_by_token("nope") is None

	def test_existing_email_returns_same_user(self, storage, user):
		again = storage.create_user("reader@example.com")
		assert again == user


class TestFeeds:
	def test_defaults(self, storage, user):
		feed = storage.create_feed(user["id"], "https://x.com/feed")
		assert feed["category"] == "Uncategorized"
		assert feed["refresh_interval"] == 60
		assert feed["error_count"] == 0
		assert feed["is_active"] is True
		assert feed["last_fetched"] is None

	def test_duplicate_url_per_user(self, storage, user):
		storage.create_feed(user["id"], "https://x.com/feed")
		with pytest.raises(DuplicateFeedError):
			storage.create_feed(user["id"], "https://x.com/feed")
		other = storage.create_user("other@example.com")
		assert storage.create_feed(other["id"], "https://x.com/feed")["user_id"] == other["id"]

	def test_user_scoping(self, storage, user):
		feed = storage.create_feed(user["id"], "https://x.com/feed")
		other = storage.create_user("other@example.com")
		assert storage.get_user_feed(other["id"], feed["id"]) is None
		assert storage.get_user_feed(user["id"], feed["id"])["id"] == feed["id"]
		assert storage.list_feeds(other["id"]) == []

	def test_update_ignores_unknown_fields(self, storage, user):
		feed = storage.create_feed(user["id"], "https://x.com/feed")
		updated = storage.update_feed(feed["id"], title="New", url="https://evil.example/")
		assert updated["title"] == "New"
		assert updated["url"] == "https://x.com/feed"
		assert storage.update_feed(9999, title="x") is None

	def test_delete_cascades_to_articles(self, storage, user):
		feed = storage.create_feed(user["id"], "https://x.com/feed")
		storage.insert_articles(feed["id"], [_row("a"), _row("b")])
		assert storage.delete_feed(feed["id"]) is True
		assert storage.get_feed(feed["id"]) is None
		assert storage.get_guids(feed["id"]) == set()
		assert storage.list_articles(user["id"]) == []
		assert storage.delete_feed(feed["id"]) is False


class TestArticles:
	@pytest.fixture
	def feed(self, storage, user):
		return storage.create_feed(user["id"], "https://x.com/feed", title="X")

	def test_insert_is_all_or_nothing(self, storage, feed):
		storage.insert_articles(feed["id"], [_row("a")])
		with pytest.raises(StorageError):
			storage.insert_articles(feed["id"], [_row("b"), _row("a")])
		assert storage.get_guids(feed["id"]) == {"a"}

	def test_listing_order_and_feed_block(self, storage, user, feed):
		storage.insert_articles(feed["id"], [
			_row("old", pub_date=datetime(2024, 1, 1, tzinfo=timezone.utc)),
			_row("undated"),
			_row("new", pub_date=datetime(2025, 1, 1, tzinfo=timezone.utc)),
		])
		articles = storage.list_articles(user["id"])
		assert [a["guid"] for a in articles] == ["new", "old", "undated"]
		assert articles[0]["feed"]["title"] == "X"
		assert articles[0]["feed"]["url"] == "https://x.com/feed"

	def test_filters_and_paging(self, storage, user, feed):
		storage.insert_articles(feed["id"], [_row(f"g{i}", title=f"Post {i}") for i in range(5)])
		ids = [a["id"] for a in storage.list_articles(user["id"])]
		storage.update_article(ids[0], is_read=True)
		storage.update_article(ids[1], is_starred=True)

		assert len(storage.list_articles(user["id"], limit=2)) == 2
		assert len(storage.list_articles(user["id"], limit=2, offset=4)) == 1
		assert [a["id"] for a in storage.list_articles(user["id"], is_read=True)] == [ids[0]]
		assert len(storage.list_articles(user["id"], is_read=False)) == 4
		assert [a["id"] for a in storage.list_articles(user["id"], is_starred=True)] == [ids[1]]
		assert storage.list_articles(user["id"], feed_id=feed["id"] + 1) == []

	def test_search_title_and_summary(self, storage, user, feed):
		storage.insert_articles(feed["id"], [
			_row("a", title="Python tips"),
			_row("b", title="Other", summary="all about python"),
			_row("c", title="Nothing"),
		])
		found = {a["guid"] for a in storage.list_articles(user["id"], q="python")}
		assert found == {"a", "b"}

	def test_read_at_is_stamped_and_cleared(self, storage, user, feed):
		storage.insert_articles(feed["id"], [_row("a")])
		article_id = storage.list_articles(user["id"])[0]["id"]
		read = storage.update_article(article_id, is_read=True)
		assert read["is_read"] is True
		assert read["read_at"] is not None
		unread = storage.update_article(article_id, is_read=False)
		assert unread["is_read"] is False
		assert unread["read_at"] is None

	def test_starring_leaves_read_state(self, storage, user, feed):
		storage.insert_articles(feed["id"], [_row("a")])
		article_id = storage.list_articles(user["id"])[0]["id"]
		storage.update_article(article_id, is_read=True)
		starred = storage.update_article(article_id, is_starred=True)
		assert starred["is_read"] is True
		assert starred["read_at"] is not None

	def test_user_article_scoping(self, storage, user, feed):
		storage.insert_articles(feed["id"], [_row("a")])
		article_id = storage.list_articles(user["id"])[0]["id"]
		other = storage.create_user("other@example.com")
		assert storage.get_user_article(other["id"], article_id) is None
		assert storage.get_user_article(user["id"], article_id)["guid"] == "a"


def test_as_utc():
	naive = datetime(2025, 1, 1, 12, 0)
	assert as_utc(naive).tzinfo == timezone.utc
	assert as_utc(None) is None

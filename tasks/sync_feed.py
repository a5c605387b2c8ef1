from __future__ import annotations

import asyncio
from typing import Any, Dict

from tasks.app import celery_app
from backend.storage import Storage
from crawler.client import build_client
from crawler.parser import FeedParser
from crawler.sync import sync_feed as run_sync


async def _sync(feed_id: int) -> Dict[str, Any]:
    async with build_client() as client:
        result = await run_sync(feed_id, Storage(), FeedParser(client))
    return result.to_dict()


# no autoretry: sync_feed records its own failures on the feed row
@celery_app.task(name='tasks.sync_feed.sync_feed')
def sync_feed(feed_id: int) -> Dict[str, Any]:
    return asyncio.run(_sync(feed_id))

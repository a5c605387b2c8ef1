from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.blocking import BlockingScheduler

from backend.config import LOG_LEVEL, SYNC_INTERVAL_MINUTES
from backend.db import get_engine, init_db
from backend.storage import Storage
from .client import build_client
from .parser import FeedParser
from .sync import sync_due_feeds

logger = logging.getLogger(__name__)


async def _sync_due(storage: Storage) -> List[Dict[str, Any]]:
	async with build_client() as client:
		return await sync_due_feeds(storage, FeedParser(client))


def run_job(storage: Optional[Storage] = None) -> List[Dict[str, Any]]:
	logger.info("start sync")
	try:
		results = asyncio.run(_sync_due(storage or Storage()))
	except Exception:
		logger.exception("sync run failed")
		return []
	inserted = sum(r.get("inserted", 0) for r in results)
	logger.info("done: %d feeds, %d new articles", len(results), inserted)
	return results


def main() -> None:
	"""Single-host alternative to Celery beat: sync due feeds on a fixed interval."""
	logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
	if get_engine().dialect.name == "sqlite":
		init_db()
	scheduler = BlockingScheduler()
	scheduler.add_job(
		run_job,
		"interval",
		minutes=SYNC_INTERVAL_MINUTES,
		coalesce=True,
		max_instances=1,
		misfire_grace_time=120,
	)
	logger.info("scheduling every %d minutes", SYNC_INTERVAL_MINUTES)
	run_job()
	scheduler.start()


if __name__ == "__main__":
	main()

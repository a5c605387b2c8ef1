from __future__ import annotations

from tasks.app import celery_app
from tasks.sync_feed import sync_feed
from backend.storage import Storage


@celery_app.task(name='tasks.schedule.schedule_due_feeds')
def schedule_due_feeds() -> int:
    count = 0
    for feed_id in Storage().list_due_feed_ids():
        sync_feed.delay(feed_id)
        count += 1
    return count

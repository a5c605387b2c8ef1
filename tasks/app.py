from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from backend.config import REDIS_URL, SYNC_INTERVAL_MINUTES

celery_app = Celery('feeds', broker=REDIS_URL, backend=REDIS_URL, include=['tasks.sync_feed', 'tasks.schedule'])

celery_app.conf.task_acks_late = True
celery_app.conf.worker_max_tasks_per_child = 100

# Beat schedule: look for due feeds every SYNC_INTERVAL_MINUTES
celery_app.conf.timezone = 'UTC'
celery_app.conf.beat_schedule = {
    'sync-due-feeds': {
        'task': 'tasks.schedule.schedule_due_feeds',
        'schedule': crontab(minute=f'*/{SYNC_INTERVAL_MINUTES}'),
    }
}

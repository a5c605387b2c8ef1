from __future__ import annotations

import os
from pathlib import Path


def _default_sqlite_url() -> str:
	project_root = Path(__file__).resolve().parents[1]
	data_dir = project_root / "data"
	data_dir.mkdir(parents=True, exist_ok=True)
	db_path = data_dir / "app.db"
	return f"sqlite:///{db_path}"


def _flag(name: str, default: str) -> bool:
	return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL") or _default_sqlite_url()
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

USER_AGENT = os.getenv("USER_AGENT", "FeedAggregator/1.0 (+https://github.com/feed-aggregator)")

# seconds
LOCATE_TIMEOUT = float(os.getenv("LOCATE_TIMEOUT", "8"))
PROBE_TIMEOUT = float(os.getenv("PROBE_TIMEOUT", "5"))
PARSE_TIMEOUT = float(os.getenv("PARSE_TIMEOUT", "10"))

# minutes
SYNC_INTERVAL_MINUTES = int(os.getenv("SYNC_INTERVAL_MINUTES", "15"))
DEFAULT_REFRESH_INTERVAL = int(os.getenv("DEFAULT_REFRESH_INTERVAL", "60"))

FAVICON_SERVICE = os.getenv("FAVICON_SERVICE", "https://www.google.com/s2/favicons?domain={domain}&sz=32")

SYNC_ON_CREATE = _flag("SYNC_ON_CREATE", "1")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

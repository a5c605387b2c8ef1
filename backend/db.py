from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import DATABASE_URL

# check_same_thread is needed for SQLite with threads (Flask dev server, sync workers)
_engine = create_engine(
	DATABASE_URL,
	echo=False,
	future=True,
	connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)

SessionLocal = sessionmaker(bind=_engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False)
Base = declarative_base()


def get_engine():
	return _engine


def get_session():
	return SessionLocal()


def init_db(engine=None) -> None:
	"""Create tables directly (SQLite and tests). Other databases go through alembic."""
	from . import models  # noqa: F401  register mappers

	Base.metadata.create_all(bind=engine or _engine)

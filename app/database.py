from datetime import datetime, timezone
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session
from app.config import get_settings


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _make_engine():
    settings = get_settings()
    kwargs = {"pool_pre_ping": True}
    if settings.DATABASE_URL.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(settings.DATABASE_URL, **kwargs)


class _LazyEngine:
    """Lazily creates the SQLAlchemy engine on first access."""

    def __init__(self):
        self._engine = None

    def _get(self):
        if self._engine is None:
            self._engine = _make_engine()
        return self._engine

    def connect(self):
        return self._get().connect()

    def dispose(self):
        if self._engine:
            self._engine.dispose()

    # Expose for Alembic / direct use
    def __getattr__(self, name):
        return getattr(self._get(), name)


engine = _LazyEngine()


@lru_cache()
def _get_session_factory() -> sessionmaker:
    # Rows are handed across session boundaries (bulk workers, service
    # return values), so attributes must survive commit.
    return sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=False, bind=engine._get()
    )


class _SessionFactory:
    """Callable returning a fresh Session; use as ``with SessionLocal() as db:``.

    Every call builds a new session, so the factory is safe to share between
    the request handlers and the bulk-import worker threads.
    """

    def __call__(self) -> Session:
        return _get_session_factory()()


SessionLocal = _SessionFactory()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

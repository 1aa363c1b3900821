"""Database engine & session utilities for the local fallback store.

The helper is deliberately minimal: sync engine + classic session maker.
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from voicenotes.config import settings
from voicenotes.db.base import Base

logger = logging.getLogger(__name__)


def build_engine(url: str, echo: bool = False):
    """Create an engine; in-memory SQLite shares one connection across threads."""
    parsed = make_url(url)
    kwargs = {"echo": echo, "future": True}
    if parsed.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


# ---------------------------------------------------------------------------
# Engine & session factory
# ---------------------------------------------------------------------------

logger.info("Creating database engine for %s", settings.DATABASE_URL.split('@')[-1])
engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


def create_tables(bind=None) -> None:
    """Create all tables if they do not yet exist. Harmless when they do."""
    # Importing the models registers them with Base.metadata.
    from voicenotes import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ensured")

"""Declarative base for the local fallback store's tables.

Models register themselves on import; :func:`voicenotes.db.database.create_tables`
imports :mod:`voicenotes.models` before calling ``create_all``.
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import declarative_base

# Stable constraint names so SQLite and Postgres schemas line up.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

Base = declarative_base(metadata=MetaData(naming_convention=NAMING_CONVENTION))

__all__ = ["Base", "NAMING_CONVENTION"]

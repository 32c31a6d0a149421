"""
Base class for the SQLAlchemy ORM models of app-owned tables.

Dynamic (user) tables are never mapped; they are reached through the
catalog reader and the generic executor.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import DeclarativeBase


# SQLite only auto-increments INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """Base class for all models."""

    pass

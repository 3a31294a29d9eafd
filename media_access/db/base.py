"""
SQLAlchemy Declarative Base
Shared base class, mixins and column types
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from media_access.core.clock import ensure_utc, utc_now


class UTCDateTime(TypeDecorator):
    """DateTime that always round-trips as timezone-aware UTC (SQLite drops tzinfo)"""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        return ensure_utc(value)


class StrictBoolean(TypeDecorator):
    """Boolean column that only accepts real bools; "true"/"false" strings are rejected"""

    impl = Boolean
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None or isinstance(value, bool):
            return value
        raise TypeError(f"Expected bool for boolean column, got {type(value).__name__}: {value!r}")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return bool(value)


class Base(DeclarativeBase):
    """Declarative base for all tables"""


class UUIDMixin:
    """UUID primary key"""

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    """Creation and update timestamps"""

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

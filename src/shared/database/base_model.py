"""
SQLAlchemy Declarative Base
All ORM models inherit from this
"""
from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Provides common columns:
    - id (UUID, primary key)
    - created_at (timestamptz, server default NOW())
    - updated_at (timestamptz, server default NOW(), onupdate NOW())

    The generic ``Uuid`` type maps to native UUID on PostgreSQL and to
    CHAR(32) on SQLite, so the same models back production and tests.
    """

    type_annotation_map = {
        UUID: Uuid(as_uuid=True),
        datetime: DateTime(timezone=True),
    }

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a datetime read back from the database to aware UTC.

    SQLite drops tzinfo on round-trip; values are always written as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

"""SQLAlchemy ORM models."""

import uuid
from datetime import datetime
from typing import Any

import uuid_utils as uuid7_lib
from sqlalchemy import DateTime, String, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid7() -> uuid.UUID:
    """Generate a UUIDv7 (time-ordered) for use as default PK value."""
    return uuid.UUID(bytes=uuid7_lib.uuid7().bytes)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class Store(Base):
    """One tenant store.

    ``limits`` and ``features`` are optional overrides on top of the tier
    preset; NULL means "use the preset".
    """

    __tablename__ = "stores"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=_uuid7)
    slug: Mapped[str] = mapped_column(String(63), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    email: Mapped[str | None] = mapped_column(String(320))
    tier: Mapped[str] = mapped_column(String(20), default="starter")
    status: Mapped[str] = mapped_column(String(20), default="active")
    limits: Mapped[dict[str, Any] | None] = mapped_column(JSONB)
    features: Mapped[list[Any] | None] = mapped_column(JSONB)
    subscription_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    auto_renew: Mapped[bool] = mapped_column(default=False)
    payment_status: Mapped[str] = mapped_column(String(20), default="current")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

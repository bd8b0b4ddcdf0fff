"""
Base model classes and mixins.

Mixins used by the authorization tables:
- UUIDMixin: UUID primary key
- TimestampMixin: created_at, updated_at
- AuditMixin: created_by, updated_by
- SoftDeleteMixin: deleted_at, deleted_by

The generic ``Uuid`` type maps to the native UUID column on PostgreSQL
and to CHAR(32) on SQLite, so the same models serve production and
the test database.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID as PyUUID, uuid4
from sqlalchemy import DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from assetdesk.utils.timezone import utc_now


class Base(DeclarativeBase):
    """Base class for all models."""

    # All datetimes are timezone-aware
    type_annotation_map = {
        datetime: DateTime(timezone=True),
        PyUUID: Uuid(),
    }

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary."""
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class UUIDMixin:
    """Mixin for UUID v4 primary key."""

    id: Mapped[PyUUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid4,
    )


class TimestampMixin:
    """
    Mixin for created_at and updated_at timestamps.

    Values are produced in Python so they are populated on the instance
    right after flush; the server default covers rows inserted by hand.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )


class AuditMixin:
    """
    Mixin for tracking who created/updated records.

    Note: updated_by must be set in the service layer since SQLAlchemy
    can't know the current user. ``None`` means the system itself
    (seeding, migrations).
    """

    created_by: Mapped[Optional[PyUUID]] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    updated_by: Mapped[Optional[PyUUID]] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )


class SoftDeleteMixin:
    """
    Mixin for soft delete functionality.

    Records referenced from audit history are never hard deleted.
    """

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
        index=True,
    )
    deleted_by: Mapped[Optional[PyUUID]] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    @property
    def is_deleted(self) -> bool:
        """Check if record is soft deleted."""
        return self.deleted_at is not None


class StandardMixin(UUIDMixin, TimestampMixin):
    """UUID primary key plus timestamps."""
    pass

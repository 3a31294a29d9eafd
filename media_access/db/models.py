"""
SQLAlchemy Database Models
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from media_access.core.clock import utc_now
from media_access.db.base import Base, StrictBoolean, TimestampMixin, UTCDateTime, UUIDMixin
from media_access.models.access import ResourceKey, ResourceRef, ResourceType


class MediaResource(UUIDMixin, TimestampMixin, Base):
    """Access-relevant fields of a video, image or document"""

    __tablename__ = "media_resources"
    __table_args__ = (
        UniqueConstraint("resource_type", "resource_id", name="uq_media_resource"),
    )

    resource_type: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    is_public: Mapped[bool] = mapped_column(StrictBoolean, nullable=False, default=False)
    group_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    def to_ref(self) -> ResourceRef:
        return ResourceRef(
            resource_type=ResourceType(self.resource_type),
            resource_id=self.resource_id,
            owner_user_id=self.owner_user_id,
            is_public=self.is_public,
            group_id=self.group_id,
        )


class GroupMember(UUIDMixin, TimestampMixin, Base):
    """A user's role inside a group"""

    __tablename__ = "group_members"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_member"),
    )

    group_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)


class AccessCodeRecord(UUIDMixin, TimestampMixin, Base):
    """Shareable access code; group-wide when group_id is set"""

    __tablename__ = "access_codes"

    code: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_by: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(StrictBoolean, nullable=False, default=True)
    group_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Relationships
    resources: Mapped[list["AccessCodeResource"]] = relationship(
        "AccessCodeResource",
        back_populates="access_code",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def resource_keys(self) -> list[ResourceKey]:
        return [
            ResourceKey(resource_type=ResourceType(r.resource_type), resource_id=r.resource_id)
            for r in self.resources
        ]


class AccessCodeResource(UUIDMixin, Base):
    """Resource linked to an individual access code"""

    __tablename__ = "access_code_resources"
    __table_args__ = (
        UniqueConstraint("access_code_id", "resource_type", "resource_id", name="uq_access_code_resource"),
    )

    access_code_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("access_codes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    resource_type: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False)

    access_code: Mapped["AccessCodeRecord"] = relationship(
        "AccessCodeRecord",
        back_populates="resources",
    )


class AccessAuditLog(UUIDMixin, Base):
    """Append-only record of one resolution"""

    __tablename__ = "access_audit_log"

    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now, index=True)
    requester: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    resource_type: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False)
    resource_owner_user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    resource_is_public: Mapped[bool] = mapped_column(StrictBoolean, nullable=False, default=False)
    resource_group_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    permission_requested: Mapped[str] = mapped_column(String(20), nullable=False)
    permission_granted: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    granted: Mapped[bool] = mapped_column(StrictBoolean, nullable=False, index=True)
    layer: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(String(100), nullable=False)
    # Plain string, not a foreign key: entries outlive hard-deleted codes
    access_code_used: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

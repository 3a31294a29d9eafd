"""
Access Repository
Query surface over resources, group memberships and access codes
"""

import uuid
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from media_access.core.logging import get_logger
from media_access.core.permissions import GroupRole
from media_access.db.models import (
    AccessCodeRecord,
    AccessCodeResource,
    GroupMember,
    MediaResource,
)
from media_access.models.access import ResourceKey, ResourceRef, ResourceType
from media_access.models.access_code import AccessCode, AccessCodeScope

logger = get_logger(__name__)


def _to_access_code(record: AccessCodeRecord) -> AccessCode:
    if record.group_id is not None:
        scope = AccessCodeScope.group_wide(record.group_id)
    else:
        scope = AccessCodeScope.individual(record.resource_keys())
    return AccessCode(
        id=record.id,
        code=record.code,
        description=record.description,
        created_by=record.created_by,
        expires_at=record.expires_at,
        is_active=record.is_active,
        scope=scope,
        usage_count=record.usage_count,
        last_used_at=record.last_used_at,
        created_at=record.created_at,
    )


class AccessRepository:
    """
    Persistence adapter used by the access layers and services

    Methods flush but never commit; the caller's transaction() decides
    whether the unit of work lands. Database errors propagate as-is and
    are turned into TransientException by that guard.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============================================
    # RESOURCES
    # ============================================

    async def _get_resource_row(
        self, resource_type: ResourceType, resource_id: str
    ) -> Optional[MediaResource]:
        result = await self.db.execute(
            select(MediaResource)
            .where(
                MediaResource.resource_type == ResourceType(resource_type).value,
                MediaResource.resource_id == resource_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_resource(
        self, resource_type: ResourceType, resource_id: str
    ) -> Optional[ResourceRef]:
        """Look up a resource by type and id"""
        row = await self._get_resource_row(resource_type, resource_id)
        return row.to_ref() if row else None

    async def save_resource(self, ref: ResourceRef) -> ResourceRef:
        """Insert a resource, or update owner/visibility/group of an existing one"""
        row = await self._get_resource_row(ref.resource_type, ref.resource_id)
        if row is None:
            row = MediaResource(
                resource_type=ref.resource_type.value,
                resource_id=ref.resource_id,
            )
            self.db.add(row)
        row.owner_user_id = ref.owner_user_id
        row.is_public = ref.is_public
        row.group_id = ref.group_id
        await self.db.flush()
        return row.to_ref()

    async def assign_resource_group(
        self, resource_type: ResourceType, resource_id: str, group_id: Optional[str]
    ) -> Optional[ResourceRef]:
        """Move a resource into a group (or out of any group with None)"""
        row = await self._get_resource_row(resource_type, resource_id)
        if row is None:
            return None
        row.group_id = group_id
        await self.db.flush()
        return row.to_ref()

    async def set_resource_visibility(
        self, resource_type: ResourceType, resource_id: str, is_public: bool
    ) -> Optional[ResourceRef]:
        row = await self._get_resource_row(resource_type, resource_id)
        if row is None:
            return None
        row.is_public = is_public
        await self.db.flush()
        return row.to_ref()

    async def list_group_resources(self, group_id: str) -> List[ResourceRef]:
        result = await self.db.execute(
            select(MediaResource)
            .where(MediaResource.group_id == group_id)
            .order_by(MediaResource.resource_type, MediaResource.resource_id)
        )
        return [row.to_ref() for row in result.scalars().all()]

    # ============================================
    # GROUP MEMBERSHIP
    # ============================================

    async def _get_member_row(self, group_id: str, user_id: str) -> Optional[GroupMember]:
        result = await self.db.execute(
            select(GroupMember).where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_member_role(self, group_id: str, user_id: str) -> Optional[GroupRole]:
        """Role of ``user_id`` in ``group_id``, or None when not a member"""
        row = await self._get_member_row(group_id, user_id)
        return GroupRole(row.role) if row else None

    async def add_member(self, group_id: str, user_id: str, role: GroupRole) -> None:
        """Add a membership; uniqueness of (group_id, user_id) is enforced by the table"""
        self.db.add(GroupMember(group_id=group_id, user_id=user_id, role=GroupRole(role).value))
        await self.db.flush()

    async def set_member_role(self, group_id: str, user_id: str, role: GroupRole) -> bool:
        row = await self._get_member_row(group_id, user_id)
        if row is None:
            return False
        row.role = GroupRole(role).value
        await self.db.flush()
        return True

    async def remove_member(self, group_id: str, user_id: str) -> bool:
        result = await self.db.execute(
            delete(GroupMember).where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
            )
        )
        return result.rowcount > 0

    async def list_members(self, group_id: str) -> List[tuple[str, GroupRole]]:
        result = await self.db.execute(
            select(GroupMember.user_id, GroupMember.role)
            .where(GroupMember.group_id == group_id)
            .order_by(GroupMember.user_id)
        )
        return [(user_id, GroupRole(role)) for user_id, role in result.all()]

    async def group_exists(self, group_id: str) -> bool:
        result = await self.db.execute(
            select(GroupMember.id).where(GroupMember.group_id == group_id).limit(1)
        )
        return result.first() is not None

    # ============================================
    # ACCESS CODES
    # ============================================

    async def _get_code_row(self, code: str) -> Optional[AccessCodeRecord]:
        result = await self.db.execute(
            select(AccessCodeRecord)
            .where(AccessCodeRecord.code == code)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_access_code(self, code: str) -> Optional[AccessCode]:
        """Look up an access code by its string"""
        row = await self._get_code_row(code)
        return _to_access_code(row) if row else None

    async def insert_access_code(
        self,
        code: str,
        created_by: str,
        scope: AccessCodeScope,
        expires_at: Optional[datetime] = None,
        description: str = "",
    ) -> AccessCode:
        """Insert a code; raises IntegrityError when the string is taken"""
        row = AccessCodeRecord(
            code=code,
            description=description,
            created_by=created_by,
            expires_at=expires_at,
            is_active=True,
            group_id=scope.group_id,
            usage_count=0,
        )
        row.resources = [
            AccessCodeResource(resource_type=key.resource_type.value, resource_id=key.resource_id)
            for key in _sorted_keys(scope.resources)
        ]
        self.db.add(row)
        await self.db.flush()
        return _to_access_code(row)

    async def deactivate_access_code(self, code_id: uuid.UUID) -> None:
        """Set is_active to false. There is no way back to true."""
        await self.db.execute(
            update(AccessCodeRecord)
            .where(AccessCodeRecord.id == code_id)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )

    async def delete_access_code(self, code_id: uuid.UUID) -> None:
        await self.db.execute(
            delete(AccessCodeResource).where(AccessCodeResource.access_code_id == code_id)
        )
        await self.db.execute(
            delete(AccessCodeRecord)
            .where(AccessCodeRecord.id == code_id)
            .execution_options(synchronize_session=False)
        )

    async def list_access_codes(self, created_by: str) -> List[AccessCode]:
        result = await self.db.execute(
            select(AccessCodeRecord)
            .where(AccessCodeRecord.created_by == created_by)
            .order_by(AccessCodeRecord.created_at.desc(), AccessCodeRecord.code)
            .execution_options(populate_existing=True)
        )
        return [_to_access_code(row) for row in result.scalars().all()]

    async def increment_code_usage(self, code_id: uuid.UUID, used_at: datetime) -> None:
        """
        Atomic usage bump

        A single UPDATE on the counter columns only; validity fields are
        never read or written here.
        """
        await self.db.execute(
            update(AccessCodeRecord)
            .where(AccessCodeRecord.id == code_id)
            .values(
                usage_count=AccessCodeRecord.usage_count + 1,
                last_used_at=used_at,
            )
            .execution_options(synchronize_session=False)
        )


def _sorted_keys(keys: Iterable[ResourceKey]) -> List[ResourceKey]:
    return sorted(keys, key=str)

"""
Audit Logger
Append-only trail of access resolutions and read queries over it
"""

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from media_access.core.clock import utc_now
from media_access.core.config import settings
from media_access.core.logging import get_logger
from media_access.core.permissions import AccessLayer, Permission
from media_access.db.models import AccessAuditLog
from media_access.models.access import (
    AccessDecision,
    AuditEntry,
    AuditStats,
    ResourceRef,
    ResourceType,
)

logger = get_logger(__name__)


def _to_entry(row: AccessAuditLog) -> AuditEntry:
    return AuditEntry(
        timestamp=row.timestamp,
        requester=row.requester,
        resource_ref=ResourceRef(
            resource_type=ResourceType(row.resource_type),
            resource_id=row.resource_id,
            owner_user_id=row.resource_owner_user_id,
            is_public=row.resource_is_public,
            group_id=row.resource_group_id,
        ),
        permission_requested=Permission.parse(row.permission_requested),
        decision=AccessDecision(
            granted=row.granted,
            layer=AccessLayer(row.layer),
            permission_granted=Permission.parse(row.permission_granted) if row.permission_granted else None,
            reason=row.reason,
        ),
        access_code_used=row.access_code_used,
    )


class AuditLogger:
    """
    Writes and reads the access audit trail

    record() only stages the row; it lands when the surrounding
    transaction commits, together with the decision it describes. The
    trail is never updated or deleted from here.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(self, entry: AuditEntry) -> None:
        """Stage one audit row and flush it so a broken sink fails now"""
        ref = entry.resource_ref
        decision = entry.decision
        self.db.add(
            AccessAuditLog(
                timestamp=entry.timestamp,
                requester=entry.requester,
                resource_type=ref.resource_type.value,
                resource_id=ref.resource_id,
                resource_owner_user_id=ref.owner_user_id,
                resource_is_public=ref.is_public,
                resource_group_id=ref.group_id,
                permission_requested=entry.permission_requested.label,
                permission_granted=decision.permission_granted.label if decision.permission_granted else None,
                granted=decision.granted,
                layer=decision.layer.value,
                reason=decision.reason,
                access_code_used=entry.access_code_used,
            )
        )
        await self.db.flush()
        logger.debug(
            f"Audit: {'granted' if decision.granted else 'denied'} "
            f"{entry.permission_requested.label} on {ref} ({decision.reason})"
        )

    async def _fetch(self, *conditions, limit: Optional[int] = None) -> List[AuditEntry]:
        stmt = (
            select(AccessAuditLog)
            .where(*conditions)
            .order_by(AccessAuditLog.timestamp.desc())
            .limit(limit or settings.AUDIT_QUERY_LIMIT)
        )
        result = await self.db.execute(stmt)
        return [_to_entry(row) for row in result.scalars().all()]

    async def entries_for_resource(
        self,
        resource_type: ResourceType,
        resource_id: str,
        limit: Optional[int] = None,
    ) -> List[AuditEntry]:
        """Most recent entries for one resource, newest first"""
        return await self._fetch(
            AccessAuditLog.resource_type == ResourceType(resource_type).value,
            AccessAuditLog.resource_id == resource_id,
            limit=limit,
        )

    async def entries_for_requester(self, requester: str, limit: Optional[int] = None) -> List[AuditEntry]:
        return await self._fetch(AccessAuditLog.requester == requester, limit=limit)

    async def denied_since(self, since: datetime, limit: Optional[int] = None) -> List[AuditEntry]:
        """Denials at or after ``since``"""
        return await self._fetch(
            AccessAuditLog.granted.is_(False),
            AccessAuditLog.timestamp >= since,
            limit=limit,
        )

    async def _stats(self, *conditions) -> AuditStats:
        result = await self.db.execute(
            select(AccessAuditLog.granted, func.count())
            .where(*conditions)
            .group_by(AccessAuditLog.granted)
        )
        counts = {bool(granted): count for granted, count in result.all()}
        granted = counts.get(True, 0)
        denied = counts.get(False, 0)
        return AuditStats(
            total_attempts=granted + denied,
            granted_count=granted,
            denied_count=denied,
        )

    async def requester_stats(self, requester: str) -> AuditStats:
        return await self._stats(AccessAuditLog.requester == requester)

    async def resource_stats(self, resource_type: ResourceType, resource_id: str) -> AuditStats:
        return await self._stats(
            AccessAuditLog.resource_type == ResourceType(resource_type).value,
            AccessAuditLog.resource_id == resource_id,
        )

    async def recent_code_failures(self, code: str, window_minutes: int = 15) -> int:
        """Denied resolutions that presented ``code`` within the window"""
        since = utc_now() - timedelta(minutes=window_minutes)
        result = await self.db.execute(
            select(func.count())
            .select_from(AccessAuditLog)
            .where(
                AccessAuditLog.access_code_used == code,
                AccessAuditLog.granted.is_(False),
                AccessAuditLog.timestamp >= since,
            )
        )
        return result.scalar_one()

"""
Access Resolver
Runs every access layer, reconciles them into one decision and audits it
"""

import asyncio
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from media_access.core.clock import Clock, utc_now
from media_access.core.config import settings
from media_access.core.exceptions import AccessDeniedException, NotFoundException, TransientException
from media_access.core.logging import get_logger
from media_access.core.permissions import AccessLayer, GroupRole, Permission, satisfies
from media_access.db.repository import AccessRepository
from media_access.db.session import transaction
from media_access.models.access import (
    AccessDecision,
    AuditEntry,
    DenialReason,
    ResourceRef,
    ResourceType,
)
from media_access.services.access.audit import AuditLogger
from media_access.services.access.base import AccessRequest, BaseAccessLayer, LayerResult
from media_access.services.access.layers import (
    AccessCodeLayer,
    GroupMembershipLayer,
    OwnershipLayer,
    PublicVisibilityLayer,
)

logger = get_logger(__name__)


def aggregate(results: Sequence[LayerResult], requested: Permission) -> AccessDecision:
    """
    Reconcile layer results into one decision

    The best permission among non-abstaining layers wins; ties go to the
    layer with the higher precedence (owner, group role, access code,
    public). A denial carries the access-code failure reason whenever a
    presented code was rejected, whatever else contributed; otherwise it is
    no_applicable_layer or insufficient_permission.
    """
    contributions = [r for r in results if not r.abstained]
    code_failure = next((r.denial_reason for r in results if r.denial_reason), None)

    if not contributions:
        reason = code_failure or DenialReason.NO_APPLICABLE_LAYER
        return AccessDecision(
            granted=False,
            layer=AccessLayer.NONE,
            permission_granted=None,
            reason=reason.value,
        )

    best = max(contributions, key=lambda r: (r.permission.level, r.layer.precedence))
    granted = satisfies(best.permission, requested)
    if granted:
        reason = f"granted_via_{best.layer.value}"
    else:
        reason = (code_failure or DenialReason.INSUFFICIENT_PERMISSION).value
    return AccessDecision(
        granted=granted,
        layer=best.layer,
        permission_granted=best.permission,
        reason=reason,
    )


class AccessResolver:
    """
    Single entry point for permission checks

    One resolve() is one unit of work: all four layers are consulted, the
    decision is aggregated, the audit row and any access-code usage bump
    are committed together, and only then is the decision returned. A
    store failure, timeout or cancellation rolls everything back and no
    audit row is written.

    The resolver owns the session's transaction boundaries; do not call it
    with uncommitted work of your own pending on the same session.
    """

    def __init__(
        self,
        db: AsyncSession,
        repository: Optional[AccessRepository] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Clock = utc_now,
        timeout: Optional[float] = None,
    ):
        self.db = db
        self.repository = repository or AccessRepository(db)
        self.audit_logger = audit_logger or AuditLogger(db)
        self.clock = clock
        self.timeout = timeout if timeout is not None else settings.RESOLUTION_TIMEOUT_SECONDS
        self.layers: List[BaseAccessLayer] = [
            OwnershipLayer(),
            GroupMembershipLayer(self.repository),
            AccessCodeLayer(self.repository),
            PublicVisibilityLayer(),
        ]

    async def resolve(
        self,
        requester: Optional[str],
        presented_code: Optional[str],
        resource: ResourceRef,
        requested: Permission,
    ) -> AccessDecision:
        """
        Decide whether ``requested`` is granted on ``resource``

        Args:
            requester: Authenticated user id, None for anonymous requests
            presented_code: Access code supplied with the request, if any
            resource: The resource being accessed
            requested: Permission the caller wants to exercise

        Returns:
            AccessDecision (granted or denied, always with a reason)

        Raises:
            TransientException: If a store or the audit sink failed or the
                resolution timed out; no decision was reached
        """
        request = AccessRequest(
            requester=requester or None,
            presented_code=presented_code or None,
            resource=resource,
            requested=requested,
            now=self.clock(),
        )
        return await self._run(self._resolve(request), "resolve")

    async def _run(self, coro, operation: str):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"{operation} timed out after {self.timeout}s")
            raise TransientException(message="Access resolution timed out", operation=operation) from e

    async def _resolve(self, request: AccessRequest) -> AccessDecision:
        async with transaction(self.db, "resolve"):
            results = [await layer.check(request) for layer in self.layers]
            decision = aggregate(results, request.requested)

            await self.audit_logger.record(
                AuditEntry(
                    timestamp=request.now,
                    requester=request.requester,
                    resource_ref=request.resource,
                    permission_requested=request.requested,
                    decision=decision,
                    access_code_used=request.presented_code,
                )
            )

            for result in results:
                if result.counted_code_id is not None:
                    await self.repository.increment_code_usage(result.counted_code_id, request.now)

        self._log_decision(request, decision)
        return decision

    def _log_decision(self, request: AccessRequest, decision: AccessDecision) -> None:
        who = request.requester or "anonymous"
        if decision.granted:
            logger.debug(
                f"Granted {request.requested.label} on {request.resource} to {who} via {decision.layer.value}"
            )
        else:
            logger.info(
                f"Denied {request.requested.label} on {request.resource} to {who} ({decision.reason})"
            )

    async def resolve_reference(
        self,
        requester: Optional[str],
        presented_code: Optional[str],
        resource_type: ResourceType,
        resource_id: str,
        requested: Permission,
    ) -> AccessDecision:
        """
        Resolve against a resource looked up by type and id

        Raises:
            NotFoundException: If the resource does not exist (audited
                with reason resource_not_found)
            TransientException: As for resolve()
        """
        resource_type = ResourceType(resource_type)
        now = self.clock()

        async def lookup_and_resolve() -> Optional[AccessDecision]:
            async with transaction(self.db, "resolve_reference"):
                resource = await self.repository.get_resource(resource_type, resource_id)
                if resource is None:
                    await self.audit_logger.record(
                        AuditEntry(
                            timestamp=now,
                            requester=requester or None,
                            resource_ref=ResourceRef(resource_type=resource_type, resource_id=resource_id),
                            permission_requested=requested,
                            decision=AccessDecision(
                                granted=False,
                                reason=DenialReason.RESOURCE_NOT_FOUND.value,
                            ),
                            access_code_used=presented_code or None,
                        )
                    )
                    return None
            return await self._resolve(
                AccessRequest(
                    requester=requester or None,
                    presented_code=presented_code or None,
                    resource=resource,
                    requested=requested,
                    now=now,
                )
            )

        decision = await self._run(lookup_and_resolve(), "resolve_reference")
        if decision is None:
            logger.info(f"Access check on missing {resource_type.value}:{resource_id}")
            raise NotFoundException(resource_type.value.capitalize())
        return decision

    async def require(
        self,
        requester: Optional[str],
        presented_code: Optional[str],
        resource: ResourceRef,
        requested: Permission,
    ) -> AccessDecision:
        """Resolve and raise AccessDeniedException unless granted"""
        decision = await self.resolve(requester, presented_code, resource, requested)
        if not decision.granted:
            raise AccessDeniedException(reason=decision.reason, user_message=decision.user_message)
        return decision

    async def check_many(
        self,
        requester: Optional[str],
        presented_code: Optional[str],
        resources: Iterable[ResourceRef],
        requested: Permission,
    ) -> List[AccessDecision]:
        """Resolve the same request against several resources, one audit entry each"""
        return [
            await self.resolve(requester, presented_code, resource, requested)
            for resource in resources
        ]

    async def effective_permission(
        self,
        requester: Optional[str],
        presented_code: Optional[str],
        resource: ResourceRef,
    ) -> Optional[Permission]:
        """Best permission any layer grants, or None"""
        decision = await self.resolve(requester, presented_code, resource, Permission.READ)
        return decision.permission_granted

    async def group_role(self, requester: Optional[str], resource: ResourceRef) -> Optional[GroupRole]:
        """
        Requester's role in the resource's group

        For callers applying the Contributor rule: a CONTRIBUTOR may only
        edit or delete resources whose owner_user_id is the requester.
        """
        if requester is None or resource.group_id is None:
            return None
        async with transaction(self.db, "group_role"):
            return await self.repository.get_member_role(resource.group_id, requester)

"""
Access Code Registry
Create, validate, revoke, delete and list shareable access codes
"""

import re
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from media_access.core.clock import Clock, ensure_utc, utc_now
from media_access.core.config import settings
from media_access.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from media_access.core.logging import get_logger
from media_access.core.permissions import Permission, role_ceiling, satisfies
from media_access.db.repository import AccessRepository
from media_access.db.session import transaction
from media_access.models.access_code import (
    AccessCode,
    AccessCodeScope,
    ScopeKind,
    ValidationOutcome,
    validate_access_code,
)
from media_access.services.access.resolver import AccessResolver

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s")


class AccessCodeRegistry:
    """
    Lifecycle of access codes

    Authority over a code (to create, revoke or delete it) is decided by
    running the resolver with Admin against every resource the code
    covers. For a group-wide code that is every resource currently in the
    group; an empty group falls back to the caller's role ceiling there.
    """

    def __init__(
        self,
        db: AsyncSession,
        resolver: Optional[AccessResolver] = None,
        repository: Optional[AccessRepository] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.repository = repository or AccessRepository(db)
        self.resolver = resolver or AccessResolver(db, repository=self.repository, clock=clock)
        self.clock = clock

    # ============================================
    # VALIDATION
    # ============================================

    def _check_code_format(self, code: str) -> str:
        if not isinstance(code, str) or not code.strip():
            raise ValidationException(message="Access code must not be empty")
        if _WHITESPACE.search(code):
            raise ValidationException(
                message="Access code must not contain whitespace",
                details={"code": code},
            )
        if len(code) > settings.ACCESS_CODE_MAX_LENGTH:
            raise ValidationException(
                message="Access code is too long",
                details={"max_length": settings.ACCESS_CODE_MAX_LENGTH},
            )
        return code

    async def validate(self, code: str, now: Optional[datetime] = None) -> ValidationOutcome:
        """Check a code exists, is active and has not expired"""
        async with transaction(self.db, "validate_access_code"):
            access_code = await self.repository.get_access_code(code)
        return validate_access_code(access_code, ensure_utc(now) or self.clock())

    # ============================================
    # AUTHORITY
    # ============================================

    async def _holds_admin_over_scope(
        self, requester: str, scope: AccessCodeScope, strict: bool = False
    ) -> bool:
        if scope.kind == ScopeKind.INDIVIDUAL:
            for key in sorted(scope.resources, key=str):
                async with transaction(self.db, "load_resource"):
                    resource = await self.repository.get_resource(key.resource_type, key.resource_id)
                if resource is None:
                    if not strict:
                        return False
                    raise NotFoundException(key.resource_type.value.capitalize(), details={"resource": str(key)})
                decision = await self.resolver.resolve(requester, None, resource, Permission.ADMIN)
                if not decision.granted:
                    return False
            return True

        async with transaction(self.db, "load_group"):
            resources = await self.repository.list_group_resources(scope.group_id)
            role = await self.repository.get_member_role(scope.group_id, requester)
        if not resources:
            return role is not None and satisfies(role_ceiling(role), Permission.ADMIN)
        for resource in resources:
            decision = await self.resolver.resolve(requester, None, resource, Permission.ADMIN)
            if not decision.granted:
                return False
        return True

    async def _authorize_management(self, access_code: AccessCode, requester: str, action: str) -> None:
        if requester and requester == access_code.created_by:
            return
        if requester and await self._holds_admin_over_scope(requester, access_code.scope):
            return
        logger.warning(f"User {requester} refused {action} on access code {access_code.code}")
        raise ForbiddenException(message=f"Not allowed to {action} this access code")

    async def _load(self, code: str) -> AccessCode:
        async with transaction(self.db, "load_access_code"):
            access_code = await self.repository.get_access_code(code)
        if access_code is None:
            raise NotFoundException("Access code")
        return access_code

    # ============================================
    # LIFECYCLE
    # ============================================

    async def create(
        self,
        code: str,
        creator: str,
        scope: AccessCodeScope,
        expires_at: Optional[datetime] = None,
        description: str = "",
    ) -> AccessCode:
        """
        Create an access code

        Args:
            code: The code string; unique and immutable once created
            creator: Authenticated user creating the code
            scope: Individual resources or a whole group
            expires_at: Optional expiry; None never expires
            description: Free-form note

        Returns:
            The stored AccessCode

        Raises:
            ValidationException: Malformed code string or missing creator
            NotFoundException: A linked resource does not exist
            ForbiddenException: Creator lacks Admin over the scope
            ConflictException: The code string is already taken
        """
        code = self._check_code_format(code)
        if not creator:
            raise ValidationException(message="Access code creator is required")

        if not await self._holds_admin_over_scope(creator, scope, strict=True):
            logger.warning(f"User {creator} tried to share resources they do not administer")
            raise ForbiddenException(message="Not allowed to share these resources")

        async with transaction(self.db, "create_access_code"):
            if await self.repository.get_access_code(code) is not None:
                raise ConflictException(message="Access code already taken", details={"code": code})
            try:
                access_code = await self.repository.insert_access_code(
                    code=code,
                    created_by=creator,
                    scope=scope,
                    expires_at=ensure_utc(expires_at),
                    description=description or "",
                )
            except IntegrityError:
                raise ConflictException(message="Access code already taken", details={"code": code})

        logger.info(
            f"Access code {code} created by {creator} "
            f"({scope.kind.value}, {len(scope.resources) or scope.group_id})"
        )
        return access_code

    async def get(self, code: str) -> AccessCode:
        return await self._load(code)

    async def revoke(self, code: str, requester: str) -> AccessCode:
        """
        Deactivate a code for good

        Raises:
            NotFoundException: Unknown code
            ForbiddenException: Requester is neither the creator nor an
                admin of everything the code covers
        """
        access_code = await self._load(code)
        await self._authorize_management(access_code, requester, "revoke")

        if access_code.is_active:
            async with transaction(self.db, "revoke_access_code"):
                await self.repository.deactivate_access_code(access_code.id)
            logger.info(f"Access code {code} revoked by {requester}")

        return access_code.model_copy(update={"is_active": False})

    async def delete(self, code: str, requester: str) -> None:
        """Hard-delete a code and its resource links; audit entries keep the code string"""
        access_code = await self._load(code)
        await self._authorize_management(access_code, requester, "delete")

        async with transaction(self.db, "delete_access_code"):
            await self.repository.delete_access_code(access_code.id)
        logger.info(f"Access code {code} deleted by {requester}")

    async def list_for_owner(self, user_id: str) -> List[AccessCode]:
        """Codes created by ``user_id``, newest first"""
        async with transaction(self.db, "list_access_codes"):
            return await self.repository.list_access_codes(user_id)

"""
Access Code Models
Shareable codes, their scope, and request/response schemas
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Union

from pydantic import BaseModel, Field, StrictBool, model_validator

from media_access.models.access import DenialReason, ResourceKey, ResourceRef


class ScopeKind(str, Enum):
    """What an access code covers"""

    INDIVIDUAL = "individual"
    GROUP_WIDE = "group_wide"


class AccessCodeScope(BaseModel):
    """
    Coverage of an access code

    An individual scope is a fixed set of resources chosen at creation.
    A group-wide scope covers whatever resources belong to the group at
    the moment the code is checked.
    """

    kind: ScopeKind
    resources: FrozenSet[ResourceKey] = frozenset()
    group_id: Optional[str] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_shape(self) -> "AccessCodeScope":
        if self.kind == ScopeKind.INDIVIDUAL:
            if not self.resources:
                raise ValueError("individual scope must link at least one resource")
            if self.group_id is not None:
                raise ValueError("individual scope cannot name a group")
        else:
            if not self.group_id:
                raise ValueError("group-wide scope requires a group_id")
            if self.resources:
                raise ValueError("group-wide scope cannot list resources")
        return self

    @classmethod
    def individual(cls, resources: Iterable[Union[ResourceKey, ResourceRef]]) -> "AccessCodeScope":
        keys = frozenset(r.key if isinstance(r, ResourceRef) else r for r in resources)
        return cls(kind=ScopeKind.INDIVIDUAL, resources=keys)

    @classmethod
    def group_wide(cls, group_id: str) -> "AccessCodeScope":
        return cls(kind=ScopeKind.GROUP_WIDE, group_id=group_id)

    def covers(self, resource: ResourceRef) -> bool:
        if self.kind == ScopeKind.INDIVIDUAL:
            return resource.key in self.resources
        # A resource outside any group can never match a group-wide code
        return resource.group_id is not None and resource.group_id == self.group_id


class AccessCode(BaseModel):
    """A shareable access code"""

    id: uuid.UUID
    code: str
    description: str = ""
    created_by: str
    expires_at: Optional[datetime] = None
    is_active: StrictBool = True
    scope: AccessCodeScope
    usage_count: int = 0
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def status(self, now: datetime) -> str:
        if not self.is_active:
            return "revoked"
        if self.is_expired(now):
            return "expired"
        return "active"


class ValidationOutcome(BaseModel):
    """Result of checking a presented code's existence, active flag and expiry"""

    valid: bool
    reason: Optional[DenialReason] = None
    access_code: Optional[AccessCode] = None


def validate_access_code(access_code: Optional[AccessCode], now: datetime) -> ValidationOutcome:
    """
    Existence, active flag and expiry, in that order

    Scope is checked separately against the resource being accessed.
    """
    if access_code is None or not access_code.is_active:
        return ValidationOutcome(valid=False, reason=DenialReason.CODE_NOT_FOUND_OR_INACTIVE)
    if access_code.is_expired(now):
        return ValidationOutcome(valid=False, reason=DenialReason.CODE_EXPIRED, access_code=access_code)
    return ValidationOutcome(valid=True, access_code=access_code)


# ============================================
# API SCHEMAS
# ============================================

class CreateAccessCodeRequest(BaseModel):
    """Request model for creating an access code"""
    code: str = Field(..., description="Unique code string")
    description: str = Field("", max_length=1000, description="Free-form description")
    expires_at: Optional[datetime] = Field(None, description="Expiry timestamp (ISO 8601)")
    resources: List[ResourceKey] = Field(default_factory=list, description="Resources for an individual code")
    group_id: Optional[str] = Field(None, description="Group for a group-wide code")

    def to_scope(self) -> AccessCodeScope:
        if self.group_id is not None:
            if self.resources:
                raise ValueError("a code is either group-wide or lists resources, not both")
            return AccessCodeScope.group_wide(self.group_id)
        return AccessCodeScope.individual(self.resources)


class AccessCodeResponse(BaseModel):
    """Response model for an access code"""
    code: str
    description: str
    created_by: str
    scope: ScopeKind
    group_id: Optional[str] = None
    resources: List[ResourceKey] = []
    expires_at: Optional[datetime] = None
    is_active: bool
    status: str
    usage_count: int
    created_at: Optional[datetime] = None

    @classmethod
    def from_access_code(cls, access_code: AccessCode, now: datetime) -> "AccessCodeResponse":
        return cls(
            code=access_code.code,
            description=access_code.description,
            created_by=access_code.created_by,
            scope=access_code.scope.kind,
            group_id=access_code.scope.group_id,
            resources=sorted(access_code.scope.resources, key=str),
            expires_at=access_code.expires_at,
            is_active=access_code.is_active,
            status=access_code.status(now),
            usage_count=access_code.usage_count,
            created_at=access_code.created_at,
        )


class AccessCodeListResponse(BaseModel):
    """Response model for listing a user's access codes"""
    access_codes: List[AccessCodeResponse]

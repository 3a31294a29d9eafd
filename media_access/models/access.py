"""
Access Models
Resource references, access decisions and audit entries
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, StrictBool

from media_access.core.permissions import AccessLayer, Permission, satisfies


class ResourceType(str, Enum):
    """Kinds of protected media"""

    VIDEO = "video"
    IMAGE = "image"
    DOCUMENT = "document"


class DenialReason(str, Enum):
    """Reason codes recorded when a resolution does not grant access"""

    NO_APPLICABLE_LAYER = "no_applicable_layer"
    INSUFFICIENT_PERMISSION = "insufficient_permission"
    CODE_NOT_FOUND_OR_INACTIVE = "code_not_found_or_inactive"
    CODE_EXPIRED = "code_expired"
    CODE_SCOPE_MISMATCH = "code_scope_mismatch"
    RESOURCE_NOT_FOUND = "resource_not_found"


CODE_DENIAL_REASONS = frozenset(
    {
        DenialReason.CODE_NOT_FOUND_OR_INACTIVE.value,
        DenialReason.CODE_EXPIRED.value,
        DenialReason.CODE_SCOPE_MISMATCH.value,
    }
)


class ResourceKey(BaseModel):
    """Identity of a resource, without its mutable attributes"""

    resource_type: ResourceType
    resource_id: str = Field(min_length=1)

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.resource_type.value}:{self.resource_id}"


class ResourceRef(BaseModel):
    """The protected thing, as the access layers see it"""

    resource_type: ResourceType
    resource_id: str = Field(min_length=1)
    owner_user_id: Optional[str] = None
    is_public: StrictBool = False
    group_id: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(resource_type=self.resource_type, resource_id=self.resource_id)

    def __str__(self) -> str:
        return str(self.key)


class AccessDecision(BaseModel):
    """Outcome of one resolution"""

    granted: bool
    layer: AccessLayer = AccessLayer.NONE
    permission_granted: Optional[Permission] = Field(
        default=None,
        description="Best permission any layer contributed; None when no layer applied",
    )
    reason: str

    model_config = {"frozen": True}

    def allows(self, permission: Permission) -> bool:
        """Whether this decision would also cover ``permission``"""
        if self.permission_granted is None:
            return False
        return satisfies(self.permission_granted, permission)

    @property
    def user_message(self) -> str:
        """Outward-facing message; never names the layer or owner check that failed"""
        if self.granted:
            return "Access granted"
        if self.reason in CODE_DENIAL_REASONS:
            return "Invalid or expired access code"
        return "Access denied"


class AuditEntry(BaseModel):
    """One resolution outcome, as written to the audit trail"""

    timestamp: datetime
    requester: Optional[str] = None
    resource_ref: ResourceRef
    permission_requested: Permission
    decision: AccessDecision
    access_code_used: Optional[str] = None

    @property
    def is_security_event(self) -> bool:
        """Every denial is a security event"""
        return not self.decision.granted

    @property
    def is_suspicious(self) -> bool:
        """A rejected access code: expired, unknown, revoked or out of scope"""
        return self.decision.reason in CODE_DENIAL_REASONS


class AuditStats(BaseModel):
    """Granted/denied counts over a slice of the audit trail"""

    total_attempts: int = 0
    granted_count: int = 0
    denied_count: int = 0

    @property
    def denial_rate(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.denied_count / self.total_attempts

    @property
    def is_suspicious(self) -> bool:
        """Mostly denials over more than a handful of attempts"""
        return self.denial_rate > 0.5 and self.denied_count > 10


class AccessCheckResponse(BaseModel):
    """Response model for an access check"""
    granted: bool = Field(..., description="Whether the requested permission is granted")
    permission: Optional[str] = Field(None, description="Requested permission when granted")
    message: str = Field(..., description="Generic outcome message")

"""
Access Services
Layered access decisions, access-code lifecycle, audit trail and groups
"""

from media_access.services.access.audit import AuditLogger
from media_access.services.access.base import AccessRequest, BaseAccessLayer, LayerResult
from media_access.services.access.groups import GroupMembershipService
from media_access.services.access.layers import (
    AccessCodeLayer,
    GroupMembershipLayer,
    OwnershipLayer,
    PublicVisibilityLayer,
)
from media_access.services.access.registry import AccessCodeRegistry
from media_access.services.access.resolver import AccessResolver, aggregate

__all__ = [
    # Entry points
    "AccessResolver",
    "AccessCodeRegistry",
    "AuditLogger",
    "GroupMembershipService",
    "aggregate",
    # Layers
    "BaseAccessLayer",
    "OwnershipLayer",
    "GroupMembershipLayer",
    "AccessCodeLayer",
    "PublicVisibilityLayer",
    # Models
    "AccessRequest",
    "LayerResult",
]

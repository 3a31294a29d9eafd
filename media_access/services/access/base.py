"""
Base Access Layer Interface
Abstract base class and result types for authorization layers
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from media_access.core.logging import get_logger
from media_access.core.permissions import AccessLayer, Permission
from media_access.models.access import DenialReason, ResourceRef

logger = get_logger(__name__)


@dataclass(frozen=True)
class AccessRequest:
    """Everything one resolution is computed from"""

    requester: Optional[str]
    presented_code: Optional[str]
    resource: ResourceRef
    requested: Permission
    now: datetime


@dataclass(frozen=True)
class LayerResult:
    """
    What a single layer contributed

    ``permission`` is None when the layer abstained. ``denial_reason`` is
    only set by the access-code layer when a presented code failed
    validation. ``counted_code_id`` names a code whose usage counter
    should be bumped once the decision is committed.
    """

    layer: AccessLayer
    permission: Optional[Permission] = None
    detail: str = ""
    denial_reason: Optional[DenialReason] = None
    counted_code_id: Optional[uuid.UUID] = None

    @property
    def abstained(self) -> bool:
        return self.permission is None

    @classmethod
    def abstain(cls, layer: AccessLayer, detail: str = "", denial_reason: Optional[DenialReason] = None) -> "LayerResult":
        return cls(layer=layer, detail=detail, denial_reason=denial_reason)


class BaseAccessLayer(ABC):
    """
    Abstract base class for authorization layers

    Layers grant or abstain, they never deny and never raise for an
    authorization outcome. Store faults from lookups propagate unchanged
    so the resolver can fail the whole resolution.
    """

    layer: AccessLayer = AccessLayer.NONE

    def applies_to(self, request: AccessRequest) -> bool:
        """Whether the layer has the inputs it needs for this request"""
        return True

    @abstractmethod
    async def evaluate(self, request: AccessRequest) -> LayerResult:
        """
        Evaluate the layer for one request

        Args:
            request: The resolution inputs

        Returns:
            LayerResult, abstaining when the layer has nothing to grant
        """
        pass

    async def check(self, request: AccessRequest) -> LayerResult:
        """Evaluate, or abstain without any lookup when inputs are missing"""
        if not self.applies_to(request):
            return LayerResult.abstain(self.layer, "skipped")
        result = await self.evaluate(request)
        logger.debug(
            f"{self.layer.value} layer on {request.resource}: "
            f"{'abstained' if result.abstained else result.permission.label}"
        )
        return result

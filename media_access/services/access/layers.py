"""
Access Layers
Ownership, group membership, access code and public visibility
"""

from media_access.core.permissions import AccessLayer, Permission, role_ceiling
from media_access.db.repository import AccessRepository
from media_access.models.access import DenialReason
from media_access.models.access_code import validate_access_code
from media_access.services.access.base import AccessRequest, BaseAccessLayer, LayerResult

# Fixed ceilings for the two layers that do not depend on who is asking
ACCESS_CODE_CEILING = Permission.DOWNLOAD
PUBLIC_CEILING = Permission.DOWNLOAD


class OwnershipLayer(BaseAccessLayer):
    """The owner of a resource holds Admin on it"""

    layer = AccessLayer.OWNER

    def applies_to(self, request: AccessRequest) -> bool:
        return request.requester is not None

    async def evaluate(self, request: AccessRequest) -> LayerResult:
        owner = request.resource.owner_user_id
        if owner is not None and request.requester == owner:
            return LayerResult(layer=self.layer, permission=Permission.ADMIN, detail="owner")
        return LayerResult.abstain(self.layer)


class GroupMembershipLayer(BaseAccessLayer):
    """
    Members of a resource's group hold their role's ceiling on it

    Membership is independent of ownership: every member of the group is
    considered, whoever uploaded the resource. The Contributor rule
    ("edit/delete only what you own") is not applied here; callers that
    need it compare ``resource.owner_user_id`` with the requester when the
    role is CONTRIBUTOR (see AccessResolver.group_role).
    """

    layer = AccessLayer.GROUP_ROLE

    def __init__(self, repository: AccessRepository):
        self.repository = repository

    def applies_to(self, request: AccessRequest) -> bool:
        return request.requester is not None and request.resource.group_id is not None

    async def evaluate(self, request: AccessRequest) -> LayerResult:
        role = await self.repository.get_member_role(request.resource.group_id, request.requester)
        if role is None:
            return LayerResult.abstain(self.layer, "not a member")
        return LayerResult(
            layer=self.layer,
            permission=role_ceiling(role),
            detail=f"role:{role.value}",
        )


class AccessCodeLayer(BaseAccessLayer):
    """
    A valid, in-scope access code grants Download

    Checks run in order and stop at the first failure: exists and active,
    not expired, scope covers the resource. Each failure carries its own
    reason for the audit trail.
    """

    layer = AccessLayer.ACCESS_CODE

    def __init__(self, repository: AccessRepository):
        self.repository = repository

    def applies_to(self, request: AccessRequest) -> bool:
        return bool(request.presented_code)

    async def evaluate(self, request: AccessRequest) -> LayerResult:
        access_code = await self.repository.get_access_code(request.presented_code)
        outcome = validate_access_code(access_code, request.now)
        if not outcome.valid:
            return LayerResult.abstain(self.layer, "invalid code", denial_reason=outcome.reason)

        if not outcome.access_code.scope.covers(request.resource):
            return LayerResult.abstain(
                self.layer, "out of scope", denial_reason=DenialReason.CODE_SCOPE_MISMATCH
            )

        return LayerResult(
            layer=self.layer,
            permission=ACCESS_CODE_CEILING,
            detail=f"code:{outcome.access_code.scope.kind.value}",
            counted_code_id=outcome.access_code.id,
        )


class PublicVisibilityLayer(BaseAccessLayer):
    """Public resources can be viewed and streamed by anyone"""

    layer = AccessLayer.PUBLIC

    async def evaluate(self, request: AccessRequest) -> LayerResult:
        if request.resource.is_public:
            return LayerResult(layer=self.layer, permission=PUBLIC_CEILING, detail="public")
        return LayerResult.abstain(self.layer)

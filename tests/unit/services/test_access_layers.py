#!/usr/bin/env python3
"""
Unit Tests for Access Layers and Aggregation
Tests for media_access/services/access/layers.py and resolver.aggregate
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from media_access.core.permissions import AccessLayer, GroupRole, Permission
from media_access.models.access import DenialReason, ResourceRef, ResourceType
from media_access.models.access_code import AccessCode, AccessCodeScope
from media_access.services.access import (
    AccessCodeLayer,
    AccessRequest,
    GroupMembershipLayer,
    LayerResult,
    OwnershipLayer,
    PublicVisibilityLayer,
    aggregate,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_request(requester=None, code=None, requested=Permission.READ, **resource):
    resource.setdefault("resource_type", ResourceType.VIDEO)
    resource.setdefault("resource_id", "v1")
    return AccessRequest(
        requester=requester,
        presented_code=code,
        resource=ResourceRef(**resource),
        requested=requested,
        now=NOW,
    )


def make_code(scope, **kwargs):
    return AccessCode(id=uuid.uuid4(), code="share", created_by="alice", scope=scope, **kwargs)


def grant(layer, permission):
    return LayerResult(layer=layer, permission=permission)


@pytest.fixture
def repository():
    repo = AsyncMock()
    repo.get_member_role.return_value = None
    repo.get_access_code.return_value = None
    return repo


class TestOwnershipLayer:
    """Test the ownership layer"""

    @pytest.mark.asyncio
    async def test_owner_gets_admin(self):
        """Test the owner holds Admin"""
        result = await OwnershipLayer().check(make_request("alice", owner_user_id="alice"))
        assert result.permission is Permission.ADMIN
        assert result.layer is AccessLayer.OWNER

    @pytest.mark.asyncio
    async def test_non_owner_abstains(self):
        """Test anyone else gets nothing from this layer"""
        result = await OwnershipLayer().check(make_request("bob", owner_user_id="alice"))
        assert result.abstained

    @pytest.mark.asyncio
    async def test_anonymous_abstains(self):
        """Test anonymous requests skip the layer"""
        result = await OwnershipLayer().check(make_request(None, owner_user_id="alice"))
        assert result.abstained

    @pytest.mark.asyncio
    async def test_unowned_resource(self):
        """Test a resource without owner grants nobody"""
        result = await OwnershipLayer().check(make_request("alice"))
        assert result.abstained


class TestGroupMembershipLayer:
    """Test the group membership layer"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "role,expected",
        [
            (GroupRole.VIEWER, Permission.READ),
            (GroupRole.CONTRIBUTOR, Permission.DOWNLOAD),
            (GroupRole.EDITOR, Permission.DELETE),
            (GroupRole.ADMIN, Permission.ADMIN),
            (GroupRole.OWNER, Permission.ADMIN),
        ],
    )
    async def test_role_ceiling(self, repository, role, expected):
        """Test members get their role's ceiling"""
        repository.get_member_role.return_value = role
        result = await GroupMembershipLayer(repository).check(make_request("bob", group_id="G"))
        assert result.permission is expected
        assert result.detail == f"role:{role.value}"
        repository.get_member_role.assert_awaited_once_with("G", "bob")

    @pytest.mark.asyncio
    async def test_non_member_abstains(self, repository):
        """Test non-members get nothing"""
        result = await GroupMembershipLayer(repository).check(make_request("bob", group_id="G"))
        assert result.abstained

    @pytest.mark.asyncio
    async def test_no_group_skips_lookup(self, repository):
        """Test resources outside a group are not looked up"""
        result = await GroupMembershipLayer(repository).check(make_request("bob"))
        assert result.abstained
        repository.get_member_role.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_anonymous_skips_lookup(self, repository):
        """Test anonymous requests are not looked up"""
        result = await GroupMembershipLayer(repository).check(make_request(None, group_id="G"))
        assert result.abstained
        repository.get_member_role.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self, repository):
        """Test lookup failures are not turned into abstentions"""
        repository.get_member_role.side_effect = ConnectionError("down")
        with pytest.raises(ConnectionError):
            await GroupMembershipLayer(repository).check(make_request("bob", group_id="G"))


class TestAccessCodeLayer:
    """Test the access code layer"""

    @pytest.mark.asyncio
    async def test_valid_code_grants_download(self, repository):
        """Test a valid in-scope code grants Download"""
        code = make_code(AccessCodeScope.group_wide("G"))
        repository.get_access_code.return_value = code
        result = await AccessCodeLayer(repository).check(make_request(code="share", group_id="G"))
        assert result.permission is Permission.DOWNLOAD
        assert result.counted_code_id == code.id

    @pytest.mark.asyncio
    async def test_unknown_code(self, repository):
        """Test an unknown code abstains with a reason"""
        result = await AccessCodeLayer(repository).check(make_request(code="nope"))
        assert result.abstained
        assert result.denial_reason == DenialReason.CODE_NOT_FOUND_OR_INACTIVE
        assert result.counted_code_id is None

    @pytest.mark.asyncio
    async def test_expired_code(self, repository):
        """Test an expired code abstains with code_expired"""
        repository.get_access_code.return_value = make_code(
            AccessCodeScope.group_wide("G"), expires_at=NOW - timedelta(minutes=1)
        )
        result = await AccessCodeLayer(repository).check(make_request(code="share", group_id="G"))
        assert result.denial_reason == DenialReason.CODE_EXPIRED

    @pytest.mark.asyncio
    async def test_out_of_scope(self, repository):
        """Test a code for another resource abstains with a scope mismatch"""
        other = ResourceRef(resource_type=ResourceType.VIDEO, resource_id="v2")
        repository.get_access_code.return_value = make_code(AccessCodeScope.individual([other]))
        result = await AccessCodeLayer(repository).check(make_request(code="share"))
        assert result.denial_reason == DenialReason.CODE_SCOPE_MISMATCH
        assert result.counted_code_id is None

    @pytest.mark.asyncio
    async def test_no_code_skips_lookup(self, repository):
        """Test the store is not touched when no code is presented"""
        result = await AccessCodeLayer(repository).check(make_request("bob"))
        assert result.abstained
        assert result.denial_reason is None
        repository.get_access_code.assert_not_awaited()


class TestPublicVisibilityLayer:
    """Test the public visibility layer"""

    @pytest.mark.asyncio
    async def test_public_grants_download(self):
        """Test public resources grant Download to anyone"""
        result = await PublicVisibilityLayer().check(make_request(is_public=True))
        assert result.permission is Permission.DOWNLOAD

    @pytest.mark.asyncio
    async def test_private_abstains(self):
        """Test private resources get nothing from this layer"""
        assert (await PublicVisibilityLayer().check(make_request("bob"))).abstained


class TestAggregate:
    """Test reconciliation of layer results"""

    def test_no_contributions(self):
        """Test nothing contributing is a plain denial"""
        decision = aggregate(
            [LayerResult.abstain(AccessLayer.OWNER), LayerResult.abstain(AccessLayer.PUBLIC)],
            Permission.READ,
        )
        assert not decision.granted
        assert decision.layer is AccessLayer.NONE
        assert decision.permission_granted is None
        assert decision.reason == DenialReason.NO_APPLICABLE_LAYER.value

    def test_code_failure_reason_surfaces(self):
        """Test a failed code explains a denial when nothing else applied"""
        decision = aggregate(
            [LayerResult.abstain(AccessLayer.ACCESS_CODE, denial_reason=DenialReason.CODE_EXPIRED)],
            Permission.READ,
        )
        assert decision.reason == DenialReason.CODE_EXPIRED.value

    def test_highest_permission_wins(self):
        """Test the best permission is chosen regardless of layer"""
        decision = aggregate(
            [grant(AccessLayer.GROUP_ROLE, Permission.READ), grant(AccessLayer.PUBLIC, Permission.DOWNLOAD)],
            Permission.DOWNLOAD,
        )
        assert decision.granted
        assert decision.layer is AccessLayer.PUBLIC
        assert decision.reason == "granted_via_public"

    def test_tie_goes_to_precedence(self):
        """Test equal permissions are attributed by layer precedence"""
        decision = aggregate(
            [
                grant(AccessLayer.PUBLIC, Permission.DOWNLOAD),
                grant(AccessLayer.ACCESS_CODE, Permission.DOWNLOAD),
                grant(AccessLayer.GROUP_ROLE, Permission.DOWNLOAD),
            ],
            Permission.READ,
        )
        assert decision.layer is AccessLayer.GROUP_ROLE

    def test_owner_beats_admin_role_tie(self):
        """Test the owner wins an Admin tie with a group admin"""
        decision = aggregate(
            [grant(AccessLayer.GROUP_ROLE, Permission.ADMIN), grant(AccessLayer.OWNER, Permission.ADMIN)],
            Permission.ADMIN,
        )
        assert decision.layer is AccessLayer.OWNER

    def test_insufficient(self):
        """Test a contribution below the request denies with the best permission recorded"""
        decision = aggregate([grant(AccessLayer.PUBLIC, Permission.DOWNLOAD)], Permission.EDIT)
        assert not decision.granted
        assert decision.layer is AccessLayer.PUBLIC
        assert decision.permission_granted is Permission.DOWNLOAD
        assert decision.reason == DenialReason.INSUFFICIENT_PERMISSION.value

    def test_grant_ignores_code_failure(self):
        """Test a failed code does not spoil a grant from another layer"""
        decision = aggregate(
            [
                LayerResult.abstain(AccessLayer.ACCESS_CODE, denial_reason=DenialReason.CODE_EXPIRED),
                grant(AccessLayer.PUBLIC, Permission.DOWNLOAD),
            ],
            Permission.READ,
        )
        assert decision.granted

    def test_code_failure_explains_insufficient_grant(self):
        """Test a rejected code names the denial even when another layer contributed"""
        decision = aggregate(
            [
                grant(AccessLayer.GROUP_ROLE, Permission.READ),
                LayerResult.abstain(AccessLayer.ACCESS_CODE, denial_reason=DenialReason.CODE_SCOPE_MISMATCH),
            ],
            Permission.DOWNLOAD,
        )
        assert not decision.granted
        assert decision.layer is AccessLayer.GROUP_ROLE
        assert decision.permission_granted is Permission.READ
        assert decision.reason == DenialReason.CODE_SCOPE_MISMATCH.value
        assert decision.user_message == "Invalid or expired access code"

"""
Group Membership Service
Creating groups and managing member roles
"""

from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from media_access.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from media_access.core.logging import get_logger
from media_access.core.permissions import GroupRole, Permission, role_ceiling, satisfies
from media_access.db.repository import AccessRepository
from media_access.db.session import transaction

logger = get_logger(__name__)


class GroupMembershipService:
    """
    Membership management on top of the group_members table

    Managing members needs a role whose ceiling is Admin (owner or
    admin). Only owners may hand out or take away the owner role, and a
    group always keeps at least one owner.
    """

    def __init__(self, db: AsyncSession, repository: Optional[AccessRepository] = None):
        self.db = db
        self.repository = repository or AccessRepository(db)

    async def _require_manager(self, group_id: str, actor: str) -> GroupRole:
        role = await self.repository.get_member_role(group_id, actor)
        if role is None or not satisfies(role_ceiling(role), Permission.ADMIN):
            logger.warning(f"User {actor} is not allowed to manage group {group_id}")
            raise ForbiddenException(message="Not allowed to manage this group")
        return role

    async def _owner_count(self, group_id: str) -> int:
        members = await self.repository.list_members(group_id)
        return sum(1 for _, role in members if role == GroupRole.OWNER)

    async def create_group(self, group_id: str, owner: str) -> None:
        """Start a group with ``owner`` as its first member"""
        if not group_id or not owner:
            raise ValidationException(message="group_id and owner are required")
        async with transaction(self.db, "create_group"):
            if await self.repository.group_exists(group_id):
                raise ConflictException(message="Group already exists", details={"group_id": group_id})
            await self.repository.add_member(group_id, owner, GroupRole.OWNER)
        logger.info(f"Group {group_id} created by {owner}")

    async def add_member(self, group_id: str, actor: str, user_id: str, role: GroupRole) -> None:
        role = GroupRole(role)
        async with transaction(self.db, "add_member"):
            actor_role = await self._require_manager(group_id, actor)
            if role == GroupRole.OWNER and actor_role != GroupRole.OWNER:
                raise ForbiddenException(message="Only owners can add owners")
            if await self.repository.get_member_role(group_id, user_id) is not None:
                raise ConflictException(message="User is already a member", details={"user_id": user_id})
            try:
                await self.repository.add_member(group_id, user_id, role)
            except IntegrityError:
                raise ConflictException(message="User is already a member", details={"user_id": user_id})
        logger.info(f"User {user_id} added to group {group_id} as {role.value} by {actor}")

    async def change_role(self, group_id: str, actor: str, user_id: str, role: GroupRole) -> None:
        role = GroupRole(role)
        async with transaction(self.db, "change_role"):
            actor_role = await self._require_manager(group_id, actor)
            current = await self.repository.get_member_role(group_id, user_id)
            if current is None:
                raise NotFoundException("Group member")
            if GroupRole.OWNER in (role, current) and actor_role != GroupRole.OWNER:
                raise ForbiddenException(message="Only owners can change owner roles")
            if current == GroupRole.OWNER and role != GroupRole.OWNER and await self._owner_count(group_id) == 1:
                raise ConflictException(message="A group must keep at least one owner")
            await self.repository.set_member_role(group_id, user_id, role)
        logger.info(f"User {user_id} in group {group_id} is now {role.value} (by {actor})")

    async def remove_member(self, group_id: str, actor: str, user_id: str) -> None:
        async with transaction(self.db, "remove_member"):
            current = await self.repository.get_member_role(group_id, user_id)
            if current is None:
                raise NotFoundException("Group member")
            # Anyone may leave; removing others needs manager rights
            if actor != user_id:
                actor_role = await self._require_manager(group_id, actor)
                if current == GroupRole.OWNER and actor_role != GroupRole.OWNER:
                    raise ForbiddenException(message="Only owners can remove owners")
            if current == GroupRole.OWNER and await self._owner_count(group_id) == 1:
                raise ConflictException(message="A group must keep at least one owner")
            await self.repository.remove_member(group_id, user_id)
        logger.info(f"User {user_id} removed from group {group_id} by {actor}")

    async def get_role(self, group_id: str, user_id: str) -> Optional[GroupRole]:
        async with transaction(self.db, "get_role"):
            return await self.repository.get_member_role(group_id, user_id)

    async def list_members(self, group_id: str) -> List[Tuple[str, GroupRole]]:
        async with transaction(self.db, "list_members"):
            return await self.repository.list_members(group_id)

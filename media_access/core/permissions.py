"""
Permission Model
Ordered capability levels, group roles and access layers
"""

from enum import Enum
from typing import Dict, List

from media_access.core.exceptions import ValidationException


class Permission(Enum):
    """
    Capability levels, ordered from least to most privileged

    Holding a level implies holding every lower level. Members are plain
    enum values without ``<``/``>``; compare with ``satisfies()``.
    """

    READ = 1
    DOWNLOAD = 2
    EDIT = 3
    DELETE = 4
    ADMIN = 5

    @property
    def level(self) -> int:
        return self.value

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    def included_permissions(self) -> List["Permission"]:
        """All permissions implied by this one, lowest first"""
        return [p for p in Permission if satisfies(self, p)]

    @classmethod
    def parse(cls, value: str) -> "Permission":
        """Parse a permission label, case-insensitive"""
        try:
            return cls[value.strip().upper()]
        except (KeyError, AttributeError):
            raise ValidationException(
                message=f"Invalid permission: {value}",
                details={"valid_permissions": [p.label for p in cls]},
            )


_DESCRIPTIONS: Dict[Permission, str] = {
    Permission.READ: "View only",
    Permission.DOWNLOAD: "View and download",
    Permission.EDIT: "View, download, and edit",
    Permission.DELETE: "View, download, edit, and delete",
    Permission.ADMIN: "Full administrative control",
}


def satisfies(held: Permission, requested: Permission) -> bool:
    """True when ``held`` is at least ``requested`` in the numeric ordering"""
    return held.level >= requested.level


class GroupRole(str, Enum):
    """Role of a member inside a group"""

    VIEWER = "viewer"
    CONTRIBUTOR = "contributor"
    EDITOR = "editor"
    ADMIN = "admin"
    OWNER = "owner"


# Fixed, total mapping. A role never grants more than its ceiling.
ROLE_PERMISSION_CEILING: Dict[GroupRole, Permission] = {
    GroupRole.VIEWER: Permission.READ,
    GroupRole.CONTRIBUTOR: Permission.DOWNLOAD,
    GroupRole.EDITOR: Permission.DELETE,
    GroupRole.ADMIN: Permission.ADMIN,
    GroupRole.OWNER: Permission.ADMIN,
}


def role_ceiling(role: GroupRole) -> Permission:
    """
    Highest permission a group role grants

    Contributors may only edit or delete resources they own inside the
    group. That ownership comparison belongs to the caller; the ceiling
    returned here is the role's upper bound only.
    """
    return ROLE_PERMISSION_CEILING[GroupRole(role)]


class AccessLayer(str, Enum):
    """Authorization path that produced a grant"""

    OWNER = "owner"
    GROUP_ROLE = "group_role"
    ACCESS_CODE = "access_code"
    PUBLIC = "public"
    NONE = "none"

    @property
    def precedence(self) -> int:
        """Tie-break order when two layers grant the same permission"""
        return _LAYER_PRECEDENCE[self]


_LAYER_PRECEDENCE: Dict[AccessLayer, int] = {
    AccessLayer.OWNER: 4,
    AccessLayer.GROUP_ROLE: 3,
    AccessLayer.ACCESS_CODE: 2,
    AccessLayer.PUBLIC: 1,
    AccessLayer.NONE: 0,
}

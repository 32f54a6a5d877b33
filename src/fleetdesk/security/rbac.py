"""Role-based access control for fleetdesk.

Roles mirror the back office's staff hierarchy:
- SUPER_ADMIN: everything, including cache administration
- ADMIN: everything except cache administration
- MANAGER: fleet reads and writes, maintenance, financial reads
- STAFF: fleet reads and writes
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fleetdesk.security.tokens import User


class Permission(str, Enum):
    """Permissions for back office operations."""

    READ_VEHICLES = "read:vehicles"
    WRITE_VEHICLES = "write:vehicles"
    READ_MAINTENANCE = "read:maintenance"
    READ_FINANCIAL = "read:financial"
    PROCESS_RECURRING = "process:recurring"
    MANAGE_CACHE = "manage:cache"


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"


ADMIN_ROLES = frozenset({Role.SUPER_ADMIN.value, Role.ADMIN.value})

ROLE_PERMISSIONS: dict[str, set[Permission]] = {
    Role.SUPER_ADMIN.value: set(Permission),
    Role.ADMIN.value: set(Permission) - {Permission.MANAGE_CACHE},
    Role.MANAGER.value: {
        Permission.READ_VEHICLES,
        Permission.WRITE_VEHICLES,
        Permission.READ_MAINTENANCE,
        Permission.READ_FINANCIAL,
    },
    Role.STAFF.value: {
        Permission.READ_VEHICLES,
        Permission.WRITE_VEHICLES,
    },
}


class RBACPolicy:
    """Role-based access control policy checker."""

    def __init__(self, role_permissions: dict[str, set[Permission]] | None = None):
        self.role_permissions = role_permissions or ROLE_PERMISSIONS

    def get_user_permissions(self, user: User) -> set[Permission]:
        """Get all permissions for a user based on their roles."""
        permissions: set[Permission] = set()

        for role in user.roles:
            permissions.update(self.role_permissions.get(role, set()))

        return permissions

    def has_permission(self, user: User, permission: Permission) -> bool:
        return permission in self.get_user_permissions(user)


# Global RBAC policy instance
rbac_policy = RBACPolicy()

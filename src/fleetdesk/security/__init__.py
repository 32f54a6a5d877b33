"""Security for fleetdesk.

Provides:
- HS256 JWT validation and issuance
- Role-based access control
- FastAPI dependencies for authentication and authorization
"""

from fleetdesk.security.deps import (
    get_current_user,
    require_authenticated,
    require_permission,
    require_recurring_processor,
)
from fleetdesk.security.rbac import Permission, RBACPolicy, Role, rbac_policy
from fleetdesk.security.tokens import InvalidTokenError, TokenValidator, User

__all__ = [
    # Tokens
    "User",
    "TokenValidator",
    "InvalidTokenError",
    # RBAC
    "Permission",
    "Role",
    "RBACPolicy",
    "rbac_policy",
    # Dependencies
    "get_current_user",
    "require_authenticated",
    "require_permission",
    "require_recurring_processor",
]

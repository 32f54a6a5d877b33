"""FastAPI security dependencies for fleetdesk.

Provides injectable dependencies for authentication and authorization:
- get_current_user: Extract and validate user from request
- require_authenticated: Require a valid token (anonymous admin when auth is off)
- require_permission: Require a specific permission
- require_recurring_processor: Scheduler API key or an admin user

Authentication is disabled when no JWT secret is configured; every request
then runs as an anonymous super admin.

Usage:
    @router.get("/vehicles")
    async def list_vehicles(user: User = Depends(require_permission(Permission.READ_VEHICLES))):
        ...
"""

from __future__ import annotations

import hmac
from typing import Annotated, Awaitable, Callable

from fastapi import Depends, Header, HTTPException, Request, status

from fleetdesk.observability.logging import user_id_var
from fleetdesk.security.rbac import Permission, Role, rbac_policy
from fleetdesk.security.tokens import InvalidTokenError, TokenValidator, User

ANONYMOUS_USER = User(sub="anonymous", name="Anonymous", roles=[Role.SUPER_ADMIN.value])


def _get_validator(request: Request) -> TokenValidator | None:
    return getattr(request.app.state, "token_validator", None)


def _bearer_token(authorization: str | None) -> str | None:
    if authorization is None:
        return None
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return authorization[7:]


async def get_current_user(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> User | None:
    """Extract and validate user from Authorization header.

    Returns None if:
    - No JWT secret is configured (authentication disabled)
    - No Authorization header provided

    Raises HTTPException if token is invalid.
    """
    validator = _get_validator(request)
    if validator is None:
        return None

    token = _bearer_token(authorization)
    if token is None:
        return None

    try:
        user = validator.validate_token(token)
    except InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    request.state.user = user
    return user


async def require_authenticated(
    request: Request,
    user: Annotated[User | None, Depends(get_current_user)],
) -> User:
    """Require authenticated user.

    Raises 401 if not authenticated.
    """
    if _get_validator(request) is None:
        request.state.user = ANONYMOUS_USER
        user_id_var.set(ANONYMOUS_USER.sub)
        return ANONYMOUS_USER

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id_var.set(user.sub)
    return user


def require_permission(permission: Permission) -> Callable[..., Awaitable[User]]:
    """Create dependency that requires a specific permission.

    Usage:
        @router.delete("/admin/cache/invalidate")
        async def invalidate(user: User = Depends(require_permission(Permission.MANAGE_CACHE))):
            ...
    """

    async def _require_permission(
        user: Annotated[User, Depends(require_authenticated)],
    ) -> User:
        if not rbac_policy.has_permission(user, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission '{permission.value}' required",
            )
        return user

    return _require_permission


async def require_recurring_processor(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Allow the scheduler's API key or a user with the processing permission.

    Returns the caller's identity for logging: ``"api-key"`` or the user's sub.
    """
    api_key = request.app.state.settings.recurring_api_key
    if api_key and authorization is not None and hmac.compare_digest(
        authorization.encode(), f"Bearer {api_key}".encode()
    ):
        return "api-key"

    user = await get_current_user(request, authorization)
    user = await require_authenticated(request, user)
    if not rbac_policy.has_permission(user, Permission.PROCESS_RECURRING):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Permission '{Permission.PROCESS_RECURRING.value}' required",
        )
    return user.sub

"""JWT validation for fleetdesk.

Tokens are HS256-signed with a shared secret and carry the user id in
``sub`` and a list of role names in ``roles``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from fleetdesk.security.rbac import ADMIN_ROLES, Role

logger = logging.getLogger(__name__)


@dataclass
class User:
    """Authenticated user from JWT token."""

    sub: str  # Subject (user ID)
    email: str | None = None
    name: str | None = None
    roles: list[str] = field(default_factory=list)
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        """Check if user has an admin role."""
        return any(role in ADMIN_ROLES for role in self.roles)

    @property
    def is_super_admin(self) -> bool:
        return Role.SUPER_ADMIN.value in self.roles


class InvalidTokenError(Exception):
    """Raised when token validation fails."""

    pass


class TokenValidator:
    """Validates and issues tokens signed with a shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise ValueError("A signing secret is required")
        self.secret = secret
        self.algorithm = algorithm

    def validate_token(self, token: str) -> User:
        """Validate JWT token and return user.

        Raises:
            InvalidTokenError: If token is invalid or expired
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"verify_exp": True, "verify_aud": False},
            )
        except ExpiredSignatureError as e:
            raise InvalidTokenError("Token has expired") from e
        except JWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e

        sub = payload.get("sub")
        if not sub:
            raise InvalidTokenError("Token has no subject")

        return User(
            sub=str(sub),
            email=payload.get("email"),
            name=payload.get("name"),
            roles=self._extract_roles(payload),
            claims=payload,
        )

    def create_token(
        self,
        sub: str,
        roles: list[str],
        expires_in: timedelta = timedelta(hours=1),
        **claims: Any,
    ) -> str:
        """Issue a token (service accounts, tests)."""
        now = datetime.now(UTC)
        payload = {
            **claims,
            "sub": sub,
            "roles": [str(Role(role).value) for role in roles],
            "iat": int(now.timestamp()),
            "exp": int((now + expires_in).timestamp()),
        }
        return str(jwt.encode(payload, self.secret, algorithm=self.algorithm))

    def _extract_roles(self, payload: dict[str, Any]) -> list[str]:
        claim_value = payload.get("roles") or payload.get("role")
        if isinstance(claim_value, str):
            claim_value = [claim_value]
        if not isinstance(claim_value, list):
            return []
        known = {role.value for role in Role}
        roles = {str(role).upper() for role in claim_value}
        unknown = roles - known
        if unknown:
            logger.debug(f"Ignoring unknown roles: {sorted(unknown)}")
        return sorted(roles & known)

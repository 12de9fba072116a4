"""Caller identity for the triage API.

Reviewer endpoints receive a bearer JWT; the `sub` claim is the caller's
user id and the `role` claim one of student, counselor, admin.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import jwt

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Missing, malformed, expired or badly signed credentials."""
    pass


class AuthorizationError(Exception):
    """Caller is authenticated but not allowed to perform the operation."""
    pass


class Role(Enum):
    STUDENT = "student"
    COUNSELOR = "counselor"
    ADMIN = "admin"


REVIEWER_ROLES = frozenset({Role.COUNSELOR, Role.ADMIN})


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: Role

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES


def decode_identity(token: Optional[str], secret: str, algorithm: str = "HS256") -> Identity:
    """Decode a bearer token into an Identity.

    Args:
        token: Encoded JWT (without the "Bearer " prefix)
        secret: Signing key
        algorithm: Expected signing algorithm

    Raises:
        AuthenticationError: If the token is missing, invalid or lacks claims
    """
    if not token:
        raise AuthenticationError("Missing bearer token")

    try:
        payload: Dict[str, Any] = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.PyJWTError as e:
        logger.warning("AUTH_TOKEN_REJECTED", extra={"error_type": type(e).__name__})
        raise AuthenticationError(f"Invalid token: {e}") from e

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Token has no subject")

    try:
        role = Role(payload.get("role"))
    except ValueError:
        raise AuthenticationError(f"Token has unknown role: {payload.get('role')!r}")

    return Identity(user_id=str(user_id), role=role)


def bearer_token(header_value: Optional[str]) -> Optional[str]:
    """Extract the token from an Authorization header value."""
    if not header_value:
        return None
    scheme, _, token = header_value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_reviewer(identity: Identity) -> Identity:
    """Raises AuthorizationError unless the caller is a counselor or admin."""
    if not identity.is_reviewer:
        logger.warning(
            "TRIAGE_ACCESS_DENIED",
            extra={"role": identity.role.value}
        )
        raise AuthorizationError("Reviewer role required")
    return identity

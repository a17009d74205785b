"""JWT helpers for resolving the calling account.

Tokens are issued by the external auth service. This module only needs to
verify them and read the owner id plus the optional ``global:write`` scope
that marks an account allowed to edit shared (Global) mappings.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from basket.config import settings

GLOBAL_WRITE_SCOPE = "global:write"


@dataclass(frozen=True)
class OwnerContext:
    """The authenticated account a request acts for."""

    owner_id: UUID
    can_edit_global: bool = False


def create_access_token(
    owner_id: UUID,
    scopes: list[str] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a JWT access token.

    Used by tests and local tooling; production tokens come from the auth service.

    Args:
        owner_id: Account ID to encode in token
        scopes: Optional list of granted scopes
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_access_expire_minutes)

    to_encode = {
        "sub": str(owner_id),
        "exp": datetime.now(timezone.utc) + expires_delta,
        "type": "access",
        "scope": list(scopes or []),
    }
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a JWT token.

    Raises:
        JWTError: If token is invalid or expired
    """
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def get_owner_from_token(token: str) -> OwnerContext:
    """
    Extract the owner context from a JWT token.

    Raises:
        JWTError: If token is invalid, expired or has no subject
        ValueError: If the subject is not a valid UUID
    """
    payload = decode_token(token)
    owner_id_str = payload.get("sub")
    if owner_id_str is None:
        raise JWTError("Token missing 'sub' claim")

    scopes = payload.get("scope") or []
    if isinstance(scopes, str):
        scopes = scopes.split()

    return OwnerContext(
        owner_id=UUID(owner_id_str),
        can_edit_global=GLOBAL_WRITE_SCOPE in scopes,
    )

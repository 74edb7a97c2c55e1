"""
Authentication dependencies: bearer/cookie JWT to a typed Principal, role checks
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Cookie, Header

from auth_utils import decode_jwt
from backend.utils.errors import Forbidden, Unauthenticated
from config import settings

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller. ``user_id`` is the identity provider's opaque id."""

    user_id: str
    role: Role
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def extract_token(auth_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    """
    Pick the credential to verify.

    Authentication priority:
    1. auth_token cookie (httpOnly cookie set by the identity provider's login flow)
    2. Authorization header (Bearer token) for API consumers
    """
    if auth_token:
        return auth_token
    if authorization and authorization.startswith("Bearer "):
        return authorization.replace("Bearer ", "", 1).strip() or None
    return None


def authenticate_token(token: Optional[str]) -> Principal:
    """
    Verify a token and build the Principal.

    Raises:
        Unauthenticated: Missing, invalid or expired token
    """
    if not token:
        raise Unauthenticated("Missing authentication token")

    try:
        payload = decode_jwt(token)
    except ValueError as e:
        logger.error(f"Cannot verify token: {e}")
        raise Unauthenticated("Authentication is not configured")

    if not payload:
        raise Unauthenticated("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated("Invalid token payload")
    user_id = str(user_id)

    role = Role.ADMIN if payload.get("role") == Role.ADMIN.value or user_id in settings.admin_ids() else Role.USER
    return Principal(user_id=user_id, role=role, email=payload.get("email"))


class RequireRole:
    """
    Dependency factory: ``Depends(RequireRole(Role.ADMIN))`` yields a Principal
    holding at least the requested role, or fails Unauthenticated / Forbidden.
    """

    def __init__(self, role: Role = Role.USER):
        self.role = role

    async def __call__(
        self,
        auth_token: Optional[str] = Cookie(None),
        authorization: Optional[str] = Header(None, alias="Authorization"),
    ) -> Principal:
        principal = authenticate_token(extract_token(auth_token, authorization))
        if self.role == Role.ADMIN and not principal.is_admin:
            logger.warning(f"User {principal.user_id} denied admin access")
            raise Forbidden()
        return principal


get_current_user = RequireRole(Role.USER)
require_admin = RequireRole(Role.ADMIN)

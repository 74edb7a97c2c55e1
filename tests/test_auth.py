"""
Unit tests for JWT handling and role-based Principal resolution
"""
from unittest.mock import patch

import pytest

from auth import Principal, RequireRole, Role, authenticate_token, extract_token
from auth_utils import create_expired_jwt, create_jwt, decode_jwt
from backend.utils.errors import Forbidden, Unauthenticated
from config import settings


def test_create_and_decode_jwt(jwt_secret):
    token = create_jwt("user-42", role="user", email="u@example.com")
    payload = decode_jwt(token)

    assert payload["sub"] == "user-42"
    assert payload["role"] == "user"
    assert payload["email"] == "u@example.com"


def test_decode_rejects_expired_and_tampered_tokens(jwt_secret):
    assert decode_jwt(create_expired_jwt("user-42")) is None
    assert decode_jwt(create_jwt("user-42") + "x") is None
    assert decode_jwt("not-a-jwt") is None


def test_missing_secret_key_raises():
    with patch.object(settings, "jwt_secret_key", None):
        with pytest.raises(ValueError):
            create_jwt("user-42")
        with pytest.raises(Unauthenticated):
            authenticate_token("anything")


def test_extract_token_prefers_cookie():
    assert extract_token("cookie-token", "Bearer header-token") == "cookie-token"
    assert extract_token(None, "Bearer header-token") == "header-token"
    assert extract_token(None, "Basic abc") is None
    assert extract_token(None, "Bearer ") is None
    assert extract_token(None, None) is None


def test_authenticate_token_builds_principal(jwt_secret):
    principal = authenticate_token(create_jwt("user-42", email="u@example.com"))

    assert principal == Principal(user_id="user-42", role=Role.USER, email="u@example.com")
    assert principal.is_admin is False


def test_admin_role_from_claim_or_allow_list(jwt_secret, monkeypatch):
    assert authenticate_token(create_jwt("boss", role="admin")).role == Role.ADMIN

    monkeypatch.setattr(settings, "admin_user_ids", "ops-1, ops-2")
    assert authenticate_token(create_jwt("ops-2")).role == Role.ADMIN
    assert authenticate_token(create_jwt("user-42")).role == Role.USER


@pytest.mark.parametrize("token", [None, "", "garbage"])
def test_authenticate_token_failures(jwt_secret, token):
    with pytest.raises(Unauthenticated):
        authenticate_token(token)


def test_expired_token_is_unauthenticated(jwt_secret):
    with pytest.raises(Unauthenticated):
        authenticate_token(create_expired_jwt("user-42"))


@pytest.mark.asyncio
async def test_require_role_admin_forbids_plain_users(jwt_secret):
    require_admin = RequireRole(Role.ADMIN)

    with pytest.raises(Forbidden):
        await require_admin(auth_token=None, authorization=f"Bearer {create_jwt('user-42')}")

    admin = await require_admin(auth_token=create_jwt("boss", role="admin"), authorization=None)
    assert admin.user_id == "boss"
    assert admin.is_admin is True


@pytest.mark.asyncio
async def test_require_role_user_accepts_admins(jwt_secret):
    require_user = RequireRole(Role.USER)

    principal = await require_user(auth_token=create_jwt("boss", role="admin"), authorization=None)
    assert principal.role == Role.ADMIN

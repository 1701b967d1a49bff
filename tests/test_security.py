"""
Test suite for security utilities and authentication dependencies.

Tests cover JWT access token creation and validation, security response
headers and the bearer authentication dependencies used by the API.
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt
from sqlalchemy.exc import OperationalError

from src.api.deps import get_current_admin, get_current_user
from src.core.config import get_settings
from src.core.security import (
    TokenError,
    create_access_token,
    decode_access_token,
    get_security_headers,
)


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


# ============================================================================
# Token Tests
# ============================================================================


class TestAccessTokens:
    """JWT access token creation and decoding."""

    def test_round_trip_claims(self):
        subject = str(uuid.uuid4())

        payload = decode_access_token(create_access_token(subject, "admin"))

        assert payload["sub"] == subject
        assert payload["role"] == "admin"
        assert payload["type"] == "access"

    def test_default_expiration(self):
        settings = get_settings()

        payload = decode_access_token(create_access_token("user", "user"))

        lifetime = payload["exp"] - payload["iat"]
        assert lifetime == settings.jwt_access_token_expire_minutes * 60

    def test_expired_token(self):
        token = create_access_token("user", "user", expires_delta=timedelta(seconds=-5))

        with pytest.raises(TokenError) as exc_info:
            decode_access_token(token)

        assert exc_info.value.code == "TOKEN_EXPIRED"

    def test_wrong_signature(self):
        token = jwt.encode(
            {"sub": "user", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            "another-secret-key-that-is-long-enough",
            algorithm="HS256",
        )

        with pytest.raises(TokenError) as exc_info:
            decode_access_token(token)

        assert exc_info.value.code == "TOKEN_INVALID"

    def test_malformed_token(self):
        with pytest.raises(TokenError) as exc_info:
            decode_access_token("not.a.jwt")

        assert exc_info.value.code == "TOKEN_INVALID"

    def test_empty_token(self):
        with pytest.raises(TokenError) as exc_info:
            decode_access_token("")

        assert exc_info.value.code == "EMPTY_TOKEN"

    def test_refresh_token_rejected(self):
        settings = get_settings()
        token = jwt.encode(
            {
                "sub": "user",
                "type": "refresh",
                "exp": datetime.now(timezone.utc) + timedelta(days=1),
            },
            settings.secret_key,
            algorithm=settings.jwt_algorithm,
        )

        with pytest.raises(TokenError) as exc_info:
            decode_access_token(token)

        assert exc_info.value.code == "TOKEN_TYPE_INVALID"


class TestSecurityHeaders:
    """Response hardening headers."""

    def test_headers_outside_production(self):
        headers = get_security_headers()

        assert headers["X-Content-Type-Options"] == "nosniff"
        assert headers["X-Frame-Options"] == "DENY"
        assert "Strict-Transport-Security" not in headers

    def test_hsts_in_production(self, monkeypatch):
        monkeypatch.setenv("APP_ENVIRONMENT", "production")
        monkeypatch.setenv("APP_SECRET_KEY", "a-production-secret-key-of-enough-length")
        get_settings.cache_clear()

        headers = get_security_headers()

        assert headers["Strict-Transport-Security"].startswith("max-age=")


# ============================================================================
# Authentication Dependency Tests
# ============================================================================


class TestCurrentUser:
    """get_current_user and get_current_admin."""

    @pytest.mark.asyncio
    async def test_valid_token(self, mock_session, user):
        mock_session.get.return_value = user
        token = create_access_token(str(user.id), "user")

        result = await get_current_user(_bearer(token), mock_session)

        assert result is user

    @pytest.mark.asyncio
    async def test_missing_credentials(self, mock_session):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(None, mock_session)

        assert exc_info.value.status_code == 401
        mock_session.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_uuid_subject(self, mock_session):
        token = create_access_token("not-a-uuid", "user")

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_bearer(token), mock_session)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_user(self, mock_session):
        token = create_access_token(str(uuid.uuid4()), "user")

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_bearer(token), mock_session)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_inactive_user(self, mock_session, make_user):
        inactive = make_user(is_active=False)
        mock_session.get.return_value = inactive
        token = create_access_token(str(inactive.id), "user")

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_bearer(token), mock_session)

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_database_error(self, mock_session, user):
        mock_session.get = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))
        token = create_access_token(str(user.id), "user")

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_bearer(token), mock_session)

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_admin_required(self, user, admin):
        assert await get_current_admin(admin) is admin

        with pytest.raises(HTTPException) as exc_info:
            await get_current_admin(user)

        assert exc_info.value.status_code == 403

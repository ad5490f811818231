"""
Bearer tokens and the get_current_actor dependency
"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt as pyjwt
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from creditflow.api.dependencies.auth import get_current_actor
from creditflow.core.auth import create_access_token, verify_token
from creditflow.core.config import settings
from creditflow.db.models.user import UserRole


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestTokens:
    @pytest.mark.unit
    def test_create_and_verify_token(self):
        token = create_access_token(user_id=123, role="hod")

        payload = verify_token(token)

        assert payload is not None
        assert payload.user_id == 123
        assert payload.role == "hod"

    @pytest.mark.unit
    def test_invalid_token_returns_none(self):
        assert verify_token("invalid.token.here") is None

    @pytest.mark.unit
    def test_expired_token_returns_none(self):
        token = create_access_token(user_id=1, role="employee", expires_minutes=-5)
        assert verify_token(token) is None

    @pytest.mark.unit
    def test_token_signed_with_other_secret(self):
        token = pyjwt.encode(
            {"user_id": 1, "role": "admin", "exp": int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp())},
            "some-other-secret",
            algorithm="HS256",
        )
        assert verify_token(token) is None

    @pytest.mark.unit
    def test_missing_claims_return_none(self):
        token = pyjwt.encode(
            {"sub": "1", "exp": int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp())},
            settings.JWT_SECRET_KEY,
            algorithm="HS256",
        )
        assert verify_token(token) is None

    @pytest.mark.unit
    def test_no_secret_cannot_sign_or_verify(self):
        token = create_access_token(user_id=1, role="admin")
        with patch.object(settings, "JWT_SECRET_KEY", ""):
            with pytest.raises(ValueError):
                create_access_token(user_id=1, role="admin")
            assert verify_token(token) is None


class TestGetCurrentActor:
    @pytest.mark.asyncio
    async def test_resolves_actor(self, db_session, org):
        token = create_access_token(org.hod.user_id, "hod")

        actor = await get_current_actor(bearer(token), db_session)

        assert actor.user_id == org.hod.user_id
        assert actor.role == UserRole.HOD
        assert actor.email == "hod@example.com"
        assert actor.capabilities.can_approve

    @pytest.mark.asyncio
    async def test_legacy_role_keeps_its_capabilities(self, db_session, org):
        token = create_access_token(org.accounts.user_id, "accounts_manager")

        actor = await get_current_actor(bearer(token), db_session)

        assert actor.capabilities.can_process_payouts
        assert not actor.capabilities.can_initiate

    @pytest.mark.asyncio
    async def test_invalid_token_is_401(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_actor(bearer("garbage"), db_session)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_role_is_401(self, db_session, org):
        token = create_access_token(org.employee.user_id, "superuser")
        with pytest.raises(HTTPException) as exc_info:
            await get_current_actor(bearer(token), db_session)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_missing_user_is_403(self, db_session):
        token = create_access_token(4242, "employee")
        with pytest.raises(HTTPException) as exc_info:
            await get_current_actor(bearer(token), db_session)
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_inactive_user_is_403(self, db_session, user_factory):
        user = await user_factory(is_active=False)
        token = create_access_token(user.id, "employee")
        with pytest.raises(HTTPException) as exc_info:
            await get_current_actor(bearer(token), db_session)
        assert exc_info.value.status_code == 403

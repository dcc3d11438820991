"""
Tests for portal and driver-app request authentication.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from services.authenticator import DriverAuthenticator, PortalAuthenticator, extract_bearer_token
from services.errors import Forbidden, Unauthenticated
from services.principals import DriverPrincipal, PortalPrincipal
from services.sessions import SessionStore
from services.tokens import DRIVER_ROLE


async def _login(db_session, codecs, user, ttl=timedelta(hours=8), now=None):
    """Mint a portal credential and record its session, the way login does."""
    now = now or datetime.now(timezone.utc)
    token = codecs.portal.sign(str(user.id), role=user.role, ttl=ttl, now=now)
    await SessionStore(db_session).create(user.id, token, ttl, now=now)
    await db_session.commit()
    return token


class TestExtractBearerToken:
    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("bearer abc", "abc"),
            ("BEARER   abc  ", "abc"),
            ("Basic dXNlcjpwYXNz", None),
            ("Bearer", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extract(self, header, expected):
        assert extract_bearer_token(header) == expected


class TestPortalAuthenticator:
    @pytest.mark.asyncio
    async def test_valid_credential_and_session(self, db_session, codecs, admin_user):
        token = await _login(db_session, codecs, admin_user)
        auth = PortalAuthenticator(codecs.portal, db_session, SessionStore(db_session))

        principal = await auth.authenticate(token)

        assert isinstance(principal, PortalPrincipal)
        assert principal.id == admin_user.id
        assert principal.role == "admin"
        assert principal.session is not None

    @pytest.mark.asyncio
    async def test_missing_token(self, db_session, codecs):
        auth = PortalAuthenticator(codecs.portal, db_session, SessionStore(db_session))
        with pytest.raises(Unauthenticated):
            await auth.authenticate(None)

    @pytest.mark.asyncio
    async def test_tampered_token(self, db_session, codecs, admin_user):
        token = await _login(db_session, codecs, admin_user)
        header, _, signature = token.split(".")
        forged_payload = codecs.portal.sign("999", role="admin").split(".")[1]
        auth = PortalAuthenticator(codecs.portal, db_session, SessionStore(db_session))

        with pytest.raises(Unauthenticated):
            await auth.authenticate(f"{header}.{forged_payload}.{signature}")

    @pytest.mark.asyncio
    async def test_valid_jwt_without_session_is_rejected(self, db_session, codecs, admin_user):
        token = codecs.portal.sign(str(admin_user.id), role="admin")
        auth = PortalAuthenticator(codecs.portal, db_session, SessionStore(db_session))

        with pytest.raises(Unauthenticated):
            await auth.authenticate(token)

    @pytest.mark.asyncio
    async def test_revoked_session_rejects_unexpired_jwt(self, db_session, codecs, admin_user):
        token = await _login(db_session, codecs, admin_user)
        store = SessionStore(db_session)
        auth = PortalAuthenticator(codecs.portal, db_session, store)
        principal = await auth.authenticate(token)

        await store.revoke(principal.session.id, "revoked_by_admin")
        await db_session.commit()

        with pytest.raises(Unauthenticated):
            await auth.authenticate(token)

    @pytest.mark.asyncio
    async def test_expired_session_rejected(self, db_session, codecs, admin_user):
        # JWT still valid for a day, session row already expired
        now = datetime.now(timezone.utc)
        token = codecs.portal.sign(str(admin_user.id), role="admin", ttl=timedelta(days=1), now=now)
        await SessionStore(db_session).create(
            admin_user.id, token, timedelta(hours=1), now=now - timedelta(hours=2)
        )
        await db_session.commit()
        auth = PortalAuthenticator(codecs.portal, db_session, SessionStore(db_session))

        with pytest.raises(Unauthenticated):
            await auth.authenticate(token)

    @pytest.mark.asyncio
    async def test_inactive_user_rejected(self, db_session, codecs, staff_user):
        token = await _login(db_session, codecs, staff_user)
        staff_user.is_active = False
        await db_session.commit()
        auth = PortalAuthenticator(codecs.portal, db_session, SessionStore(db_session))

        with pytest.raises(Unauthenticated):
            await auth.authenticate(token)

    @pytest.mark.asyncio
    async def test_store_failure_is_unauthenticated(self, db_session, codecs, admin_user):
        token = await _login(db_session, codecs, admin_user)
        store = SessionStore(db_session)
        store.db = AsyncMock()
        store.db.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        auth = PortalAuthenticator(codecs.portal, db_session, store)

        with pytest.raises(Unauthenticated):
            await auth.authenticate(token)

    @pytest.mark.asyncio
    async def test_driver_credential_rejected_by_portal(self, db_session, codecs, admin_user):
        token = codecs.driver_access.sign(str(admin_user.id), role=DRIVER_ROLE)
        auth = PortalAuthenticator(codecs.portal, db_session, SessionStore(db_session))

        with pytest.raises(Unauthenticated):
            await auth.authenticate(token)


class TestDriverAuthenticator:
    def test_valid_driver_token(self, codecs):
        token = codecs.driver_access.sign("17", role=DRIVER_ROLE, extra={"deviceId": "dev-9"})
        principal = DriverAuthenticator(codecs.driver_access).authenticate(f"Bearer {token}")

        assert isinstance(principal, DriverPrincipal)
        assert principal.id == "17"
        assert principal.device_id == "dev-9"

    def test_missing_header_is_401(self, codecs):
        with pytest.raises(Unauthenticated) as exc_info:
            DriverAuthenticator(codecs.driver_access).authenticate(None)
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Missing token"

    def test_invalid_token_is_401(self, codecs):
        with pytest.raises(Unauthenticated) as exc_info:
            DriverAuthenticator(codecs.driver_access).authenticate("Bearer nonsense")
        assert exc_info.value.message == "Invalid token"

    def test_portal_role_is_403(self, codecs):
        token = codecs.driver_access.sign("17", role="PORTAL_USER")
        with pytest.raises(Forbidden) as exc_info:
            DriverAuthenticator(codecs.driver_access).authenticate(f"Bearer {token}")
        assert exc_info.value.status_code == 403

    def test_refresh_token_is_not_an_access_token(self, codecs):
        token = codecs.driver_refresh.sign("17", extra={"deviceId": "d", "typ": "refresh"})
        with pytest.raises(Unauthenticated):
            DriverAuthenticator(codecs.driver_access).authenticate(f"Bearer {token}")

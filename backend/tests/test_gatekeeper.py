"""
Tests for the edge gatekeeper middleware.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from middleware.gatekeeper import EdgeGatekeeperMiddleware, is_protected_path
from services.tokens import TokenCodec

SECRET = "gatekeeper-secret-0123456789abcdef0123456789"


def auth_cookie(token: str) -> dict[str, str]:
    return {"Cookie": f"auth-token={token}"}


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(SECRET, "sdk-admin-portal", "sdk-admin-portal-web")


@pytest.fixture
def page_app(codec) -> FastAPI:
    """Minimal app with a protected page and a public page."""
    app = FastAPI()

    @app.get("/dashboard")
    async def dashboard():
        return {"page": "dashboard"}

    @app.get("/dashboard/reports")
    async def reports():
        return {"page": "reports"}

    @app.get("/dashboards")
    async def dashboards():
        return {"page": "dashboards"}

    @app.get("/public-page")
    async def public():
        return {"page": "public"}

    @app.get("/auth/signin")
    async def signin():
        return {"page": "signin"}

    @app.get("/boom")
    async def boom():
        return {"page": "boom"}

    app.add_middleware(
        EdgeGatekeeperMiddleware,
        codec=codec,
        protected_prefixes=["/dashboard", "/users", "boom"],
        cookie_name="auth-token",
        sign_in_path="/auth/signin",
    )
    return app


@pytest_asyncio.fixture
async def page_client(page_app):
    async with AsyncClient(transport=ASGITransport(app=page_app), base_url="http://test") as ac:
        yield ac


class TestIsProtectedPath:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/dashboard", True),
            ("/dashboard/", True),
            ("/dashboard/reports/2026", True),
            ("/dashboards", True),
            ("/public-page", False),
            ("/", False),
            ("/users", True),
        ],
    )
    def test_prefix_matching(self, path, expected):
        assert is_protected_path(path, ("/dashboard", "/users")) is expected

    @pytest.mark.parametrize("path", ["/accounts/statements", "/users-admin", "/claimsreport"])
    def test_shared_stem_is_protected(self, path):
        assert is_protected_path(path, ("/account", "/users", "/claims")) is True


class TestGatekeeper:
    @pytest.mark.asyncio
    async def test_no_cookie_redirects_to_sign_in(self, page_client):
        response = await page_client.get("/dashboard")

        assert response.status_code == 307
        assert response.headers["location"] == "/auth/signin"

    @pytest.mark.asyncio
    async def test_valid_cookie_passes(self, page_client, codec):
        token = codec.sign("1", role="admin")
        response = await page_client.get("/dashboard", headers=auth_cookie(token))

        assert response.status_code == 200
        assert response.json() == {"page": "dashboard"}

    @pytest.mark.asyncio
    async def test_nested_path_is_protected(self, page_client):
        response = await page_client.get("/dashboard/reports")
        assert response.status_code == 307

    @pytest.mark.asyncio
    async def test_public_page_passes(self, page_client):
        response = await page_client.get("/public-page")

        assert response.status_code == 200
        assert response.json() == {"page": "public"}

    @pytest.mark.asyncio
    async def test_shared_stem_redirects(self, page_client):
        response = await page_client.get("/dashboards")

        assert response.status_code == 307
        assert response.headers["location"] == "/auth/signin"

    @pytest.mark.asyncio
    async def test_prefix_without_leading_slash_is_normalized(self, page_client):
        response = await page_client.get("/boom")
        assert response.status_code == 307

    @pytest.mark.asyncio
    async def test_sign_in_page_is_reachable(self, page_client):
        response = await page_client.get("/auth/signin")
        assert response.status_code == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["garbage", "a.b.c", "x" * 5000])
    async def test_bad_cookie_redirects_never_500(self, page_client, token):
        response = await page_client.get("/dashboard", headers=auth_cookie(token))

        assert response.status_code == 307
        assert response.headers["location"] == "/auth/signin"

    @pytest.mark.asyncio
    async def test_expired_cookie_redirects(self, page_client, codec):
        issued = datetime.now(timezone.utc) - timedelta(hours=9)
        token = codec.sign("1", ttl=timedelta(hours=8), now=issued)

        response = await page_client.get("/dashboard", headers=auth_cookie(token))
        assert response.status_code == 307

    @pytest.mark.asyncio
    async def test_cookie_signed_with_other_secret_redirects(self, page_client):
        other = TokenCodec("some-other-secret-0123456789abcdef0123", "sdk-admin-portal", "sdk-admin-portal-web")
        response = await page_client.get("/dashboard", headers=auth_cookie(other.sign("1")))

        assert response.status_code == 307


class TestGatekeeperInApplication:
    """The gatekeeper is installed by create_app with the default prefixes."""

    @pytest.mark.asyncio
    async def test_default_prefix_redirects(self, client):
        response = await client.get("/policies/123")

        assert response.status_code == 307
        assert response.headers["location"] == "/auth/signin"

    @pytest.mark.asyncio
    async def test_api_routes_are_not_redirected(self, client):
        response = await client.get("/api/auth/user")

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Unauthorized"}
        assert response.headers["www-authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_valid_portal_cookie_passes_through(self, client, codecs):
        token = codecs.portal.sign("1", role="admin")
        response = await client.get("/dashboard", headers=auth_cookie(token))

        # Page rendering lives in the frontend; the gatekeeper let it through
        assert response.status_code == 404

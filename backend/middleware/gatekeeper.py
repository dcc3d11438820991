"""Edge gatekeeper: redirect unauthenticated page requests to sign-in.

Runs ahead of every handler for the configured path prefixes and only checks
that the auth cookie carries a valid signed credential. Session revocation is
enforced later, by the route-level authenticator, so no database access
happens here.
"""

import logging
from typing import Callable, Iterable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse, Response
from starlette.types import ASGIApp

from services.tokens import TokenCodec

logger = logging.getLogger(__name__)


def _normalize_prefix(prefix: str) -> str:
    prefix = prefix.strip()
    if not prefix.startswith("/"):
        prefix = "/" + prefix
    return prefix.rstrip("/") or "/"


def is_protected_path(path: str, prefixes: Iterable[str]) -> bool:
    """
    True if `path` starts with any of `prefixes`.

    Plain string prefixes: `/users` also covers `/users-admin`.
    """
    return any(path.startswith(prefix) for prefix in prefixes)


class EdgeGatekeeperMiddleware(BaseHTTPMiddleware):
    """
    Redirect requests for protected page prefixes that lack a valid cookie.

    Any failure while checking the credential results in a redirect, never
    an error response.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        codec: TokenCodec,
        protected_prefixes: Iterable[str],
        cookie_name: str = "auth-token",
        sign_in_path: str = "/auth/signin",
    ):
        super().__init__(app)
        self.codec = codec
        self.protected_prefixes = tuple(_normalize_prefix(p) for p in protected_prefixes if p.strip())
        self.cookie_name = cookie_name
        self.sign_in_path = sign_in_path

    def _redirect(self) -> RedirectResponse:
        return RedirectResponse(url=self.sign_in_path, status_code=307)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path == self.sign_in_path or not is_protected_path(path, self.protected_prefixes):
            return await call_next(request)

        token = request.cookies.get(self.cookie_name)
        if not token:
            logger.debug("No auth cookie for %s, redirecting to sign-in", path)
            return self._redirect()

        try:
            self.codec.verify(token)
        except Exception as e:
            logger.warning(
                "Gatekeeper rejected credential for %s: %s (%s)", path, type(e).__name__, e
            )
            return self._redirect()

        return await call_next(request)

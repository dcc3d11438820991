"""JWT signing and verification for portal and driver-app credentials."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import uuid4

from jose import JWTError, jwt

from config import AuthConfig
from services.errors import (
    AudienceMismatch,
    ConfigurationError,
    InvalidSignature,
    IssuerMismatch,
    MalformedToken,
    TokenExpired,
)

logger = logging.getLogger(__name__)

DRIVER_ROLE = "DRIVER"
REFRESH_TOKEN_TYPE = "refresh"

RESERVED_CLAIMS = frozenset({"sub", "role", "iss", "aud", "iat", "exp", "jti"})

# Signature is verified by jose; time and scope claims are checked below so
# each failure maps to its own exception and "now" can be supplied by callers.
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_aud": False,
    "verify_iss": False,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_sub": False,
    "verify_jti": False,
}


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of a credential."""

    subject: str
    role: Optional[str]
    issuer: str
    audience: str
    issued_at: int
    expires_at: int
    token_id: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc)


def _timestamp(now: Optional[datetime]) -> int:
    return int((now or datetime.now(timezone.utc)).timestamp())


class TokenCodec:
    """
    Signs and verifies one credential family.

    A codec is bound to a single secret plus the issuer/audience pair, so
    tokens minted for one family never verify under another.
    """

    def __init__(
        self,
        secret: str,
        issuer: str,
        audience: str,
        *,
        algorithm: str = "HS256",
        default_ttl: timedelta = timedelta(hours=8),
        leeway_seconds: int = 0,
    ):
        if not secret:
            raise ConfigurationError("Token codec requires a signing secret")
        self._secret = secret
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm
        self.default_ttl = default_ttl
        self.leeway_seconds = leeway_seconds

    def sign(
        self,
        subject: str,
        *,
        role: Optional[str] = None,
        ttl: Optional[timedelta] = None,
        extra: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Create a signed credential for `subject`.

        Args:
            subject: Principal id, stored as the `sub` claim
            role: Optional role claim
            ttl: Lifetime, defaults to the codec's default_ttl
            extra: Additional non-reserved claims (e.g. deviceId)
            now: Issue time, defaults to the current UTC time

        Returns:
            Encoded JWT string
        """
        extra = dict(extra or {})
        clashing = RESERVED_CLAIMS.intersection(extra)
        if clashing:
            raise ValueError(f"Reserved claims cannot be overridden: {sorted(clashing)}")

        issued_at = _timestamp(now)
        lifetime = ttl if ttl is not None else self.default_ttl

        to_encode: dict[str, Any] = {
            **extra,
            "sub": str(subject),
            "iss": self.issuer,
            "aud": self.audience,
            "iat": issued_at,
            "exp": issued_at + int(lifetime.total_seconds()),
            "jti": str(uuid4()),
        }
        if role is not None:
            to_encode["role"] = role

        return jwt.encode(to_encode, self._secret, algorithm=self.algorithm)

    def verify(self, token: str, *, now: Optional[datetime] = None) -> TokenClaims:
        """
        Verify a credential and return its claims.

        Raises:
            MalformedToken: token cannot be parsed or lacks sub/exp
            InvalidSignature: signature does not match this codec's secret
            TokenExpired: exp is not in the future
            IssuerMismatch: iss differs from the expected issuer
            AudienceMismatch: aud does not contain the expected audience
        """
        if not token or not isinstance(token, str):
            raise MalformedToken("Empty token")

        try:
            jwt.get_unverified_claims(token)
        except JWTError as e:
            raise MalformedToken(str(e)) from e

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options=_DECODE_OPTIONS,
            )
        except JWTError as e:
            raise InvalidSignature(str(e)) from e

        subject = payload.get("sub")
        expires_at = payload.get("exp")
        issued_at = payload.get("iat", 0)
        if not isinstance(subject, str) or not subject:
            raise MalformedToken("Missing sub claim")
        if not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool):
            raise MalformedToken("Missing exp claim")

        if expires_at + self.leeway_seconds <= _timestamp(now):
            raise TokenExpired("Token has expired")

        if payload.get("iss") != self.issuer:
            raise IssuerMismatch(f"Unexpected issuer {payload.get('iss')!r}")

        audience = payload.get("aud")
        audiences = audience if isinstance(audience, list) else [audience]
        if self.audience not in audiences:
            raise AudienceMismatch(f"Unexpected audience {audience!r}")

        extra = {k: v for k, v in payload.items() if k not in RESERVED_CLAIMS}
        role = payload.get("role")

        return TokenClaims(
            subject=subject,
            role=role if isinstance(role, str) else None,
            issuer=self.issuer,
            audience=self.audience,
            issued_at=int(issued_at) if isinstance(issued_at, (int, float)) else 0,
            expires_at=int(expires_at),
            token_id=payload.get("jti"),
            extra=extra,
        )


@dataclass(frozen=True)
class TokenCodecs:
    """The three credential families, each with its own secret."""

    portal: TokenCodec
    driver_access: TokenCodec
    driver_refresh: TokenCodec

    @classmethod
    def from_config(cls, config: AuthConfig) -> "TokenCodecs":
        return cls(
            portal=TokenCodec(
                config.portal_secret,
                config.issuer,
                config.audience,
                algorithm=config.algorithm,
                default_ttl=timedelta(seconds=config.portal_ttl_seconds),
            ),
            driver_access=TokenCodec(
                config.driver_access_secret,
                config.issuer,
                config.audience,
                algorithm=config.algorithm,
                default_ttl=timedelta(seconds=config.driver_access_ttl_seconds),
            ),
            driver_refresh=TokenCodec(
                config.driver_refresh_secret,
                config.issuer,
                config.audience,
                algorithm=config.algorithm,
                default_ttl=timedelta(days=config.driver_refresh_ttl_days),
            ),
        )

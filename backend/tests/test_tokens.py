"""
Tests for the token codec.
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from services.errors import (
    AudienceMismatch,
    ConfigurationError,
    InvalidSignature,
    IssuerMismatch,
    MalformedToken,
    TokenExpired,
    TokenVerificationError,
)
from services.tokens import DRIVER_ROLE, TokenCodec, TokenCodecs

SECRET = "codec-test-secret-0123456789abcdef0123456789"
ISSUER = "sdk-admin-portal"
AUDIENCE = "sdk-admin-portal-web"


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(SECRET, ISSUER, AUDIENCE)


class TestSignAndVerify:
    """Round trip and claim contents."""

    def test_round_trip_preserves_subject_and_role(self, codec):
        token = codec.sign("42", role="admin")
        claims = codec.verify(token)

        assert claims.subject == "42"
        assert claims.role == "admin"
        assert claims.issuer == ISSUER
        assert claims.audience == AUDIENCE

    def test_expiry_follows_ttl(self, codec):
        now = datetime.now(timezone.utc)
        token = codec.sign("1", ttl=timedelta(hours=8), now=now)
        claims = codec.verify(token, now=now)

        assert claims.expires_at - claims.issued_at == 8 * 3600

    def test_extra_claims_round_trip(self, codec):
        token = codec.sign("7", role=DRIVER_ROLE, extra={"deviceId": "dev-1"})
        claims = codec.verify(token)

        assert claims.extra == {"deviceId": "dev-1"}

    def test_tokens_minted_in_same_second_differ(self, codec):
        now = datetime.now(timezone.utc)
        assert codec.sign("1", now=now) != codec.sign("1", now=now)

    def test_reserved_claims_cannot_be_overridden(self, codec):
        with pytest.raises(ValueError):
            codec.sign("1", extra={"sub": "2"})

    def test_missing_role_is_none(self, codec):
        claims = codec.verify(codec.sign("1"))
        assert claims.role is None


class TestVerificationFailures:
    """Each failure maps to its own exception."""

    def test_wrong_secret_is_invalid_signature(self, codec):
        other = TokenCodec("another-secret-entirely-0123456789abcdef", ISSUER, AUDIENCE)
        token = other.sign("1", role="admin")

        with pytest.raises(InvalidSignature):
            codec.verify(token)

    def test_wrong_secret_and_expired_is_still_invalid_signature(self, codec):
        other = TokenCodec("another-secret-entirely-0123456789abcdef", ISSUER, AUDIENCE)
        token = other.sign("1", ttl=timedelta(seconds=-10))

        with pytest.raises(InvalidSignature):
            codec.verify(token)

    def test_past_expiry_is_expired(self, codec):
        issued = datetime.now(timezone.utc) - timedelta(hours=9)
        token = codec.sign("1", ttl=timedelta(hours=8), now=issued)

        with pytest.raises(TokenExpired):
            codec.verify(token)

    def test_expiry_boundary(self, codec):
        t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
        token = codec.sign("1", ttl=timedelta(hours=8), now=t0)

        codec.verify(token, now=t0 + timedelta(hours=7, minutes=59))
        with pytest.raises(TokenExpired):
            codec.verify(token, now=t0 + timedelta(hours=8))

    def test_issuer_mismatch(self, codec):
        token = TokenCodec(SECRET, "someone-else", AUDIENCE).sign("1")

        with pytest.raises(IssuerMismatch):
            codec.verify(token)

    def test_audience_mismatch(self, codec):
        token = TokenCodec(SECRET, ISSUER, "driver-app").sign("1")

        with pytest.raises(AudienceMismatch):
            codec.verify(token)

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b", "a.b.c"])
    def test_garbage_is_malformed(self, codec, token):
        with pytest.raises(MalformedToken):
            codec.verify(token)

    def test_missing_subject_is_malformed(self, codec):
        token = jwt.encode(
            {"iss": ISSUER, "aud": AUDIENCE, "exp": 4102444800},
            SECRET,
            algorithm="HS256",
        )
        with pytest.raises(MalformedToken):
            codec.verify(token)

    def test_all_failures_share_a_base_class(self, codec):
        with pytest.raises(TokenVerificationError):
            codec.verify("garbage")


class TestCodecConfiguration:
    def test_empty_secret_is_rejected(self):
        with pytest.raises(ConfigurationError):
            TokenCodec("", ISSUER, AUDIENCE)

    def test_families_do_not_cross_verify(self, codecs):
        access = codecs.driver_access.sign("5", role=DRIVER_ROLE, extra={"deviceId": "d"})

        with pytest.raises(InvalidSignature):
            codecs.driver_refresh.verify(access)
        with pytest.raises(InvalidSignature):
            codecs.portal.verify(access)

    def test_default_ttls_come_from_config(self, auth_config):
        bundle = TokenCodecs.from_config(auth_config)

        assert bundle.portal.default_ttl == timedelta(seconds=28800)
        assert bundle.driver_access.default_ttl == timedelta(seconds=900)
        assert bundle.driver_refresh.default_ttl == timedelta(days=30)

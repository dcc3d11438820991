"""Auth error taxonomy shared by services, dependencies and exception handlers."""

from typing import Optional

from config import ConfigurationError

__all__ = [
    "AuthError",
    "Unauthenticated",
    "Forbidden",
    "InvalidCredentials",
    "PinLocked",
    "BadRequest",
    "NotFound",
    "TransientStoreError",
    "ConfigurationError",
    "TokenVerificationError",
    "MalformedToken",
    "InvalidSignature",
    "TokenExpired",
    "IssuerMismatch",
    "AudienceMismatch",
]


class AuthError(Exception):
    """
    Base class for errors rendered to API callers.

    `message` is the public text; internal causes are logged, never echoed.
    """

    status_code = 400
    default_message = "Request rejected"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(AuthError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(AuthError):
    status_code = 403
    default_message = "Forbidden"


class InvalidCredentials(Unauthenticated):
    default_message = "Invalid credentials"


class PinLocked(AuthError):
    status_code = 429
    default_message = "PIN locked. Try again later."


class BadRequest(AuthError):
    status_code = 400
    default_message = "Bad request"


class NotFound(AuthError):
    status_code = 404
    default_message = "Not found"


class TransientStoreError(Exception):
    """Database unavailable while reading or writing auth state."""


class TokenVerificationError(Exception):
    """A credential failed verification. Subclasses name the reason for logs."""


class MalformedToken(TokenVerificationError):
    pass


class InvalidSignature(TokenVerificationError):
    pass


class TokenExpired(TokenVerificationError):
    pass


class IssuerMismatch(TokenVerificationError):
    pass


class AudienceMismatch(TokenVerificationError):
    pass

"""Password and PIN hashing (argon2id)."""

import logging
from typing import Optional

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

logger = logging.getLogger(__name__)

_hasher = PasswordHasher(type=Type.ID)


def hash_secret(secret: str) -> str:
    """Hash a user password or driver PIN for storage."""
    return _hasher.hash(secret)


def verify_secret(stored_hash: Optional[str], secret: str) -> bool:
    """Check `secret` against a stored argon2 hash; unknown formats never match."""
    if not stored_hash or not secret:
        return False
    try:
        return _hasher.verify(stored_hash, secret)
    except VerifyMismatchError:
        return False
    except (InvalidHash, VerificationError):
        logger.warning("Stored secret hash could not be verified")
        return False

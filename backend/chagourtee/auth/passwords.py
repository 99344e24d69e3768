"""Password hashing with Argon2id."""
import logging
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

logger = logging.getLogger(__name__)

_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    """Check ``password`` against a stored hash.

    Accounts without a stored hash never match.
    """
    if not hashed:
        return False
    try:
        return _hasher.verify(hashed, password)
    except VerificationError:
        return False
    except InvalidHashError:
        logger.warning("[auth] Stored password hash is not a valid Argon2 hash")
        return False

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from services.logs_service import logger as root_logger

logger = root_logger.getChild("password")

# argon2 embeds a fresh random salt in every hash
ph = PasswordHasher()


def hash_password(password: str) -> str:
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plaintext password against a stored argon2 hash.

    Never raises for a bad password or a corrupted hash; both count as a
    mismatch so callers can answer with a single generic error.
    """
    try:
        return ph.verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except InvalidHash:
        logger.error("Stored password hash is not a valid argon2 hash")
        return False
    except VerificationError:
        logger.exception("General Argon2 verification error")
        return False

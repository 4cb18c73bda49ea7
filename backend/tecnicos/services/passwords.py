import logging
import secrets

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return str(pwd_context.hash(password))


def verify_password(password: str, encoded: str) -> bool:
    try:
        return bool(pwd_context.verify(password, encoded))
    except (ValueError, TypeError) as exc:
        logger.warning("Unreadable password hash: %s", exc)
        return False


def new_token() -> str:
    return secrets.token_hex(32)

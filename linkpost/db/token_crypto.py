import logging

from cryptography.fernet import Fernet, InvalidToken
from linkpost.config import settings

logger = logging.getLogger(__name__)

def _fernet() -> Fernet:
    return Fernet(settings.require("fernet_key").encode())

def encrypt_token(plain: str) -> str:
    return _fernet().encrypt(plain.encode()).decode()

def encrypt_optional(plain: str | None) -> str | None:
    return encrypt_token(plain) if plain else None

def decrypt_token(cipher: str) -> str:
    try:
        return _fernet().decrypt(cipher.encode()).decode()
    except (TypeError, InvalidToken) as e:
        # Propagate; callers treat an unreadable token as "not connected"
        logger.error("[token_crypto] decrypt error: %s", e.__class__.__name__)
        raise

def decrypt_optional(cipher: str | None) -> str | None:
    return decrypt_token(cipher) if cipher else None

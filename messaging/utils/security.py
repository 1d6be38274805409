import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from cryptography.fernet import Fernet, InvalidToken

from messaging.config import get_settings

logger = logging.getLogger(__name__)

_fernet: Optional[Fernet] = None


def create_access_token(subject: str | int, expires_minutes: int = 60) -> str:
    """Issue a bearer token. Tokens are normally minted by the auth service; this is for tooling and tests."""
    settings = get_settings()
    payload = {
        "sub": str(subject),
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def _get_fernet() -> Fernet:
    global _fernet
    if _fernet is None:
        key = get_settings().encryption_key
        if not key:
            logger.warning("MESSAGING_ENCRYPTION_KEY not set; sealed data will not survive a restart")
            key = Fernet.generate_key().decode("ascii")
        _fernet = Fernet(key)
    return _fernet


def seal(plaintext: str) -> str:
    return _get_fernet().encrypt(plaintext.encode("utf-8")).decode("ascii")


def unseal(ciphertext: str) -> Optional[str]:
    try:
        return _get_fernet().decrypt(ciphertext.encode("ascii")).decode("utf-8")
    except (InvalidToken, ValueError):
        logger.warning("Failed to unseal stored ciphertext")
        return None

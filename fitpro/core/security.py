import logging
import bcrypt
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt

from fitpro.core.config import Settings

logger = logging.getLogger(__name__)

# bcrypt hard limit
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.
    
    Passwords longer than 72 bytes must be rejected before calling this;
    bcrypt would otherwise ignore the tail.
    
    Raises:
        ValueError: If the password is empty or too long
    """
    password_bytes = password.encode('utf-8')
    if not password_bytes:
        raise ValueError("Password must not be empty")
    if len(password_bytes) > MAX_PASSWORD_BYTES:
        raise ValueError("Password must be 72 characters or fewer")
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt()).decode('utf-8')


def verify_password(password: str, hashed: Optional[str]) -> bool:
    """Verify a password against its bcrypt hash."""
    if not hashed:
        return False
    password_bytes = password.encode('utf-8')[:MAX_PASSWORD_BYTES]
    try:
        return bcrypt.checkpw(password_bytes, hashed.encode('utf-8'))
    except (ValueError, TypeError) as e:
        logger.error(f"Password verification failed: {e}")
        return False


def create_access_token(data: dict, settings: Settings, expires_delta: timedelta = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)

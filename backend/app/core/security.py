from datetime import timedelta
from typing import Any, Dict, Optional

import bcrypt
from jose import jwt

from app.core.config import settings
from app.core.time_utils import get_utc_now

ALGORITHM = settings.JWT_ALGORITHM


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store
        return False


def create_access_token(
    subject: Any, session_id: str, expires_delta: Optional[timedelta] = None
) -> str:
    """
    Issue a signed token for an authenticated session.
    `sub` is the principal id, `sid` the server-side session it belongs to.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    expire = get_utc_now() + expires_delta
    to_encode = {"exp": expire, "sub": str(subject), "sid": session_id}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Raises jose.JWTError on a bad signature or an expired token."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])

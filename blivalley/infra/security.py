"""
Password hashing and access tokens.

Passwords are hashed with bcrypt; API clients authenticate with a signed
HS256 JWT whose `sub` claim is the user id.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt

from blivalley.domain.errors import AuthenticationError
from blivalley.infra.config import get_settings

BCRYPT_COST_FACTOR = 10
JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt(rounds=BCRYPT_COST_FACTOR)
    ).decode('utf-8')


def verify_password(password: str, stored_hash: Optional[str]) -> bool:
    """Check a candidate password against a stored bcrypt hash"""
    if not stored_hash:
        return False
    return bcrypt.checkpw(password.encode('utf-8'), stored_hash.encode('utf-8'))


def create_access_token(user_id: str, secret_key: Optional[str] = None,
                        ttl_minutes: Optional[int] = None) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(minutes=ttl_minutes or settings.token_ttl_minutes),
    }
    return jwt.encode(payload, secret_key or settings.secret_key, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, secret_key: Optional[str] = None) -> str:
    """Return the user id carried by a valid token"""
    try:
        payload = jwt.decode(
            token,
            secret_key or get_settings().secret_key,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Session expired, please sign in again")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid authentication token")
    return payload["sub"]

"""
Password hashing and bearer access tokens.

Passwords are stored as Argon2id hashes. Access tokens are signed JWTs
carrying the user id in `sub` plus the role and email of the principal.
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional, Dict, Any

from jose import JWTError, jwt
from passlib.context import CryptContext

import config
from time_utils import utc_now

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def _signing_key() -> str:
    if config.JWT_SECRET_KEY:
        return config.JWT_SECRET_KEY
    if config.is_production_like():
        raise ValueError(f"JWT_SECRET_KEY must be set when ENVIRONMENT={config.ENVIRONMENT}")
    logger.warning("⚠️  JWT_SECRET_KEY not set; tokens are signed with a per-process key and die on restart.")
    return "dev-" + secrets.token_urlsafe(32)


SIGNING_KEY = _signing_key()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign an access token for the given claims.

    Args:
        claims: Principal claims, at least `sub` (the user id as a string)
        expires_delta: Lifetime override; defaults to ACCESS_TOKEN_EXPIRE_MINUTES
    """
    lifetime = expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {**claims, "type": "access", "exp": utc_now() + lifetime}
    logger.debug(f"Issuing access token for user {claims.get('sub')}")
    return jwt.encode(payload, SIGNING_KEY, algorithm=config.JWT_ALGORITHM)


def token_for_user(user) -> str:
    return create_access_token({"sub": str(user.id), "role": user.role, "email": user.email})


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Claims of a correctly signed, unexpired token, or None."""
    try:
        return jwt.decode(token, SIGNING_KEY, algorithms=[config.JWT_ALGORITHM])
    except JWTError as e:
        logger.info(f"Rejected bearer token: {e}")
        return None

"""
Password hashing, session tokens and opaque id generation.

Responsibilities:
- Hash passwords with Argon2id and verify them through the same primitive
- Issue HS256-signed session tokens carrying userId, username and exp
- Verify tokens, collapsing every failure reason into ``None``
- Generate random 128-bit ids for every stored entity
"""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

TOKEN_ALGORITHM = "HS256"
DEFAULT_TOKEN_TTL_SECONDS = 60 * 60 * 24

_hasher = PasswordHasher()


@dataclass(frozen=True)
class TokenPayload:
    user_id: str
    username: str
    expires_at: int


def generate_id() -> str:
    """Return a random 128-bit id as 32 hex characters."""
    return uuid.uuid4().hex


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, encoded_hash: str) -> bool:
    if not password or not encoded_hash:
        return False
    try:
        return _hasher.verify(encoded_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def issue_token(
    user_id: str,
    username: str,
    *,
    secret: str,
    ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
    now: Optional[float] = None,
) -> str:
    issued_at = int(now if now is not None else time.time())
    claims = {
        "userId": user_id,
        "username": username,
        "exp": issued_at + ttl_seconds,
    }
    return jwt.encode(claims, secret, algorithm=TOKEN_ALGORITHM)


def verify_token(token: str, *, secret: str) -> Optional[TokenPayload]:
    """Return the payload of a valid token, or None.

    Malformed, unsigned, wrongly signed and expired tokens are all None so
    callers cannot tell the reasons apart.
    """
    if not token:
        return None
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[TOKEN_ALGORITHM],
            options={"require": ["exp"]},
        )
    except jwt.InvalidTokenError:
        return None
    user_id = claims.get("userId")
    username = claims.get("username")
    if not isinstance(user_id, str) or not isinstance(username, str):
        return None
    return TokenPayload(user_id=user_id, username=username, expires_at=claims["exp"])

"""
Bearer-token authorization gate.

Resolves ``Authorization: Bearer <token>`` into an Identity for the current
request. Never reads the store: an unauthenticated request is rejected before
any repository is touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from markdash.config import Settings
from markdash.dependencies import get_app_settings
from markdash.errors import AuthenticationError
from markdash.security import verify_token

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class Identity:
    user_id: str
    username: str


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def require_identity(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> Identity:
    token = extract_bearer_token(authorization)
    if token is None:
        raise AuthenticationError("Missing or invalid authorization header")

    payload = verify_token(token, secret=settings.jwt_secret)
    if payload is None:
        logger.info("Rejected bearer token on %s %s", request.method, request.url.path)
        raise AuthenticationError("Invalid or expired token")

    identity = Identity(user_id=payload.user_id, username=payload.username)
    request.state.identity = identity
    return identity

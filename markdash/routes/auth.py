"""
Registration, login and session routes.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from markdash.auth import Identity, require_identity
from markdash.config import Settings
from markdash.dependencies import get_app_settings, get_user_repository
from markdash.errors import AuthenticationError, NotFoundError
from markdash.models import UserRecord
from markdash.repositories import UserRepository
from markdash.responses import created, no_content, success
from markdash.schemas import CredentialsPayload, RegisterPayload
from markdash.security import (
    generate_id,
    hash_password,
    issue_token,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


@router.post("/register", status_code=201)
def register(
    payload: RegisterPayload,
    users: UserRepository = Depends(get_user_repository),
):
    user = UserRecord(
        id=generate_id(),
        username=payload.username,
        password_hash=hash_password(payload.password),
    )
    users.create(user)
    logger.info("Registered user %s", user.id)
    return created({"message": "User created successfully", "user": user.public_dict()})


@router.post("/login")
def login(
    payload: CredentialsPayload,
    users: UserRepository = Depends(get_user_repository),
    settings: Settings = Depends(get_app_settings),
):
    user = users.get_by_username(payload.username)
    if not user or not verify_password(payload.password, user.password_hash):
        raise AuthenticationError("Invalid username or password")

    token = issue_token(
        user.id,
        user.username,
        secret=settings.jwt_secret,
        ttl_seconds=settings.token_ttl_seconds,
    )
    return success({"token": token, "user": user.public_dict()})


@router.get("/me")
def me(
    identity: Identity = Depends(require_identity),
    users: UserRepository = Depends(get_user_repository),
):
    user = users.get_by_id(identity.user_id)
    if not user:
        raise NotFoundError("User not found")
    return success(user.public_dict())


@router.post("/logout", status_code=204)
def logout(identity: Identity = Depends(require_identity)):
    """
    Tokens are stateless; the client discards its copy.
    """
    return no_content()

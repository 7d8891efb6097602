"""
Ownership checks run before any read or write of a board, log or notification.

A resource that belongs to someone else is reported exactly like one that does
not exist, so callers cannot probe for other users' ids.
"""

from __future__ import annotations

import logging

from markdash.auth import Identity
from markdash.errors import AccessDeniedError
from markdash.models import BoardRecord
from markdash.repositories import BoardRepository

logger = logging.getLogger(__name__)


def require_owned_board(
    boards: BoardRepository, identity: Identity, board_id: str
) -> BoardRecord:
    board = boards.get_one(identity.user_id, board_id)
    if board is None:
        logger.info("Board %s not accessible to user %s", board_id, identity.user_id)
        raise AccessDeniedError("Board not found")
    return board


def require_owner(entity, identity: Identity, kind: str):
    """Entity loaded through a non-user scope must carry the caller's ownerId."""
    if entity is None or entity.owner_id != identity.user_id:
        logger.info("%s not accessible to user %s", kind, identity.user_id)
        raise AccessDeniedError(f"{kind} not found")
    return entity

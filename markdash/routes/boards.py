"""
Board routes, plus unauthenticated read of public boards.
"""

from __future__ import annotations

import dataclasses
import logging

from fastapi import APIRouter, Depends

from markdash.auth import Identity, require_identity
from markdash.dependencies import get_board_repository
from markdash.errors import NotFoundError
from markdash.models import BoardRecord, utc_now_iso
from markdash.ownership import require_owned_board
from markdash.repositories import BoardRepository
from markdash.responses import created, no_content, success
from markdash.schemas import BoardCreatePayload, BoardUpdatePayload
from markdash.security import generate_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["boards"])


@router.get("/boards")
def list_boards(
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
):
    return success([b.as_dict() for b in boards.list_by_scope(identity.user_id)])


@router.get("/boards/{board_id}")
def get_board(
    board_id: str,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
):
    board = require_owned_board(boards, identity, board_id)
    return success(board.as_dict())


@router.post("/boards", status_code=201)
def create_board(
    payload: BoardCreatePayload,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
):
    board = BoardRecord(
        id=generate_id(),
        owner_id=identity.user_id,
        title=payload.title,
        markdown_body=payload.markdown_body,
        visibility=payload.visibility,
        schedule=payload.schedule,
        reset_time=payload.reset_time,
    )
    boards.save(board)
    logger.info("User %s created board %s", identity.user_id, board.id)
    return created(board.as_dict())


@router.put("/boards/{board_id}")
def update_board(
    board_id: str,
    payload: BoardUpdatePayload,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
):
    board = require_owned_board(boards, identity, board_id)
    updated = dataclasses.replace(board, **payload.changes(), updated_at=utc_now_iso())
    boards.save(updated)
    return success(updated.as_dict())


@router.delete("/boards/{board_id}", status_code=204)
def delete_board(
    board_id: str,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
):
    require_owned_board(boards, identity, board_id)
    boards.delete(identity.user_id, board_id)
    logger.info("User %s deleted board %s", identity.user_id, board_id)
    return no_content()


@router.get("/public/{board_id}")
def get_public_board(
    board_id: str,
    boards: BoardRepository = Depends(get_board_repository),
):
    board = boards.get_public_board(board_id)
    if not board:
        raise NotFoundError("Public board not found")
    return success(board.as_dict())

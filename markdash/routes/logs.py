"""
Daily activity log routes.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from markdash.auth import Identity, require_identity
from markdash.dependencies import get_board_repository, get_log_repository
from markdash.errors import NotFoundError
from markdash.models import utc_today
from markdash.ownership import require_owned_board, require_owner
from markdash.repositories import BoardRepository, LogRepository
from markdash.responses import created, no_content, success
from markdash.schemas import LogCreatePayload

logger = logging.getLogger(__name__)

router = APIRouter(tags=["logs"])


@router.get("/logs/{board_id}")
def list_logs(
    board_id: str,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
    logs: LogRepository = Depends(get_log_repository),
):
    require_owned_board(boards, identity, board_id)
    return success([log.as_dict() for log in logs.list_by_scope(board_id)])


@router.get("/logs/{board_id}/{date}")
def get_log_for_date(
    board_id: str,
    date: str,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
    logs: LogRepository = Depends(get_log_repository),
):
    require_owned_board(boards, identity, board_id)
    log = logs.get_for_date(board_id, date)
    if not log:
        raise NotFoundError("Log not found for this date")
    require_owner(log, identity, "Log")
    return success(log.as_dict())


@router.post("/logs")
def create_or_append_log(
    payload: LogCreatePayload,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
    logs: LogRepository = Depends(get_log_repository),
):
    """
    Create the log for the given date, or append to it if one already exists.
    """
    require_owned_board(boards, identity, payload.board_id)
    log, is_new = logs.create_or_append(
        payload.board_id,
        identity.user_id,
        payload.date or utc_today(),
        [action.to_action() for action in payload.actions],
    )
    if is_new:
        return created(log.as_dict())
    return success(log.as_dict())


@router.delete("/logs/{log_id}", status_code=204)
def delete_log(
    log_id: str,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
    logs: LogRepository = Depends(get_log_repository),
):
    log = logs.find_owned(log_id, identity.user_id)
    if not log:
        raise NotFoundError("Log not found")
    require_owned_board(boards, identity, log.board_id)
    logs.remove(log)
    logger.info("User %s deleted log %s", identity.user_id, log_id)
    return no_content()

"""
Board export routes: markdown, CSV and a JSON dump of everything a user owns.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Response
from fastapi.responses import PlainTextResponse

from markdash.auth import Identity, require_identity
from markdash.dependencies import get_board_repository, get_log_repository
from markdash.exports import board_logs_to_csv, board_to_markdown, safe_filename
from markdash.models import utc_now, utc_now_iso
from markdash.ownership import require_owned_board
from markdash.repositories import BoardRepository, LogRepository

router = APIRouter(tags=["export"])


def _attachment(filename: str) -> dict:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


@router.get("/export/all/json")
def export_all_json(
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
    logs: LogRepository = Depends(get_log_repository),
):
    owned = boards.list_by_scope(identity.user_id)
    export_data = {
        "exportDate": utc_now_iso(),
        "user": {"id": identity.user_id, "username": identity.username},
        "boards": [board.as_dict() for board in owned],
        "logs": [
            log.as_dict() for board in owned for log in logs.list_by_scope(board.id)
        ],
    }
    filename = f"markdash_export_{int(utc_now().timestamp() * 1000)}.json"
    return Response(
        content=json.dumps(export_data, indent=2),
        media_type="application/json",
        headers=_attachment(filename),
    )


@router.get("/export/{board_id}/markdown", response_class=PlainTextResponse)
def export_markdown(
    board_id: str,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
    logs: LogRepository = Depends(get_log_repository),
):
    board = require_owned_board(boards, identity, board_id)
    body = board_to_markdown(board, logs.list_by_scope(board_id))
    return PlainTextResponse(
        body,
        media_type="text/markdown",
        headers=_attachment(f"{safe_filename(board.title)}.md"),
    )


@router.get("/export/{board_id}/csv", response_class=PlainTextResponse)
def export_csv(
    board_id: str,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
    logs: LogRepository = Depends(get_log_repository),
):
    board = require_owned_board(boards, identity, board_id)
    body = board_logs_to_csv(board, logs.list_by_scope(board_id))
    return PlainTextResponse(
        body,
        media_type="text/csv",
        headers=_attachment(f"{safe_filename(board.title)}_logs.csv"),
    )

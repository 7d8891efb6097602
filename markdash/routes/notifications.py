"""
Board notification routes.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from markdash.auth import Identity, require_identity
from markdash.dependencies import get_board_repository, get_notification_repository
from markdash.errors import NotFoundError
from markdash.models import NotificationRecord
from markdash.ownership import require_owned_board
from markdash.repositories import BoardRepository, NotificationRepository
from markdash.responses import created, no_content, success
from markdash.schemas import NotificationCreatePayload
from markdash.security import generate_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


def _find_notification(
    notifications: NotificationRepository,
    boards: BoardRepository,
    identity: Identity,
    notification_id: str,
) -> NotificationRecord:
    notification = notifications.find_owned(notification_id, identity.user_id)
    if not notification:
        raise NotFoundError("Notification not found")
    require_owned_board(boards, identity, notification.board_id)
    return notification


@router.get("/notify/{board_id}")
def list_notifications(
    board_id: str,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
    notifications: NotificationRepository = Depends(get_notification_repository),
):
    """
    Undismissed notifications for a board.
    """
    require_owned_board(boards, identity, board_id)
    return success([n.as_dict() for n in notifications.list_active(board_id)])


@router.post("/notify", status_code=201)
def create_notification(
    payload: NotificationCreatePayload,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
    notifications: NotificationRepository = Depends(get_notification_repository),
):
    require_owned_board(boards, identity, payload.board_id)
    notification = NotificationRecord(
        id=generate_id(),
        board_id=payload.board_id,
        owner_id=identity.user_id,
        message=payload.message,
        time=payload.time,
    )
    notifications.save(notification)
    return created(notification.as_dict())


@router.patch("/notify/{notification_id}/dismiss")
def dismiss_notification(
    notification_id: str,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
    notifications: NotificationRepository = Depends(get_notification_repository),
):
    notification = _find_notification(notifications, boards, identity, notification_id)
    return success(notifications.dismiss(notification).as_dict())


@router.delete("/notify/{notification_id}", status_code=204)
def delete_notification(
    notification_id: str,
    identity: Identity = Depends(require_identity),
    boards: BoardRepository = Depends(get_board_repository),
    notifications: NotificationRepository = Depends(get_notification_repository),
):
    notification = _find_notification(notifications, boards, identity, notification_id)
    notifications.remove(notification)
    return no_content()

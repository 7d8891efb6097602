"""
Entity repositories translating domain operations into keyspace operations.

Keyspace::

    ("user", user_id)                      -> User
    ("user_by_username", username)         -> user_id
    ("board", owner_id, board_id)          -> Board
    ("log", board_id, date)                -> Log
    ("notif", board_id, notification_id)   -> Notification

There is no index from a bare board/log/notification id to its scope, so
lookups by id alone scan every scope of that kind.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, Iterator, List, Optional, TypeVar

from markdash.errors import ConflictError
from markdash.kv import KvStore
from markdash.models import (
    BoardRecord,
    LogAction,
    LogRecord,
    NotificationRecord,
    UserRecord,
    utc_now_iso,
)
from markdash.security import generate_id

logger = logging.getLogger(__name__)

USER_KIND = "user"
USERNAME_INDEX_KIND = "user_by_username"
BOARD_KIND = "board"
LOG_KIND = "log"
NOTIFICATION_KIND = "notif"

RecordT = TypeVar("RecordT")


class UserRepository:
    def __init__(self, store: KvStore):
        self.store = store

    def get_by_id(self, user_id: str) -> Optional[UserRecord]:
        data = self.store.get((USER_KIND, user_id))
        return UserRecord.from_dict(data) if data else None

    def get_by_username(self, username: str) -> Optional[UserRecord]:
        user_id = self.store.get((USERNAME_INDEX_KIND, username))
        if not user_id:
            return None
        return self.get_by_id(user_id)

    def create(self, user: UserRecord) -> UserRecord:
        """Persist a new user, enforcing username uniqueness via the index.

        The check and the two writes are separate store calls; two concurrent
        registrations of one username can both pass the check.
        """
        if self.store.get((USERNAME_INDEX_KIND, user.username)) is not None:
            raise ConflictError("Username already exists")
        self.store.put((USER_KIND, user.id), user.as_dict())
        self.store.put((USERNAME_INDEX_KIND, user.username), user.id)
        return user


class ScopedRepository(Generic[RecordT]):
    """Entities stored under ``(kind, scope_id, entity_key)``."""

    kind: str = ""
    from_dict: Callable[[dict], RecordT]

    def __init__(self, store: KvStore):
        self.store = store

    def get_one(self, scope_id: str, entity_key: str) -> Optional[RecordT]:
        data = self.store.get((self.kind, scope_id, entity_key))
        return self.from_dict(data) if data else None

    def list_by_scope(self, scope_id: str) -> List[RecordT]:
        return [
            self.from_dict(value)
            for _, value in self.store.scan((self.kind, scope_id))
        ]

    def put(self, scope_id: str, entity_key: str, record: RecordT) -> RecordT:
        self.store.put((self.kind, scope_id, entity_key), record.as_dict())
        return record

    def delete(self, scope_id: str, entity_key: str) -> None:
        self.store.delete((self.kind, scope_id, entity_key))

    def scan_all(self) -> Iterator[RecordT]:
        """Every record of this kind across every scope, in key order."""
        for _, value in self.store.scan((self.kind,)):
            yield self.from_dict(value)

    def find_owned(self, entity_id: str, owner_id: str) -> Optional[RecordT]:
        """Linear search across all scopes for an id owned by ``owner_id``.

        Cost is O(records of this kind in the whole store). The first match
        in scan order wins.
        """
        scanned = 0
        for record in self.scan_all():
            scanned += 1
            if record.id == entity_id and record.owner_id == owner_id:
                logger.debug("%s %s found after scanning %d", self.kind, entity_id, scanned)
                return record
        logger.debug("%s %s not found after scanning %d", self.kind, entity_id, scanned)
        return None


class BoardRepository(ScopedRepository[BoardRecord]):
    kind = BOARD_KIND
    from_dict = staticmethod(BoardRecord.from_dict)

    def save(self, board: BoardRecord) -> BoardRecord:
        return self.put(board.owner_id, board.id, board)

    def get_public_board(self, board_id: str) -> Optional[BoardRecord]:
        """Scan every owner's boards for a public board with this id."""
        for board in self.scan_all():
            if board.id == board_id and board.is_public:
                return board
        return None


class LogRepository(ScopedRepository[LogRecord]):
    kind = LOG_KIND
    from_dict = staticmethod(LogRecord.from_dict)

    def get_for_date(self, board_id: str, date: str) -> Optional[LogRecord]:
        return self.get_one(board_id, date)

    def create_or_append(
        self,
        board_id: str,
        owner_id: str,
        date: str,
        actions: List[LogAction],
    ) -> tuple[LogRecord, bool]:
        """Append actions to the log for ``(board_id, date)``, creating it if absent.

        Returns the stored log and whether it was newly created. This is a
        read-modify-write without a conditional put: concurrent appends to the
        same date can drop one writer's actions.
        """
        now = utc_now_iso()
        existing = self.get_for_date(board_id, date)
        if existing:
            existing.actions = existing.actions + list(actions)
            existing.completed_at = now
            self.put(board_id, date, existing)
            return existing, False

        log = LogRecord(
            id=generate_id(),
            board_id=board_id,
            owner_id=owner_id,
            date=date,
            actions=list(actions),
            completed_at=now,
        )
        self.put(board_id, date, log)
        return log, True

    def remove(self, log: LogRecord) -> None:
        self.delete(log.board_id, log.date)


class NotificationRepository(ScopedRepository[NotificationRecord]):
    kind = NOTIFICATION_KIND
    from_dict = staticmethod(NotificationRecord.from_dict)

    def save(self, notification: NotificationRecord) -> NotificationRecord:
        return self.put(notification.board_id, notification.id, notification)

    def list_active(self, board_id: str) -> List[NotificationRecord]:
        return [n for n in self.list_by_scope(board_id) if not n.dismissed]

    def dismiss(self, notification: NotificationRecord) -> NotificationRecord:
        notification.dismissed = True
        return self.save(notification)

    def remove(self, notification: NotificationRecord) -> None:
        self.delete(notification.board_id, notification.id)

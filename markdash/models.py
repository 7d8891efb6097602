"""
Stored entity records and their camelCase wire/storage form.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

VISIBILITIES = ("private", "public")
SCHEDULES = ("daily", "weekly", "custom")
ACTION_TYPES = ("check", "reset", "done")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def utc_now_iso() -> str:
    return to_iso(utc_now())


def utc_today() -> str:
    return utc_now().date().isoformat()


@dataclass
class UserRecord:
    id: str
    username: str
    password_hash: str
    created_at: str = field(default_factory=utc_now_iso)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "passwordHash": self.password_hash,
            "createdAt": self.created_at,
        }

    def public_dict(self) -> dict:
        """User without the password hash, as served to clients."""
        data = self.as_dict()
        data.pop("passwordHash")
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "UserRecord":
        return cls(
            id=data["id"],
            username=data["username"],
            password_hash=data["passwordHash"],
            created_at=data["createdAt"],
        )


@dataclass
class BoardRecord:
    id: str
    owner_id: str
    title: str
    markdown_body: str
    visibility: str = "private"
    schedule: str = "daily"
    reset_time: str = "00:00"
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: Optional[str] = None

    def __post_init__(self):
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def is_public(self) -> bool:
        return self.visibility == "public"

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "title": self.title,
            "markdownBody": self.markdown_body,
            "visibility": self.visibility,
            "schedule": self.schedule,
            "resetTime": self.reset_time,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BoardRecord":
        return cls(
            id=data["id"],
            owner_id=data["ownerId"],
            title=data["title"],
            markdown_body=data["markdownBody"],
            visibility=data.get("visibility", "private"),
            schedule=data.get("schedule", "daily"),
            reset_time=data.get("resetTime", "00:00"),
            created_at=data["createdAt"],
            updated_at=data.get("updatedAt"),
        )


@dataclass
class LogAction:
    type: str
    time: str
    task: Optional[str] = None

    def as_dict(self) -> dict:
        data = {"type": self.type, "time": self.time}
        if self.task is not None:
            data["task"] = self.task
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LogAction":
        return cls(type=data["type"], time=data["time"], task=data.get("task"))


@dataclass
class LogRecord:
    id: str
    board_id: str
    owner_id: str
    date: str
    actions: list[LogAction] = field(default_factory=list)
    completed_at: str = field(default_factory=utc_now_iso)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "boardId": self.board_id,
            "ownerId": self.owner_id,
            "date": self.date,
            "completedAt": self.completed_at,
            "actions": [action.as_dict() for action in self.actions],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LogRecord":
        return cls(
            id=data["id"],
            board_id=data["boardId"],
            owner_id=data["ownerId"],
            date=data["date"],
            actions=[LogAction.from_dict(a) for a in data.get("actions", [])],
            completed_at=data["completedAt"],
        )


@dataclass
class NotificationRecord:
    id: str
    board_id: str
    owner_id: str
    message: str
    time: str
    dismissed: bool = False

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "boardId": self.board_id,
            "ownerId": self.owner_id,
            "message": self.message,
            "time": self.time,
            "dismissed": self.dismissed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NotificationRecord":
        return cls(
            id=data["id"],
            board_id=data["boardId"],
            owner_id=data["ownerId"],
            message=data["message"],
            time=data["time"],
            dismissed=bool(data.get("dismissed", False)),
        )

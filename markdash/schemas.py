"""
Pydantic request schemas for the MarkDash API.
"""

from __future__ import annotations

from datetime import date as date_type
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from markdash.models import LogAction, utc_now_iso

MIN_PASSWORD_LENGTH = 6
RESET_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

Visibility = Literal["private", "public"]
Schedule = Literal["daily", "weekly", "custom"]
ActionType = Literal["check", "reset", "done"]


class CredentialsPayload(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)

    @field_validator("username")
    @classmethod
    def strip_username(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Username is required")
        if "\x00" in value:
            raise ValueError("Username must not contain NUL characters")
        return value


class RegisterPayload(CredentialsPayload):
    @field_validator("password")
    @classmethod
    def check_password_length(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        return value


class BoardCreatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=200)
    markdown_body: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("markdownBody", "markdown", "markdown_body"),
    )
    visibility: Visibility = "private"
    schedule: Schedule = "daily"
    reset_time: str = Field(
        default="00:00",
        pattern=RESET_TIME_PATTERN,
        validation_alias=AliasChoices("resetTime", "reset_time"),
    )


class BoardUpdatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    markdown_body: Optional[str] = Field(
        default=None,
        min_length=1,
        validation_alias=AliasChoices("markdownBody", "markdown", "markdown_body"),
    )
    visibility: Optional[Visibility] = None
    schedule: Optional[Schedule] = None
    reset_time: Optional[str] = Field(
        default=None,
        pattern=RESET_TIME_PATTERN,
        validation_alias=AliasChoices("resetTime", "reset_time"),
    )

    def changes(self) -> dict:
        """Fields the client actually supplied with a non-null value."""
        return self.model_dump(exclude_none=True)


class LogActionPayload(BaseModel):
    type: ActionType
    task: Optional[str] = None
    time: str = Field(default_factory=utc_now_iso, min_length=1)

    def to_action(self) -> LogAction:
        return LogAction(type=self.type, time=self.time, task=self.task)


class LogCreatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    board_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("boardId", "board_id")
    )
    date: Optional[str] = None
    actions: list[LogActionPayload]

    @field_validator("date")
    @classmethod
    def check_date(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            parsed = date_type.fromisoformat(value)
        except ValueError:
            raise ValueError("date must be formatted as YYYY-MM-DD") from None
        if parsed.isoformat() != value:
            raise ValueError("date must be formatted as YYYY-MM-DD")
        return value


class NotificationCreatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    board_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("boardId", "board_id")
    )
    message: str = Field(..., min_length=1, max_length=1024)
    time: str = Field(..., min_length=1)

"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Request

from markdash.config import Settings
from markdash.kv import InMemoryKvStore, KvStore, RedisKvStore, SqlKvStore
from markdash.repositories import (
    BoardRepository,
    LogRepository,
    NotificationRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


def build_kv_store(settings: Settings) -> KvStore:
    """
    Pick a store backend from settings: Redis, then SQL, else in-memory.
    """
    if settings.use_in_memory_backends:
        logger.info("Using in-memory key-value store")
        return InMemoryKvStore()
    if settings.redis_url:
        logger.info("Using Redis key-value store (namespace=%s)", settings.redis_namespace)
        return RedisKvStore(url=settings.redis_url, namespace=settings.redis_namespace)
    if settings.database_url:
        logger.info("Using SQL key-value store")
        return SqlKvStore(settings.database_url)
    logger.warning("No DATABASE_URL or REDIS_URL configured; data will not persist")
    return InMemoryKvStore()


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_kv_store(request: Request) -> KvStore:
    """
    Return the store handle the app was assembled with.
    """
    return request.app.state.store


def get_user_repository(store: KvStore = Depends(get_kv_store)) -> UserRepository:
    return UserRepository(store)


def get_board_repository(store: KvStore = Depends(get_kv_store)) -> BoardRepository:
    return BoardRepository(store)


def get_log_repository(store: KvStore = Depends(get_kv_store)) -> LogRepository:
    return LogRepository(store)


def get_notification_repository(
    store: KvStore = Depends(get_kv_store),
) -> NotificationRepository:
    return NotificationRepository(store)

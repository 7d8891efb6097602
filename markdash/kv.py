"""
Ordered key-value store abstraction with in-memory, SQL and Redis backends.

Keys are tuples of strings such as ``("board", owner_id, board_id)``. A scan
over a partial tuple returns every entry whose key extends that prefix, in
tuple order. Only single-key puts and deletes are atomic.
"""

from __future__ import annotations

import bisect
import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple

import redis
from redis import exceptions as redis_exceptions
from sqlalchemy import JSON, Column, LargeBinary, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from markdash.errors import StorageError

logger = logging.getLogger(__name__)

Key = Tuple[str, ...]

KEY_SEPARATOR = b"\x00"
PREFIX_UPPER_BOUND = b"\x01"
SCAN_BATCH_SIZE = 200


class KvStore(Protocol):
    """Interface the repositories need from the durable store."""

    def get(self, key: Key) -> Optional[Any]:
        ...

    def put(self, key: Key, value: Any) -> None:
        ...

    def delete(self, key: Key) -> None:
        ...

    def scan(self, prefix: Key = ()) -> Iterator[tuple[Key, Any]]:
        ...


def validate_key(key: Key, *, allow_empty: bool = False) -> Key:
    if not isinstance(key, tuple):
        raise TypeError(f"store keys must be tuples, got {type(key).__name__}")
    if not key and not allow_empty:
        raise ValueError("store keys must have at least one component")
    for part in key:
        if not isinstance(part, str):
            raise TypeError(f"key components must be str, got {part!r}")
        if "\x00" in part:
            raise ValueError("key components must not contain NUL")
    return key


def is_storable(key: Key, *, allow_empty: bool = False) -> bool:
    """False for keys no ``put`` could have written; reads treat them as absent.

    Non-tuple keys and non-str parts still raise TypeError.
    """
    try:
        validate_key(key, allow_empty=allow_empty)
    except ValueError:
        return False
    return True


def encode_key(key: Key) -> bytes:
    """Byte encoding whose ordering matches tuple ordering of the key."""
    return KEY_SEPARATOR.join(part.encode("utf-8") for part in key)


def decode_key(raw: bytes) -> Key:
    return tuple(part.decode("utf-8") for part in raw.split(KEY_SEPARATOR))


def prefix_range(prefix: Key) -> Optional[tuple[bytes, bytes]]:
    """Half-open byte range covering every key extending ``prefix``.

    Returns None for the empty prefix, meaning the whole keyspace.
    """
    if not prefix:
        return None
    encoded = encode_key(prefix)
    return encoded + KEY_SEPARATOR, encoded + PREFIX_UPPER_BOUND


def _detach(value: Any) -> Any:
    # Use JSON round-trip to mimic what a durable backend hands back
    return json.loads(json.dumps(value, default=str))


class InMemoryKvStore:
    """Sorted in-process store for development and tests."""

    def __init__(self):
        self._data: Dict[Key, Any] = {}
        self._keys: List[Key] = []
        self._lock = threading.RLock()

    def get(self, key: Key) -> Optional[Any]:
        if not is_storable(key):
            return None
        with self._lock:
            if key not in self._data:
                return None
            return _detach(self._data[key])

    def put(self, key: Key, value: Any) -> None:
        validate_key(key)
        stored = _detach(value)
        with self._lock:
            if key not in self._data:
                bisect.insort(self._keys, key)
            self._data[key] = stored

    def delete(self, key: Key) -> None:
        if not is_storable(key):
            return
        with self._lock:
            if key not in self._data:
                return
            del self._data[key]
            index = bisect.bisect_left(self._keys, key)
            del self._keys[index]

    def scan(self, prefix: Key = ()) -> Iterator[tuple[Key, Any]]:
        if not is_storable(prefix, allow_empty=True):
            return iter(())
        with self._lock:
            start = bisect.bisect_right(self._keys, prefix) if prefix else 0
            snapshot = []
            for key in self._keys[start:]:
                if key[: len(prefix)] != prefix:
                    break
                snapshot.append(key)
        return self._iter_snapshot(snapshot)

    def _iter_snapshot(self, keys: List[Key]) -> Iterator[tuple[Key, Any]]:
        for key in keys:
            value = self.get(key)
            # Entries deleted after the snapshot was taken are skipped
            if value is not None:
                yield key, value

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self._data.clear()
            self._keys.clear()

    def __len__(self) -> int:
        return len(self._data)


Base = declarative_base()


class KvRow(Base):
    __tablename__ = "kv_entries"

    key = Column(LargeBinary, primary_key=True)
    value = Column(JSON, nullable=False)


class SqlKvStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str, batch_size: int = SCAN_BATCH_SIZE):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlKvStore")
        self.batch_size = batch_size
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def get(self, key: Key) -> Optional[Any]:
        if not is_storable(key):
            return None
        raw = encode_key(key)
        try:
            with self.Session() as session:
                row = session.get(KvRow, raw)
                return row.value if row else None
        except SQLAlchemyError as exc:
            logger.error("SQL store get failed for %s: %s", key, exc)
            raise StorageError(f"Failed to read {key!r}") from exc

    def put(self, key: Key, value: Any) -> None:
        raw = encode_key(validate_key(key))
        stored = _detach(value)
        try:
            with self.Session() as session:
                row = session.get(KvRow, raw)
                if row:
                    row.value = stored
                else:
                    session.add(KvRow(key=raw, value=stored))
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("SQL store put failed for %s: %s", key, exc)
            raise StorageError(f"Failed to write {key!r}") from exc

    def delete(self, key: Key) -> None:
        if not is_storable(key):
            return
        raw = encode_key(key)
        try:
            with self.Session() as session:
                row = session.get(KvRow, raw)
                if row:
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as exc:
            logger.error("SQL store delete failed for %s: %s", key, exc)
            raise StorageError(f"Failed to delete {key!r}") from exc

    def scan(self, prefix: Key = ()) -> Iterator[tuple[Key, Any]]:
        if not is_storable(prefix, allow_empty=True):
            return iter(())
        return self._iter_pages(prefix_range(prefix), prefix)

    def _iter_pages(
        self, bounds: Optional[tuple[bytes, bytes]], prefix: Key
    ) -> Iterator[tuple[Key, Any]]:
        # Each page is read in its own session, closed before yielding
        last: Optional[bytes] = None
        while True:
            stmt = select(KvRow).order_by(KvRow.key.asc()).limit(self.batch_size)
            if bounds:
                stmt = stmt.where(KvRow.key >= bounds[0], KvRow.key < bounds[1])
            if last is not None:
                stmt = stmt.where(KvRow.key > last)
            try:
                with self.Session() as session:
                    page = [
                        (bytes(row.key), row.value)
                        for row in session.execute(stmt).scalars()
                    ]
            except SQLAlchemyError as exc:
                logger.error("SQL store scan failed for %s: %s", prefix, exc)
                raise StorageError(f"Failed to scan {prefix!r}") from exc
            for raw, value in page:
                yield decode_key(raw), value
            if len(page) < self.batch_size:
                return
            last = page[-1][0]


@dataclass
class RedisKvStore:
    """Redis-backed store: values in a hash, ordering from a zero-score sorted set."""

    url: Optional[str] = None
    namespace: str = "markdash"
    client: Optional[redis.Redis] = None
    batch_size: int = SCAN_BATCH_SIZE
    values_key: str = field(init=False)
    index_key: str = field(init=False)

    def __post_init__(self):
        if self.client is None:
            if not self.url:
                raise ValueError("REDIS_URL is required for RedisKvStore")
            self.client = redis.Redis.from_url(self.url)
        self.values_key = f"{self.namespace}:values"
        self.index_key = f"{self.namespace}:keys"

    def get(self, key: Key) -> Optional[Any]:
        if not is_storable(key):
            return None
        raw = encode_key(key)
        try:
            stored = self.client.hget(self.values_key, raw)
        except redis_exceptions.RedisError as exc:
            logger.error("Redis store get failed for %s: %s", key, exc)
            raise StorageError(f"Failed to read {key!r}") from exc
        if stored is None:
            return None
        return json.loads(stored)

    def put(self, key: Key, value: Any) -> None:
        raw = encode_key(validate_key(key))
        payload = json.dumps(value, default=str)
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.hset(self.values_key, raw, payload)
            pipe.zadd(self.index_key, {raw: 0})
            pipe.execute()
        except redis_exceptions.RedisError as exc:
            logger.error("Redis store put failed for %s: %s", key, exc)
            raise StorageError(f"Failed to write {key!r}") from exc

    def delete(self, key: Key) -> None:
        if not is_storable(key):
            return
        raw = encode_key(key)
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.hdel(self.values_key, raw)
            pipe.zrem(self.index_key, raw)
            pipe.execute()
        except redis_exceptions.RedisError as exc:
            logger.error("Redis store delete failed for %s: %s", key, exc)
            raise StorageError(f"Failed to delete {key!r}") from exc

    def scan(self, prefix: Key = ()) -> Iterator[tuple[Key, Any]]:
        if not is_storable(prefix, allow_empty=True):
            return iter(())
        bounds = prefix_range(prefix)
        if bounds:
            lower, upper = b"[" + bounds[0], b"(" + bounds[1]
        else:
            lower, upper = b"-", b"+"
        return self._iter_range(lower, upper, prefix)

    def _iter_range(
        self, lower: bytes, upper: bytes, prefix: Key
    ) -> Iterator[tuple[Key, Any]]:
        while True:
            try:
                members = self.client.zrangebylex(
                    self.index_key, lower, upper, start=0, num=self.batch_size
                )
                values = (
                    self.client.hmget(self.values_key, members) if members else []
                )
            except redis_exceptions.RedisError as exc:
                logger.error("Redis store scan failed for %s: %s", prefix, exc)
                raise StorageError(f"Failed to scan {prefix!r}") from exc
            for member, stored in zip(members, values):
                if stored is not None:
                    yield decode_key(member), json.loads(stored)
            if len(members) < self.batch_size:
                return
            lower = b"(" + members[-1]

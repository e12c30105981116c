"""
In-memory session store mirrored to Redis.

A SessionStore holds the values of one session together with a read/write
lock. Every mutation is persisted to Redis immediately while the exclusive
lock is held, so two mutations on the same instance never race on the
remote write. Locking is per instance: two stores read for the same sid
are independent and the last one to persist wins.

Record layout in Redis:
    Key:   <prefix><sid>
    Type:  hash
    Field: "json" -> the whole value map encoded as one JSON object
    TTL:   maxlifetime seconds, refreshed on every persist
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from redis.exceptions import RedisError

from errors.codes import ErrorCode
from errors.exceptions import (
    AppException,
    internal_error,
    session_persist_failed,
    session_serialization_failed,
)
from session.codec import SessionValue, encode_values

logger = logging.getLogger(__name__)


DEFAULT_KEY_PREFIX = "session:"
DEFAULT_MAX_LIFETIME = 3600
JSON_FIELD = "json"


class ReadWriteLock:
    """
    Lock allowing many concurrent readers or a single writer.

    Not reentrant: a thread holding the write lock must not acquire it
    again or take the read lock.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass(frozen=True)
class PersistResult:
    """
    Outcome of writing a session to Redis.

    Attributes:
        ok: Whether the record was written and its TTL refreshed
        error_code: Why the write failed, when it failed
        message: Underlying error text, when it failed
    """
    ok: bool
    error_code: Optional[ErrorCode] = None
    message: Optional[str] = None

    @classmethod
    def success(cls) -> "PersistResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error_code: ErrorCode, message: str) -> "PersistResult":
        return cls(ok=False, error_code=error_code, message=message)

    def to_exception(self, sid: str) -> AppException:
        """Build the exception strict persistence raises for this failure."""
        factory = _FAILURE_FACTORIES.get(self.error_code, internal_error)
        return factory(
            message=f"Failed to persist session: {self.message}",
            details={"sid": sid},
        )


_FAILURE_FACTORIES = {
    ErrorCode.SESSION_PERSIST_FAILED: session_persist_failed,
    ErrorCode.SESSION_SERIALIZATION_FAILED: session_serialization_failed,
}


class SessionStore:
    """
    Lock-protected values of one session with write-through persistence.

    Stores are created by a session provider, which passes in the shared
    Redis client. Persistence errors are logged and swallowed unless the
    store was created with strict_persist=True, in which case mutations
    raise AppException after the in-memory change has been applied.

    Attributes:
        sid: The immutable session identifier
        maxlifetime: TTL in seconds applied to the Redis key on each persist
    """

    def __init__(
        self,
        client: Any,
        sid: str,
        values: Optional[dict[str, SessionValue]] = None,
        maxlifetime: int = DEFAULT_MAX_LIFETIME,
        prefix: str = DEFAULT_KEY_PREFIX,
        strict_persist: bool = False,
    ):
        self._client = client
        self._sid = sid
        self._values: dict[str, SessionValue] = dict(values) if values else {}
        self._maxlifetime = maxlifetime
        self._prefix = prefix
        self._strict_persist = strict_persist
        self._lock = ReadWriteLock()

    @property
    def sid(self) -> str:
        return self._sid

    @property
    def maxlifetime(self) -> int:
        return self._maxlifetime

    @property
    def key(self) -> str:
        """Redis key holding this session's record."""
        return f"{self._prefix}{self._sid}"

    def set(self, key: str, value: SessionValue) -> None:
        """Set a value and persist the session."""
        with self._lock.write():
            self._values[key] = value
            result = self._save()
        self._check(result)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for key, or default if it is not set."""
        with self._lock.read():
            return self._values.get(key, default)

    def delete(self, key: str) -> None:
        """Remove a value if present and persist the session."""
        with self._lock.write():
            self._values.pop(key, None)
            result = self._save()
        self._check(result)

    def flush(self) -> None:
        """Remove all values and persist the empty session."""
        with self._lock.write():
            self._values = {}
            result = self._save()
        self._check(result)

    def session_id(self) -> str:
        return self._sid

    def session_release(self) -> None:
        """
        Persist the session at the end of request handling.

        Mutations already persist eagerly; this is the final flush point
        and refreshes the TTL even when nothing changed.
        """
        with self._lock.write():
            result = self._save()
        self._check(result)

    def keys(self) -> list[str]:
        with self._lock.read():
            return list(self._values)

    def to_dict(self) -> dict[str, SessionValue]:
        """Shallow copy of the current values."""
        with self._lock.read():
            return dict(self._values)

    def __contains__(self, key: object) -> bool:
        with self._lock.read():
            return key in self._values

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._values)

    def __repr__(self) -> str:
        return f"SessionStore(sid={self._sid!r}, keys={len(self)})"

    def _save(self) -> PersistResult:
        """
        Write the whole value map to Redis and refresh the key TTL.

        Must be called with the write lock held. HSET and EXPIRE are two
        separate commands; a failure between them leaves the new value
        with the previous TTL until the next successful persist.
        """
        try:
            blob = encode_values(self._values)
        except (TypeError, ValueError) as e:
            logger.error("Failed to encode session values", extra={
                "extra_data": {"sid": self._sid, "error": str(e)}
            })
            return PersistResult.failure(ErrorCode.SESSION_SERIALIZATION_FAILED, str(e))

        key = self.key
        try:
            self._client.hset(key, JSON_FIELD, blob)
            self._client.expire(key, self._maxlifetime)
        except RedisError as e:
            logger.error("Failed to persist session", extra={
                "extra_data": {"sid": self._sid, "key": key, "error": str(e)}
            })
            return PersistResult.failure(ErrorCode.SESSION_PERSIST_FAILED, str(e))

        return PersistResult.success()

    def _check(self, result: PersistResult) -> None:
        if not result.ok and self._strict_persist:
            raise result.to_exception(self._sid)

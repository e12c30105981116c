"""
Shared pytest fixtures and configuration for all tests.
"""
import os
import threading
from typing import Optional
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

# Hypothesis configuration for property-based testing
from hypothesis import settings, Verbosity, Phase

# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,
    print_blob=True,
)

# CI profile: more thorough testing for continuous integration
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],
)

# Fast profile: quick smoke tests
settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


class FakeRedis:
    """
    In-memory stand-in for the redis-py client.

    Implements only the hash, key and server commands the session
    provider uses. Hashes are the only key type. A hash whose last field
    is deleted disappears, as in Redis.
    """

    def __init__(self):
        self.hashes: dict[str, dict[str, str]] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False
        self._lock = threading.Lock()

    def ping(self) -> bool:
        return True

    def time(self) -> tuple[int, int]:
        return (1700000000, 0)

    def hset(self, key: str, field: str, value) -> int:
        with self._lock:
            fields = self.hashes.setdefault(key, {})
            created = field not in fields
            fields[field] = str(value)
            return int(created)

    def hget(self, key: str, field: str) -> Optional[str]:
        with self._lock:
            return self.hashes.get(key, {}).get(field)

    def hdel(self, key: str, *fields: str) -> int:
        with self._lock:
            stored = self.hashes.get(key)
            if stored is None:
                return 0
            removed = sum(1 for field in fields if stored.pop(field, None) is not None)
            if not stored:
                del self.hashes[key]
                self.ttls.pop(key, None)
            return removed

    def exists(self, *keys: str) -> int:
        with self._lock:
            return sum(1 for key in keys if key in self.hashes)

    def expire(self, key: str, seconds: int) -> bool:
        with self._lock:
            if key not in self.hashes:
                return False
            if seconds <= 0:
                del self.hashes[key]
                self.ttls.pop(key, None)
            else:
                self.ttls[key] = seconds
            return True

    def rename(self, src: str, dst: str) -> bool:
        with self._lock:
            if src not in self.hashes:
                raise ResponseError("no such key")
            self.hashes[dst] = self.hashes.pop(src)
            ttl = self.ttls.pop(src, None)
            if ttl is None:
                self.ttls.pop(dst, None)
            else:
                self.ttls[dst] = ttl
            return True

    def close(self) -> None:
        self.closed = True


@pytest.fixture(scope="session")
def fake_redis_cls() -> type:
    """The FakeRedis class, for tests that build their own clients."""
    return FakeRedis


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Create an empty in-memory Redis for unit tests."""
    return FakeRedis()


@pytest.fixture
def failing_redis() -> MagicMock:
    """Create a mock Redis client whose every command fails to connect."""
    mock = MagicMock()
    for command in ("ping", "time", "hset", "hget", "hdel", "exists", "expire", "rename"):
        getattr(mock, command).side_effect = RedisConnectionError("Connection refused")
    return mock


@pytest.fixture
def provider(fake_redis):
    """Create a RedisSessionProvider initialized against the fake Redis."""
    from session.redis_store import RedisSessionProvider

    session_provider = RedisSessionProvider(client=fake_redis)
    session_provider.init(3600, "localhost:6379,0")
    return session_provider


@pytest.fixture
def sample_session_values() -> dict:
    """Sample session values mixing scalars and structured values."""
    return {
        "user_id": 42,
        "username": "jdoe",
        "authenticated": True,
        "score": 97.5,
        "last_error": None,
        "roles": ["admin", "editor"],
        "preferences": {"theme": "dark", "page_size": 50},
    }

"""
Unit tests for SessionStore.

Tests cover:
- Read-your-write on a single instance, with and without a reachable Redis
- Write-through persistence of set, delete, flush and session_release
- Suppressed versus strict handling of persist failures
- Per-instance locking under concurrent mutation
"""

import json
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from hypothesis import given, strategies as st

from errors.codes import ErrorCode
from errors.exceptions import AppException
from session.codec import RawFragment, decode_values
from session.store import PersistResult, ReadWriteLock, SessionStore


scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(),
    st.floats(allow_nan=False, allow_infinity=False),
    st.text(),
)


def stored_values(fake_redis, key="session:abc"):
    return decode_values(fake_redis.hashes[key]["json"])


class TestSessionStoreAccessors:
    """Tests for in-memory reads and writes."""

    def test_session_id(self, fake_redis):
        store = SessionStore(fake_redis, "abc")

        assert store.session_id() == "abc"
        assert store.sid == "abc"
        assert store.key == "session:abc"

    def test_custom_prefix(self, fake_redis):
        store = SessionStore(fake_redis, "abc", prefix="app:sess:")

        store.set("a", 1)

        assert "app:sess:abc" in fake_redis.hashes

    def test_get_missing_key_returns_default(self, fake_redis):
        store = SessionStore(fake_redis, "abc")

        assert store.get("missing") is None
        assert store.get("missing", "fallback") == "fallback"

    def test_initial_values_are_copied(self, fake_redis):
        initial = {"a": 1}
        store = SessionStore(fake_redis, "abc", initial)

        store.set("b", 2)

        assert initial == {"a": 1}
        assert store.to_dict() == {"a": 1, "b": 2}

    def test_set_then_get_returns_same_object(self, fake_redis, sample_session_values):
        store = SessionStore(fake_redis, "abc")

        for key, value in sample_session_values.items():
            store.set(key, value)

        for key, value in sample_session_values.items():
            assert store.get(key) is value

    def test_read_your_write_without_remote(self, failing_redis):
        store = SessionStore(failing_redis, "abc")

        store.set("user_id", 42)

        assert store.get("user_id") == 42
        assert "user_id" in store
        assert len(store) == 1

    @given(key=st.text(), value=scalars)
    def test_read_your_write_property(self, fake_redis_cls, key, value):
        store = SessionStore(fake_redis_cls(), "abc")

        store.set(key, value)

        assert store.get(key) == value
        assert type(store.get(key)) is type(value)

    def test_keys_and_repr(self, fake_redis):
        store = SessionStore(fake_redis, "abc", {"a": 1, "b": 2})

        assert sorted(store.keys()) == ["a", "b"]
        assert repr(store) == "SessionStore(sid='abc', keys=2)"


class TestSessionStorePersistence:
    """Tests for write-through persistence to Redis."""

    def test_set_persists_record_and_ttl(self, fake_redis):
        store = SessionStore(fake_redis, "abc", maxlifetime=1800)

        store.set("a", 1)

        assert fake_redis.hashes["session:abc"] == {"json": '{"a":1}'}
        assert fake_redis.ttls["session:abc"] == 1800

    def test_structured_values_are_stored_in_one_blob(self, fake_redis, sample_session_values):
        store = SessionStore(fake_redis, "abc")

        for key, value in sample_session_values.items():
            store.set(key, value)

        blob = fake_redis.hashes["session:abc"]["json"]
        assert json.loads(blob) == sample_session_values

    def test_raw_fragment_is_persisted_verbatim(self, fake_redis):
        store = SessionStore(fake_redis, "abc")

        store.set("cart", RawFragment('{"items": [1,  2]}'))

        assert fake_redis.hashes["session:abc"]["json"] == '{"cart":{"items": [1,  2]}}'

    def test_delete_persists(self, fake_redis):
        store = SessionStore(fake_redis, "abc", {"a": 1, "b": 2})

        store.delete("a")

        assert store.get("a") is None
        assert stored_values(fake_redis) == {"b": 2}

    def test_delete_missing_key_is_not_an_error(self, fake_redis):
        store = SessionStore(fake_redis, "abc", {"a": 1})

        store.delete("missing")

        assert store.to_dict() == {"a": 1}
        assert stored_values(fake_redis) == {"a": 1}

    def test_flush_clears_all_values(self, fake_redis, sample_session_values):
        store = SessionStore(fake_redis, "abc", sample_session_values)

        store.flush()

        for key in sample_session_values:
            assert store.get(key) is None
        assert len(store) == 0
        assert fake_redis.hashes["session:abc"]["json"] == "{}"

    def test_session_release_persists_and_refreshes_ttl(self, fake_redis):
        store = SessionStore(fake_redis, "abc", {"a": 1}, maxlifetime=60)

        store.session_release()

        assert stored_values(fake_redis) == {"a": 1}
        assert fake_redis.ttls["session:abc"] == 60

    def test_session_release_is_idempotent(self, fake_redis):
        store = SessionStore(fake_redis, "abc")
        store.set("a", 1)

        store.session_release()
        store.session_release()

        assert stored_values(fake_redis) == {"a": 1}


class TestSessionStorePersistFailures:
    """Tests for encode and Redis failures during persist."""

    def test_encode_failure_keeps_memory_and_prior_record(self, fake_redis, caplog):
        store = SessionStore(fake_redis, "abc")
        store.set("a", 1)
        unserializable = object()

        store.set("obj", unserializable)

        assert store.get("obj") is unserializable
        assert stored_values(fake_redis) == {"a": 1}
        assert "Failed to encode session values" in caplog.text

    def test_redis_failure_is_logged_and_suppressed(self, failing_redis, caplog):
        store = SessionStore(failing_redis, "abc")

        store.set("a", 1)
        store.delete("a")
        store.flush()
        store.session_release()

        assert "Failed to persist session" in caplog.text

    def test_expire_is_skipped_when_hset_fails(self, failing_redis):
        store = SessionStore(failing_redis, "abc")

        store.set("a", 1)

        failing_redis.hset.assert_called_once_with("session:abc", "json", '{"a":1}')
        failing_redis.expire.assert_not_called()

    def test_save_returns_explicit_result(self, fake_redis, failing_redis):
        assert SessionStore(fake_redis, "abc")._save() == PersistResult.success()

        result = SessionStore(failing_redis, "abc")._save()
        assert result.ok is False
        assert result.error_code == ErrorCode.SESSION_PERSIST_FAILED
        assert "Connection refused" in result.message

    def test_strict_persist_raises_after_applying_change(self, failing_redis):
        store = SessionStore(failing_redis, "abc", strict_persist=True)

        with pytest.raises(AppException) as exc_info:
            store.set("a", 1)

        assert exc_info.value.error_code == ErrorCode.SESSION_PERSIST_FAILED
        assert exc_info.value.details == {"sid": "abc"}
        assert store.get("a") == 1

    def test_strict_persist_raises_on_encode_failure(self, fake_redis):
        store = SessionStore(fake_redis, "abc", strict_persist=True)

        with pytest.raises(AppException) as exc_info:
            store.set("obj", object())

        assert exc_info.value.error_code == ErrorCode.SESSION_SERIALIZATION_FAILED
        assert "session:abc" not in fake_redis.hashes


class TestSessionStoreConcurrency:
    """Tests for per-instance locking."""

    def test_concurrent_sets_on_one_instance_are_all_persisted(self, fake_redis):
        store = SessionStore(fake_redis, "abc")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda i: store.set(f"key-{i}", i), range(200)))

        expected = {f"key-{i}": i for i in range(200)}
        assert store.to_dict() == expected
        # Each persist happens under the lock, so the last one has every key
        assert stored_values(fake_redis) == expected

    def test_independent_instances_do_not_corrupt_each_other(self, fake_redis):
        first = SessionStore(fake_redis, "abc")
        second = SessionStore(fake_redis, "abc")

        def write(args):
            store, name, i = args
            store.set(f"{name}-{i}", i)

        work = [(first, "first", i) for i in range(100)] + [(second, "second", i) for i in range(100)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(write, work))

        assert first.to_dict() == {f"first-{i}": i for i in range(100)}
        assert second.to_dict() == {f"second-{i}": i for i in range(100)}
        # Last persist wins
        assert stored_values(fake_redis) in (first.to_dict(), second.to_dict())


class TestReadWriteLock:
    """Tests for the store's read/write lock."""

    def test_readers_share_the_lock(self):
        lock = ReadWriteLock()

        with lock.read():
            with lock.read():
                assert lock._readers == 2
        assert lock._readers == 0

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []

        def reader():
            with lock.read():
                events.append("read")

        with ThreadPoolExecutor(max_workers=1) as pool:
            with lock.write():
                future = pool.submit(reader)
                time.sleep(0.05)
                events.append("write")
                assert not future.done()
            future.result(timeout=5)

        assert events == ["write", "read"]

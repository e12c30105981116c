"""
Redis-based session provider.

This module maps session identifiers to SessionStore instances backed by
Redis hashes and implements the session lifecycle: init, read, exists,
regenerate, destroy, gc and count. Expiry is left entirely to Redis key
TTLs; there is no active sweep.

The provider owns one Redis client which is shared by every store it
creates. redis-py pools connections, so the client is safe to use from
several request threads at once.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import redis
from redis.exceptions import RedisError

from errors.exceptions import invalid_configuration, session_store_unavailable
from session.codec import decode_values
from session.registry import register
from session.store import (
    DEFAULT_KEY_PREFIX,
    DEFAULT_MAX_LIFETIME,
    JSON_FIELD,
    SessionStore,
)
from telemetry.service import get_telemetry_service

logger = logging.getLogger(__name__)


DEFAULT_REDIS_PORT = 6379


@dataclass(frozen=True)
class SavePath:
    """
    Parsed provider save path.

    Attributes:
        address: "host[:port]" or a redis://, rediss:// or unix:// URL
        db: Redis database index
    """
    address: str
    db: int = 0


def parse_save_path(save_path: str) -> SavePath:
    """
    Parse "<address>[,<database-index>]".

    The database index defaults to 0 when missing, not a number, or negative.

    Raises:
        AppException: If the address part is empty.
    """
    parts = save_path.split(",")
    address = parts[0].strip()
    if not address:
        raise invalid_configuration(
            "Session save path has no Redis address",
            details={"save_path": save_path}
        )

    db = 0
    if len(parts) > 1:
        try:
            db = int(parts[1].strip())
        except ValueError:
            db = 0
        if db < 0:
            db = 0
    return SavePath(address=address, db=db)


def _split_host_port(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or host.endswith(":"):
        # No port, or a bare IPv6 address
        return address.strip("[]"), DEFAULT_REDIS_PORT
    try:
        return host.strip("[]"), int(port)
    except ValueError:
        raise invalid_configuration(
            f"Invalid Redis port {port!r}",
            details={"address": address}
        )


class RedisSessionProvider:
    """
    Session lifecycle authority backed by Redis.

    A client can be injected for tests or to share an existing pool;
    otherwise init() builds one from the save path.

    Example:
        provider = RedisSessionProvider()
        provider.init(3600, "127.0.0.1:6379,1")

        store = provider.read(sid)
        store.set("user_id", 42)
        store.session_release()
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        prefix: str = DEFAULT_KEY_PREFIX,
        socket_timeout: Optional[float] = None,
        socket_connect_timeout: Optional[float] = None,
        strict_persist: bool = False,
    ):
        """
        Initialize the provider.

        Args:
            client: Optional Redis client to use instead of building one
            prefix: Prefix prepended to the sid to form the Redis key
            socket_timeout: Seconds to wait on a Redis command (None blocks)
            socket_connect_timeout: Seconds to wait when connecting
            strict_persist: Make store mutations raise on persist failure
        """
        self._client = client
        self._owns_client = client is None
        self._prefix = prefix
        self._socket_timeout = socket_timeout
        self._socket_connect_timeout = socket_connect_timeout
        self._strict_persist = strict_persist
        self._maxlifetime = DEFAULT_MAX_LIFETIME
        self._save_path: Optional[SavePath] = None

    @property
    def client(self) -> Optional[Any]:
        return self._client

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def maxlifetime(self) -> int:
        return self._maxlifetime

    @property
    def db(self) -> int:
        return self._save_path.db if self._save_path else 0

    def key_for(self, sid: str) -> str:
        return f"{self._prefix}{sid}"

    def init(self, maxlifetime: int, save_path: str) -> None:
        """
        Configure the provider and verify Redis is reachable.

        Args:
            maxlifetime: Session TTL in seconds for every store created
            save_path: "<address>[,<database-index>]", e.g. "127.0.0.1:6379,0"

        Raises:
            AppException: INVALID_CONFIGURATION for a bad save path or
                lifetime, SESSION_STORE_UNAVAILABLE if Redis does not
                answer PING.
        """
        if maxlifetime < 1:
            raise invalid_configuration(
                "Session max lifetime must be at least one second",
                details={"maxlifetime": maxlifetime}
            )
        self._maxlifetime = maxlifetime
        self._save_path = parse_save_path(save_path)

        if self._client is None:
            self._client = self._connect(self._save_path)
            self._owns_client = True

        details = {"address": self._save_path.address, "db": self._save_path.db}
        try:
            alive = self._client.ping()
        except RedisError as e:
            logger.error("Session store did not answer PING", extra={
                "extra_data": {**details, "error": str(e)}
            })
            raise session_store_unavailable(
                f"Cannot reach Redis at {self._save_path.address}: {e}",
                details=details
            ) from e
        if not alive:
            raise session_store_unavailable(
                f"Redis at {self._save_path.address} did not answer PING",
                details=details
            )

        # TIME may be renamed or disabled on managed servers
        try:
            server_time = self._client.time()
        except RedisError as e:
            logger.warning("Could not fetch Redis server time", extra={
                "extra_data": {**details, "error": str(e)}
            })
            server_time = None

        logger.info("Session provider initialized", extra={
            "extra_data": {
                **details,
                "maxlifetime": maxlifetime,
                "server_time": server_time,
            }
        })
        self._log_event("init", None, **details)

    def _connect(self, save_path: SavePath) -> Any:
        options = {
            "db": save_path.db,
            "decode_responses": True,
            "socket_timeout": self._socket_timeout,
            "socket_connect_timeout": self._socket_connect_timeout,
        }
        if "://" in save_path.address:
            return redis.from_url(save_path.address, **options)

        host, port = _split_host_port(save_path.address)
        return redis.Redis(host=host, port=port, **options)

    def _require_client(self) -> Any:
        if self._client is None:
            raise session_store_unavailable(
                "Session provider is not initialized; call init() first"
            )
        return self._client

    def _new_store(self, sid: str, values: dict) -> SessionStore:
        return SessionStore(
            self._client,
            sid,
            values,
            maxlifetime=self._maxlifetime,
            prefix=self._prefix,
            strict_persist=self._strict_persist,
        )

    def read(self, sid: str) -> SessionStore:
        """
        Load the session for sid.

        A missing, empty or unreadable record yields an empty store; this
        method only raises when the provider was never initialized.
        """
        client = self._require_client()
        key = self.key_for(sid)

        try:
            blob = client.hget(key, JSON_FIELD)
        except (RedisError, UnicodeDecodeError) as e:
            logger.warning("Failed to read session", extra={
                "extra_data": {"sid": sid, "key": key, "error": str(e)}
            })
            blob = None

        values = {}
        if blob:
            try:
                values = decode_values(blob)
            except ValueError as e:
                logger.error("Failed to decode session record", extra={
                    "extra_data": {"sid": sid, "key": key, "error": str(e)}
                })

        return self._new_store(sid, values)

    def exists(self, sid: str) -> bool:
        """Check whether a record exists for sid; Redis errors count as absent."""
        client = self._require_client()
        try:
            return client.exists(self.key_for(sid)) > 0
        except RedisError as e:
            logger.warning("Failed to check session existence", extra={
                "extra_data": {"sid": sid, "error": str(e)}
            })
            return False

    def regenerate(self, oldsid: str, sid: str) -> SessionStore:
        """
        Move a session to a new identifier.

        If oldsid has a record it is renamed to sid, otherwise an empty
        record is seeded at sid. The TTL of the new key is refreshed and
        the session is read back from sid. Redis errors are logged, not
        raised.
        """
        client = self._require_client()
        old_key = self.key_for(oldsid)
        new_key = self.key_for(sid)

        try:
            existed = client.exists(old_key)
        except RedisError as e:
            logger.warning("Failed to check session existence", extra={
                "extra_data": {"sid": oldsid, "error": str(e)}
            })
            existed = 0

        try:
            if existed:
                client.rename(old_key, new_key)
            else:
                client.hset(new_key, JSON_FIELD, "")
        except RedisError as e:
            logger.error("Failed to regenerate session", extra={
                "extra_data": {"old_sid": oldsid, "sid": sid, "error": str(e)}
            })

        try:
            client.expire(new_key, self._maxlifetime)
        except RedisError as e:
            logger.error("Failed to refresh session TTL", extra={
                "extra_data": {"sid": sid, "error": str(e)}
            })

        self._log_event("regenerate", sid, old_sid=oldsid, renamed=bool(existed))
        return self.read(sid)

    def destroy(self, sid: str) -> None:
        """
        Delete the session record for sid.

        Raises:
            AppException: SESSION_STORE_UNAVAILABLE if Redis rejects the delete.
        """
        client = self._require_client()
        try:
            client.hdel(self.key_for(sid), JSON_FIELD)
        except RedisError as e:
            raise session_store_unavailable(
                f"Failed to destroy session: {e}",
                details={"sid": sid}
            ) from e
        self._log_event("destroy", sid)

    def gc(self) -> None:
        """Nothing to collect: Redis expires session keys on its own."""

    def count(self) -> int:
        """Active session counting is not supported; always 0."""
        return 0

    def health_check(self) -> bool:
        """
        Check connectivity to Redis.

        Returns:
            True if Redis answers PING, False otherwise. Never raises.
        """
        if self._client is None:
            return False
        try:
            return self._client.ping() is True
        except Exception:
            return False

    def close(self) -> None:
        """Release the Redis connection pool if this provider created it."""
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def _log_event(self, event_type: str, sid: Optional[str], **details: Any) -> None:
        telemetry = get_telemetry_service()
        if telemetry is not None:
            telemetry.log_session_event(event_type, sid, **details)
        else:
            logger.debug(f"Session event: {event_type}", extra={
                "extra_data": {"sid": sid, **details}
            })


register("redis", RedisSessionProvider)
register("hredis", RedisSessionProvider)

"""
Session management module backed by Redis.

This module provides a TTL-bounded session store: per-client state kept
in Redis rather than in process memory, so any worker can serve any
request. Importing it registers the Redis provider under "redis" and
"hredis".
"""

from session.codec import RawFragment, SessionValue, decode_values, encode_values
from session.store import (
    DEFAULT_KEY_PREFIX,
    DEFAULT_MAX_LIFETIME,
    PersistResult,
    SessionStore,
)
from session.redis_store import RedisSessionProvider, SavePath, parse_save_path
from session.registry import available_providers, create_provider, register
from session.factory import create_session_provider

__all__ = [
    "RawFragment",
    "SessionValue",
    "decode_values",
    "encode_values",
    "DEFAULT_KEY_PREFIX",
    "DEFAULT_MAX_LIFETIME",
    "PersistResult",
    "SessionStore",
    "RedisSessionProvider",
    "SavePath",
    "parse_save_path",
    "available_providers",
    "create_provider",
    "register",
    "create_session_provider",
]

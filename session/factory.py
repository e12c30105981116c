"""
Build a ready-to-use session provider from settings.
"""

from typing import Any, Optional

from config.settings import Settings, get_settings
from session.registry import create_provider


def create_session_provider(
    settings: Optional[Settings] = None,
    client: Optional[Any] = None,
) -> Any:
    """
    Create the configured provider and initialize it.

    Args:
        settings: Settings to use; loaded with get_settings() when omitted
        client: Optional Redis client to inject instead of connecting

    Returns:
        An initialized session provider.

    Raises:
        AppException: If the provider is unknown or Redis is unreachable.
    """
    settings = settings or get_settings()

    provider = create_provider(
        settings.session_provider,
        client=client,
        prefix=settings.session_key_prefix,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        strict_persist=settings.session_strict_persist,
    )
    provider.init(settings.session_max_lifetime, settings.session_save_path)
    return provider

"""
Registry of named session provider factories.

Providers register themselves when their module is imported, so a host
can select one by the name given in its configuration.
"""

import threading
from typing import Any, Callable

from errors.exceptions import (
    invalid_configuration,
    provider_already_registered,
    provider_not_found,
)

_providers: dict[str, Callable[..., Any]] = {}
_lock = threading.Lock()


def register(name: str, factory: Callable[..., Any]) -> None:
    """
    Make a provider factory available under name.

    Raises:
        AppException: If factory is None or name is already registered.
    """
    if factory is None:
        raise invalid_configuration(
            "Session provider factory is None",
            details={"provider": name}
        )
    with _lock:
        if name in _providers:
            raise provider_already_registered(name)
        _providers[name] = factory


def unregister(name: str) -> None:
    """Remove a provider factory; unknown names are ignored."""
    with _lock:
        _providers.pop(name, None)


def create_provider(name: str, **kwargs: Any) -> Any:
    """
    Instantiate the provider registered under name.

    Raises:
        AppException: If no provider is registered under name.
    """
    with _lock:
        factory = _providers.get(name)
    if factory is None:
        raise provider_not_found(name, details={"available": available_providers()})
    return factory(**kwargs)


def available_providers() -> list[str]:
    with _lock:
        return sorted(_providers)

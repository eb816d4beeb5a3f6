from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from palmares.providers.base import Provider
    from palmares.schemas import ProviderOptions

PROVIDER_REGISTRY: dict[str, type[Provider]] = {}


def register_provider(key: str):
    """Decorator to register a provider class under a key."""
    def decorator(cls):
        PROVIDER_REGISTRY[key] = cls
        return cls
    return decorator


def get_provider_class(key: str) -> type[Provider]:
    """Return the provider class registered under ``key``.

    Raises KeyError for unknown keys.
    """
    try:
        return PROVIDER_REGISTRY[key]
    except KeyError:
        raise KeyError(f"unknown provider {key!r}") from None


def create_provider(key: str, options: ProviderOptions | dict[str, Any]) -> Provider:
    """Instantiate the provider registered under ``key`` with ``options``."""
    return get_provider_class(key)(options)


def list_provider_keys() -> list[str]:
    """Return all registered provider keys."""
    return sorted(PROVIDER_REGISTRY.keys())

"""
Process-wide registry and convenience functions.

Call sites use these functions instead of threading a registry through their
code:

    from service_locator import locator

    locator.register(AuthService, FirebaseAuthService)
    locator.register(UserRepository, build_user_repository)  # async def

    auth = locator.singleton(AuthService)
    repo = await locator.singleton_async(UserRepository)

Tests can swap the global instance with ``set_registry`` or drop it with
``reset_registry``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Hashable, TypeVar

from service_locator.config import LocatorSettings
from service_locator.core.disposal import Disposer
from service_locator.core.registry import ServiceRegistry

T = TypeVar("T")


# =============================================================================
# Global Instance
# =============================================================================

_registry: ServiceRegistry | None = None


def get_registry() -> ServiceRegistry:
    """Get or create the global registry instance.

    Returns:
        Global ServiceRegistry (created on first call from environment settings)
    """
    global _registry
    if _registry is None:
        _registry = ServiceRegistry(LocatorSettings.from_env())
    return _registry


def set_registry(registry: ServiceRegistry) -> ServiceRegistry:
    """Install ``registry`` as the global instance and return it."""
    global _registry
    _registry = registry
    return registry


def reset_registry() -> None:
    """Forget the global registry without disposing anything (for testing)."""
    global _registry
    _registry = None


# =============================================================================
# Convenience Functions
# =============================================================================


def register(
    service_type: type[T] | Hashable,
    producer: Callable[[], Any],
    *,
    name: str | None = None,
    disposer: Disposer | None = None,
) -> None:
    """Register a sync or async factory on the global registry."""
    get_registry().register(service_type, producer, name=name, disposer=disposer)


def register_async(
    service_type: type[T] | Hashable,
    producer: Callable[[], Any],
    *,
    name: str | None = None,
    disposer: Disposer | None = None,
) -> None:
    """Register a factory whose result must be awaited."""
    get_registry().register_async(service_type, producer, name=name, disposer=disposer)


def register_instance(
    service_type: type[T] | Hashable,
    instance: T,
    *,
    name: str | None = None,
    disposer: Disposer | None = None,
) -> None:
    """Register a pre-created instance as a ready singleton."""
    get_registry().register_instance(service_type, instance, name=name, disposer=disposer)


def singleton(service_type: type[T] | Hashable, name: str | None = None) -> T:
    """Locate the cached instance, building it from a sync factory if needed."""
    return get_registry().singleton(service_type, name)


async def singleton_async(service_type: type[T] | Hashable, name: str | None = None) -> T:
    """Locate the cached instance, awaiting its construction if needed."""
    return await get_registry().singleton_async(service_type, name)


def create(service_type: type[T] | Hashable, name: str | None = None) -> T:
    """Build a fresh instance from a sync factory."""
    return get_registry().create(service_type, name)


async def create_async(service_type: type[T] | Hashable, name: str | None = None) -> T:
    """Build a fresh instance from a sync or async factory."""
    return await get_registry().create_async(service_type, name)


def is_registered(service_type: Hashable, name: str | None = None) -> bool:
    """Check whether a factory is registered for the key."""
    return get_registry().is_registered(service_type, name)


def remove(service_type: Hashable, name: str | None = None, *, unregister: bool = False) -> Any:
    """Drop and dispose the cached instance for the key."""
    return get_registry().remove(service_type, name, unregister=unregister)


async def remove_async(
    service_type: Hashable,
    name: str | None = None,
    *,
    unregister: bool = False,
) -> Any:
    """Drop and dispose the cached instance, awaiting pending builds and disposers."""
    return await get_registry().remove_async(service_type, name, unregister=unregister)


def unregister(service_type: Hashable, name: str | None = None) -> Any:
    """Drop the cached instance and the factory for the key."""
    return get_registry().unregister(service_type, name)


def clear_locator() -> None:
    """Dispose all cached instances and empty the global registry."""
    get_registry().clear()


async def clear_locator_async() -> None:
    """Async counterpart of :func:`clear_locator`."""
    await get_registry().clear_async()

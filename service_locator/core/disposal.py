"""Disposal helpers.

An explicit disposer registered with the factory always wins. Without one,
instances implementing :class:`Disposable` are disposed through their own
``dispose()`` method when auto-dispose is enabled.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from service_locator.core.errors import AsyncResolutionRequired
from service_locator.core.keys import ServiceKey

Disposer = Callable[[Any], Any] | Callable[[Any], Awaitable[Any]]


@runtime_checkable
class Disposable(Protocol):
    """Service that releases its own resources (sync or async)."""

    def dispose(self) -> Any: ...


def is_async_callable(fn: Callable[..., Any]) -> bool:
    """Return True for coroutine functions, including async ``__call__``."""
    if inspect.iscoroutinefunction(fn):
        return True
    if inspect.isclass(fn):
        return False
    call = getattr(fn, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


def resolve_disposer(
    instance: Any,
    disposer: Disposer | None,
    auto_dispose: bool,
) -> Callable[[], Any] | None:
    """Bind the cleanup callable for a materialized instance.

    Args:
        instance: The materialized value
        disposer: Disposer registered with the factory, if any
        auto_dispose: Fall back to ``instance.dispose()``

    Returns:
        Zero-argument callable performing the disposal, or None
    """
    if disposer is not None:
        return lambda: disposer(instance)
    if auto_dispose and isinstance(instance, Disposable) and callable(instance.dispose):
        return instance.dispose
    return None


def needs_await(instance: Any, disposer: Disposer | None, auto_dispose: bool) -> bool:
    """Whether disposing ``instance`` is known to require an event loop."""
    if disposer is not None:
        return is_async_callable(disposer)
    if auto_dispose and isinstance(instance, Disposable):
        return is_async_callable(instance.dispose)
    return False


def dispose_sync(key: ServiceKey, bound: Callable[[], Any], operation: str) -> None:
    """Run a bound disposer, refusing awaitable results."""
    result = bound()
    if inspect.isawaitable(result):
        if inspect.iscoroutine(result):
            result.close()
        raise AsyncResolutionRequired(key, operation, "disposer returned an awaitable")


async def dispose_async(bound: Callable[[], Any]) -> None:
    """Run a bound disposer, awaiting it when it is asynchronous."""
    result = bound()
    if inspect.isawaitable(result):
        await result

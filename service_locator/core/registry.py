"""
Service registry: lazily constructed, optionally disposed dependencies.

Provides:
- Sync and async factories keyed by (type, optional name)
- Cached singletons with at-most-one concurrent async build per key
- Fresh instances on demand
- Disposal of materialized instances on remove/clear

Example:
    from service_locator.core.registry import ServiceRegistry

    registry = ServiceRegistry()
    registry.register(Database, lambda: Database(url), disposer=Database.close)
    registry.register(Cache, connect_cache, name="sessions")  # async def

    db = registry.singleton(Database)
    cache = await registry.singleton_async(Cache, "sessions")

    await registry.clear_async()
"""

from __future__ import annotations

import asyncio
import inspect
import types
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Hashable, TypeVar

from service_locator.config import LocatorSettings
from service_locator.core.disposal import (
    Disposer,
    dispose_async,
    dispose_sync,
    is_async_callable,
    needs_await,
    resolve_disposer,
)
from service_locator.core.errors import (
    AsyncResolutionRequired,
    ServiceNotRegistered,
    ServiceTypeMismatch,
)
from service_locator.core.keys import ServiceKey, type_label
from service_locator.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


# =============================================================================
# Types & Enums
# =============================================================================


class FactoryKind(Enum):
    """Whether invoking a producer yields a value or an awaitable."""

    SYNC = "sync"
    ASYNC = "async"


class SlotState(Enum):
    """
    Singleton slot states.

    A key without a slot is absent.

    - PENDING: async construction in flight
    - READY: instance cached
    """

    PENDING = "pending"
    READY = "ready"


@dataclass
class FactoryEntry:
    """A registered recipe for producing a service."""

    kind: FactoryKind
    producer: Callable[[], Any]
    disposer: Disposer | None = None
    registered_at: datetime = field(default_factory=datetime.now)


@dataclass
class SingletonSlot:
    """
    Cache entry for a materialized or in-flight singleton.

    The disposer is captured when construction starts, so disposal follows
    the recipe that built the instance even after re-registration.
    """

    state: SlotState
    value: Any = None
    pending: asyncio.Task | None = None
    disposer: Disposer | None = None

    @classmethod
    def ready(cls, value: Any, disposer: Disposer | None) -> SingletonSlot:
        return cls(state=SlotState.READY, value=value, disposer=disposer)

    def mark_ready(self, value: Any) -> None:
        self.state = SlotState.READY
        self.value = value
        self.pending = None


def _retrieve_exception(task: asyncio.Task) -> None:
    # a build whose waiters were all cancelled still has its error read here
    if not task.cancelled():
        task.exception()


# =============================================================================
# Registry
# =============================================================================


class ServiceRegistry:
    """
    Lookup table from (type, name) keys to lazily built instances.

    All operations are meant to run on a single event loop thread; the only
    coordination between concurrent resolutions of one key is the pending
    build task shared through the key's slot.
    """

    def __init__(self, settings: LocatorSettings | None = None):
        """
        Initialize an empty registry.

        Args:
            settings: Behaviour switches (defaults to ``LocatorSettings()``)
        """
        self.settings = settings or LocatorSettings()
        self._factories: dict[ServiceKey, FactoryEntry] = {}
        self._slots: dict[ServiceKey, SingletonSlot] = {}

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(
        self,
        service_type: type[T] | Hashable,
        producer: Callable[[], Any],
        *,
        name: str | None = None,
        disposer: Disposer | None = None,
    ) -> None:
        """
        Register a factory for a type.

        Coroutine functions are registered as async factories. Nothing is
        constructed until the service is resolved; registering the same key
        again replaces the recipe but keeps any cached instance.

        Args:
            service_type: Type tag (a class or any hashable discriminator)
            producer: Zero-argument callable building the service
            name: Optional instance name
            disposer: Optional cleanup callable taking the instance
        """
        kind = FactoryKind.ASYNC if is_async_callable(producer) else FactoryKind.SYNC
        self._store(ServiceKey(service_type, name), FactoryEntry(kind, producer, disposer))

    def register_async(
        self,
        service_type: type[T] | Hashable,
        producer: Callable[[], Any],
        *,
        name: str | None = None,
        disposer: Disposer | None = None,
    ) -> None:
        """
        Register a factory whose result must be awaited.

        Use this for producers that return an awaitable without being
        declared ``async def``.
        """
        key = ServiceKey(service_type, name)
        self._store(key, FactoryEntry(FactoryKind.ASYNC, producer, disposer))

    def register_instance(
        self,
        service_type: type[T] | Hashable,
        instance: T,
        *,
        name: str | None = None,
        disposer: Disposer | None = None,
    ) -> None:
        """
        Register a pre-created instance as a ready singleton.

        Args:
            service_type: Type tag
            instance: Instance to hand out
            name: Optional instance name
            disposer: Optional cleanup callable taking the instance
        """
        key = ServiceKey(service_type, name)
        self._check_type(key, instance)
        self._store(key, FactoryEntry(FactoryKind.SYNC, lambda: instance, disposer))
        previous = self._slots.get(key)
        if previous is not None:
            logger.warning(
                "service_instance_replaced",
                key=key.label,
                state=previous.state.value,
            )
        self._slots[key] = SingletonSlot.ready(instance, disposer)
        logger.debug("service_instance_registered", key=key.label)

    def _store(self, key: ServiceKey, entry: FactoryEntry) -> None:
        overwritten = key in self._factories
        self._factories[key] = entry
        logger.debug(
            "service_overwritten" if overwritten else "service_registered",
            key=key.label,
            kind=entry.kind.value,
            has_disposer=entry.disposer is not None,
        )

    def is_registered(self, service_type: Hashable, name: str | None = None) -> bool:
        """Check whether a factory exists for the exact (type, name) key."""
        return ServiceKey(service_type, name) in self._factories

    def unregister(self, service_type: Hashable, name: str | None = None) -> Any:
        """Remove the cached instance and the factory for a key."""
        return self.remove(service_type, name, unregister=True)

    async def unregister_async(self, service_type: Hashable, name: str | None = None) -> Any:
        """Async counterpart of :meth:`unregister`."""
        return await self.remove_async(service_type, name, unregister=True)

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def singleton(self, service_type: type[T] | Hashable, name: str | None = None) -> T:
        """
        Get the cached instance for a key, building it on first use.

        Args:
            service_type: Type tag
            name: Optional instance name

        Returns:
            The same instance on every call until removed or cleared

        Raises:
            ServiceNotRegistered: If no factory is registered for the key
            AsyncResolutionRequired: If the factory is async or a build is pending
        """
        key = ServiceKey(service_type, name)
        slot = self._slots.get(key)
        if slot is not None:
            if slot.state is SlotState.READY:
                return slot.value
            raise AsyncResolutionRequired(key, "singleton", "construction is still pending")

        entry = self._lookup(key)
        if entry.kind is FactoryKind.ASYNC:
            raise AsyncResolutionRequired(key, "singleton", "factory is asynchronous")

        value = self._build_sync(key, entry, "singleton")
        self._slots[key] = SingletonSlot.ready(value, entry.disposer)
        logger.debug("singleton_built", key=key.label, kind=entry.kind.value)
        return value

    async def singleton_async(
        self,
        service_type: type[T] | Hashable,
        name: str | None = None,
    ) -> T:
        """
        Get the cached instance for a key, awaiting its construction.

        Concurrent callers for a key share one build: the first caller starts
        it, the others attach to the pending task and receive the same
        instance (or the same error).

        Args:
            service_type: Type tag
            name: Optional instance name

        Returns:
            The same instance on every call until removed or cleared

        Raises:
            ServiceNotRegistered: If no factory is registered for the key
        """
        key = ServiceKey(service_type, name)
        slot = self._slots.get(key)
        if slot is None:
            slot = self._start_build(key, self._lookup(key))
        elif slot.state is SlotState.PENDING:
            logger.debug("singleton_attached", key=key.label)

        if slot.state is SlotState.READY:
            return slot.value
        return await asyncio.shield(slot.pending)

    def create(self, service_type: type[T] | Hashable, name: str | None = None) -> T:
        """
        Build a fresh instance without touching the singleton cache.

        Raises:
            ServiceNotRegistered: If no factory is registered for the key
            AsyncResolutionRequired: If the factory is async
        """
        key = ServiceKey(service_type, name)
        entry = self._lookup(key)
        if entry.kind is FactoryKind.ASYNC:
            raise AsyncResolutionRequired(key, "create", "factory is asynchronous")
        value = self._build_sync(key, entry, "create")
        logger.debug("instance_created", key=key.label, kind=entry.kind.value)
        return value

    async def create_async(
        self,
        service_type: type[T] | Hashable,
        name: str | None = None,
    ) -> T:
        """Build a fresh instance from a sync or async factory."""
        key = ServiceKey(service_type, name)
        entry = self._lookup(key)
        value = entry.producer()
        if inspect.isawaitable(value):
            value = await value
        self._check_type(key, value)
        logger.debug("instance_created", key=key.label, kind=entry.kind.value)
        return value

    def _lookup(self, key: ServiceKey) -> FactoryEntry:
        entry = self._factories.get(key)
        if entry is None:
            logger.warning("service_not_registered", key=key.label)
            raise ServiceNotRegistered(key.service_type, key.name)
        return entry

    def _check_type(self, key: ServiceKey, value: Any) -> None:
        if not self.settings.check_types:
            return
        tag = key.service_type
        if not isinstance(tag, type) or isinstance(tag, types.GenericAlias):
            return
        # typing.Protocol classes without @runtime_checkable reject isinstance()
        if getattr(tag, "_is_protocol", False):
            return
        if not isinstance(value, tag):
            raise ServiceTypeMismatch(key, value)

    def _build_sync(self, key: ServiceKey, entry: FactoryEntry, operation: str) -> Any:
        try:
            value = entry.producer()
        except Exception:
            logger.exception("service_build_failed", key=key.label, operation=operation)
            raise
        if inspect.isawaitable(value):
            if inspect.iscoroutine(value):
                value.close()
            raise AsyncResolutionRequired(key, operation, "factory returned an awaitable")
        self._check_type(key, value)
        return value

    def _start_build(self, key: ServiceKey, entry: FactoryEntry) -> SingletonSlot:
        try:
            result = entry.producer()
        except Exception:
            logger.exception("service_build_failed", key=key.label, operation="singleton")
            raise

        if not inspect.isawaitable(result):
            self._check_type(key, result)
            slot = SingletonSlot.ready(result, entry.disposer)
            self._slots[key] = slot
            logger.debug("singleton_built", key=key.label, kind=entry.kind.value)
            return slot

        slot = SingletonSlot(state=SlotState.PENDING, disposer=entry.disposer)
        self._slots[key] = slot
        slot.pending = asyncio.create_task(self._settle(key, slot, result))
        slot.pending.add_done_callback(_retrieve_exception)
        logger.debug("singleton_pending", key=key.label)
        return slot

    async def _settle(self, key: ServiceKey, slot: SingletonSlot, awaitable: Any) -> Any:
        try:
            value = await awaitable
            self._check_type(key, value)
        except BaseException:
            # a failed build must not leave the key wedged in PENDING
            if self._slots.get(key) is slot:
                del self._slots[key]
            logger.exception("service_build_failed", key=key.label, operation="singleton_async")
            raise
        slot.mark_ready(value)
        logger.debug("singleton_built", key=key.label, kind=FactoryKind.ASYNC.value)
        return value

    # -------------------------------------------------------------------------
    # Removal & disposal
    # -------------------------------------------------------------------------

    def remove(
        self,
        service_type: Hashable,
        name: str | None = None,
        *,
        unregister: bool = False,
    ) -> Any:
        """
        Drop the cached instance for a key and dispose it.

        The disposer only runs for an instance that was actually built. The
        factory stays registered unless ``unregister`` is set.

        Args:
            service_type: Type tag
            name: Optional instance name
            unregister: Also remove the factory

        Returns:
            The removed instance, or None if nothing was cached

        Raises:
            AsyncResolutionRequired: If the build is pending or the disposer is async
        """
        key = ServiceKey(service_type, name)
        slot = self._slots.get(key)
        if slot is not None:
            if slot.state is SlotState.PENDING:
                raise AsyncResolutionRequired(key, "remove", "construction is still pending")
            if needs_await(slot.value, slot.disposer, self.settings.auto_dispose):
                raise AsyncResolutionRequired(key, "remove", "disposer is asynchronous")

        if slot is None:
            if unregister:
                self._factories.pop(key, None)
            logger.debug("service_removed", key=key.label, had_instance=False)
            return None

        entry = self._factories.pop(key, None) if unregister else None
        del self._slots[key]
        try:
            self._dispose_sync(key, slot, "remove")
        except AsyncResolutionRequired:
            # put both back so remove_async can still dispose the instance
            self._slots[key] = slot
            if entry is not None:
                self._factories[key] = entry
            raise
        logger.debug("service_removed", key=key.label, had_instance=True)
        return slot.value

    async def remove_async(
        self,
        service_type: Hashable,
        name: str | None = None,
        *,
        unregister: bool = False,
    ) -> Any:
        """
        Drop the cached instance for a key and dispose it, awaiting as needed.

        A pending build is waited for and its result disposed. If that build
        fails, the failure belongs to the resolving callers and None is
        returned here.

        Returns:
            The removed instance, or None if nothing was cached
        """
        key = ServiceKey(service_type, name)
        if unregister:
            self._factories.pop(key, None)
        slot = self._slots.pop(key, None)
        if slot is None:
            logger.debug("service_removed", key=key.label, had_instance=False)
            return None

        logger.debug("service_removed", key=key.label, had_instance=True, state=slot.state.value)
        if not await self._wait_settled(key, slot):
            return None
        await self._dispose_async(key, slot)
        return slot.value

    def clear(self) -> None:
        """
        Dispose every cached instance, then drop all factories and instances.

        If disposers fail, the remaining ones still run, the registry is still
        emptied and the first error is re-raised.

        Raises:
            AsyncResolutionRequired: If any build is pending or any disposer is async
        """
        slots = list(self._slots.items())
        for key, slot in slots:
            if slot.state is SlotState.PENDING:
                raise AsyncResolutionRequired(key, "clear", "construction is still pending")
            if needs_await(slot.value, slot.disposer, self.settings.auto_dispose):
                raise AsyncResolutionRequired(key, "clear", "disposer is asynchronous")

        first_error: Exception | None = None
        for key, slot in slots:
            try:
                self._dispose_sync(key, slot, "clear")
            except Exception as e:
                if first_error is None:
                    first_error = e

        self._reset(len(slots))
        if first_error is not None:
            raise first_error

    async def clear_async(self) -> None:
        """
        Dispose every cached instance, awaiting pending builds and async
        disposers, then drop all factories and instances.

        Builds that fail while the registry is being cleared are skipped.
        """
        first_error: Exception | None = None
        drained = 0
        # detach before awaiting so remove_async never sees a slot owned here;
        # loop until empty to pick up slots created while awaiting
        while self._slots:
            key = next(iter(self._slots))
            slot = self._slots.pop(key)
            drained += 1
            if not await self._wait_settled(key, slot):
                continue
            try:
                await self._dispose_async(key, slot)
            except Exception as e:
                if first_error is None:
                    first_error = e

        self._reset(drained)
        if first_error is not None:
            raise first_error

    def _reset(self, instance_count: int) -> None:
        factory_count = len(self._factories)
        self._factories.clear()
        self._slots.clear()
        logger.info(
            "registry_cleared",
            factories=factory_count,
            instances=instance_count,
        )

    async def _wait_settled(self, key: ServiceKey, slot: SingletonSlot) -> bool:
        """Wait for a pending build; False if it failed."""
        if slot.state is SlotState.READY:
            return True
        try:
            await asyncio.shield(slot.pending)
        except Exception as e:
            logger.warning("pending_build_discarded", key=key.label, error=repr(e))
            return False
        return True

    def _dispose_sync(self, key: ServiceKey, slot: SingletonSlot, operation: str) -> None:
        bound = resolve_disposer(slot.value, slot.disposer, self.settings.auto_dispose)
        if bound is None:
            return
        try:
            dispose_sync(key, bound, operation)
        except Exception:
            logger.exception("service_dispose_failed", key=key.label, operation=operation)
            raise
        logger.debug("service_disposed", key=key.label)

    async def _dispose_async(self, key: ServiceKey, slot: SingletonSlot) -> None:
        bound = resolve_disposer(slot.value, slot.disposer, self.settings.auto_dispose)
        if bound is None:
            return
        try:
            await dispose_async(bound)
        except Exception:
            logger.exception("service_dispose_failed", key=key.label)
            raise
        logger.debug("service_disposed", key=key.label)

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def registered_keys(self) -> list[ServiceKey]:
        """Keys that currently have a factory."""
        return list(self._factories)

    def describe(self) -> list[dict[str, Any]]:
        """
        Snapshot of every known key.

        Returns:
            One dict per key with type, name, kind, state, has_disposer and
            registered_at (ISO timestamp, None for a slot without a factory)
        """
        rows: list[dict[str, Any]] = []
        for key in dict.fromkeys([*self._factories, *self._slots]):
            entry = self._factories.get(key)
            slot = self._slots.get(key)
            disposer = slot.disposer if slot is not None else (entry.disposer if entry else None)
            rows.append(
                {
                    "type": type_label(key.service_type),
                    "name": key.name,
                    "kind": entry.kind.value if entry is not None else None,
                    "state": slot.state.value if slot is not None else "absent",
                    "has_disposer": disposer is not None,
                    "registered_at": entry.registered_at.isoformat() if entry is not None else None,
                }
            )
        return rows

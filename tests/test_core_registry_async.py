"""
Tests for the asynchronous registry paths.
"""

import asyncio
import gc

import pytest

from service_locator.config import LocatorSettings
from service_locator.core.errors import (
    AsyncResolutionRequired,
    ServiceNotRegistered,
    ServiceTypeMismatch,
)
from service_locator.core.registry import FactoryKind, ServiceRegistry


class Client:
    def __init__(self):
        self.closed = 0


class AsyncConnection:
    def __init__(self):
        self.disposed = 0

    async def dispose(self):
        await asyncio.sleep(0)
        self.disposed += 1


def slow_factory(calls, delay=0.01, fail_first=False):
    async def build():
        calls.append(1)
        await asyncio.sleep(delay)
        if fail_first and len(calls) == 1:
            raise ConnectionError("backend unavailable")
        return Client()

    return build


def gated_factory(gate):
    async def build():
        await gate.wait()
        return Client()

    return build


@pytest.mark.asyncio
async def test_concurrent_resolution_builds_once(registry):
    calls = []
    registry.register(Client, slow_factory(calls))

    first, second = await asyncio.gather(
        registry.singleton_async(Client),
        registry.singleton_async(Client),
    )

    assert calls == [1]
    assert first is second
    assert await registry.singleton_async(Client) is first
    assert registry.singleton(Client) is first


@pytest.mark.asyncio
async def test_pending_state_is_visible(registry):
    calls = []
    registry.register(Client, slow_factory(calls))

    task = asyncio.create_task(registry.singleton_async(Client))
    await asyncio.sleep(0)
    assert registry.describe()[0]["state"] == "pending"

    with pytest.raises(AsyncResolutionRequired):
        registry.singleton(Client)

    client = await task
    assert registry.describe()[0]["state"] == "ready"
    assert registry.singleton(Client) is client


@pytest.mark.asyncio
async def test_async_singleton_with_sync_factory(registry):
    registry.register(Client, Client)
    client = await registry.singleton_async(Client)
    assert registry.singleton(Client) is client


@pytest.mark.asyncio
async def test_named_async_instances_are_independent(registry):
    calls = []
    registry.register(Client, slow_factory(calls), name="a")
    registry.register(Client, slow_factory(calls), name="b")

    a, b = await asyncio.gather(
        registry.singleton_async(Client, "a"),
        registry.singleton_async(Client, "b"),
    )
    assert a is not b
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_failed_build_is_shared_and_retried(registry):
    calls = []
    registry.register(Client, slow_factory(calls, fail_first=True))

    results = await asyncio.gather(
        registry.singleton_async(Client),
        registry.singleton_async(Client),
        return_exceptions=True,
    )

    assert calls == [1]
    assert isinstance(results[0], ConnectionError)
    assert results[0] is results[1]
    assert registry.describe()[0]["state"] == "absent"

    client = await registry.singleton_async(Client)
    assert isinstance(client, Client)
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_async_type_mismatch_leaves_slot_absent(registry):
    async def wrong():
        return "client"

    registry.register(Client, wrong)
    with pytest.raises(ServiceTypeMismatch):
        await registry.singleton_async(Client)
    assert registry.describe()[0]["state"] == "absent"


@pytest.mark.asyncio
async def test_unregistered_async_lookup_raises(registry):
    with pytest.raises(ServiceNotRegistered) as excinfo:
        await registry.singleton_async(Client, "remote")
    assert excinfo.value.service_type is Client
    assert excinfo.value.name == "remote"

    with pytest.raises(ServiceNotRegistered):
        await registry.create_async(Client)


@pytest.mark.asyncio
async def test_create_async_returns_fresh_instances(registry):
    calls = []
    registry.register(Client, slow_factory(calls))

    first, second = await asyncio.gather(
        registry.create_async(Client),
        registry.create_async(Client),
    )
    assert first is not second
    assert len(calls) == 2
    assert registry.describe()[0]["state"] == "absent"


@pytest.mark.asyncio
async def test_register_async_accepts_awaitable_returning_callable(registry):
    async def build():
        return Client()

    registry.register_async(Client, lambda: build())
    assert registry.describe()[0]["kind"] == FactoryKind.ASYNC.value
    assert await registry.singleton_async(Client) is await registry.singleton_async(Client)


@pytest.mark.asyncio
async def test_remove_async_disposes_with_async_disposer(registry):
    async def close(client):
        await asyncio.sleep(0)
        client.closed += 1

    registry.register(Client, slow_factory([]), disposer=close)
    client = await registry.singleton_async(Client)

    assert await registry.remove_async(Client) is client
    assert client.closed == 1
    assert await registry.remove_async(Client) is None
    assert client.closed == 1


@pytest.mark.asyncio
async def test_remove_async_without_resolution_does_not_dispose(registry):
    disposed = []
    registry.register(Client, slow_factory([]), disposer=disposed.append)
    assert await registry.remove_async(Client) is None
    assert disposed == []


@pytest.mark.asyncio
async def test_remove_async_waits_for_pending_build(registry):
    calls = []
    disposed = []
    registry.register(Client, slow_factory(calls), disposer=disposed.append)

    resolving = asyncio.create_task(registry.singleton_async(Client))
    await asyncio.sleep(0)

    with pytest.raises(AsyncResolutionRequired):
        registry.remove(Client)

    removed = await registry.remove_async(Client)
    client = await resolving

    assert removed is client
    assert disposed == [client]
    assert calls == [1]

    replacement = await registry.singleton_async(Client)
    assert replacement is not client
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_remove_async_of_failed_pending_build_returns_none(registry):
    calls = []
    disposed = []
    registry.register(Client, slow_factory(calls, fail_first=True), disposer=disposed.append)

    resolving = asyncio.create_task(registry.singleton_async(Client))
    await asyncio.sleep(0)

    assert await registry.remove_async(Client) is None
    with pytest.raises(ConnectionError):
        await resolving
    assert disposed == []


@pytest.mark.asyncio
async def test_unregister_async(registry):
    registry.register(Client, slow_factory([]))
    client = await registry.singleton_async(Client)
    assert await registry.unregister_async(Client) is client
    assert not registry.is_registered(Client)


@pytest.mark.asyncio
async def test_clear_async_disposes_ready_and_pending():
    registry = ServiceRegistry(LocatorSettings(auto_dispose=True))
    disposed = []
    registry.register(Client, slow_factory([]), disposer=disposed.append)
    registry.register(Client, Client, name="sync", disposer=disposed.append)
    registry.register(AsyncConnection, AsyncConnection)

    ready = await registry.singleton_async(Client, "sync")
    connection = await registry.singleton_async(AsyncConnection)
    resolving = asyncio.create_task(registry.singleton_async(Client))
    await asyncio.sleep(0)

    with pytest.raises(AsyncResolutionRequired):
        registry.clear()

    await registry.clear_async()
    pending = await resolving

    assert len(disposed) == 2
    assert any(d is ready for d in disposed)
    assert any(d is pending for d in disposed)
    assert connection.disposed == 1
    assert registry.registered_keys() == []


@pytest.mark.asyncio
async def test_clear_async_skips_failed_builds(registry):
    calls = []
    disposed = []
    registry.register(Client, slow_factory(calls, fail_first=True), disposer=disposed.append)

    resolving = asyncio.create_task(registry.singleton_async(Client))
    await asyncio.sleep(0)
    await registry.clear_async()

    with pytest.raises(ConnectionError):
        await resolving
    assert disposed == []
    assert not registry.is_registered(Client)


@pytest.mark.asyncio
async def test_clear_async_reraises_first_disposer_error(registry):
    closed = []

    async def broken(_):
        raise RuntimeError("close failed")

    registry.register(Client, Client, disposer=broken)
    registry.register(Client, Client, name="other", disposer=closed.append)
    await registry.singleton_async(Client)
    other = await registry.singleton_async(Client, "other")

    with pytest.raises(RuntimeError, match="close failed"):
        await registry.clear_async()

    assert closed == [other]
    assert registry.describe() == []


@pytest.mark.asyncio
async def test_reentrant_async_resolution(registry):
    class Repository:
        def __init__(self, client):
            self.client = client

    async def build_repository():
        return Repository(await registry.singleton_async(Client))

    registry.register(Client, slow_factory([]))
    registry.register(Repository, build_repository)

    repository = await registry.singleton_async(Repository)
    assert repository.client is await registry.singleton_async(Client)


@pytest.mark.asyncio
async def test_remove_async_during_clear_async_disposes_once(registry):
    gate = asyncio.Event()
    disposed = []

    async def close(client):
        await asyncio.sleep(0)
        disposed.append(client)

    registry.register(Client, gated_factory(gate), name="a", disposer=close)
    registry.register(Client, Client, name="b", disposer=close)
    resolving = asyncio.create_task(registry.singleton_async(Client, "a"))
    await asyncio.sleep(0)
    b = registry.singleton(Client, "b")

    clearing = asyncio.create_task(registry.clear_async())
    await asyncio.sleep(0)
    assert await registry.remove_async(Client, "b") is b

    gate.set()
    await clearing
    a = await resolving

    assert [d for d in disposed if d is b] == [b]
    assert [d for d in disposed if d is a] == [a]
    assert registry.describe() == []


@pytest.mark.asyncio
async def test_remove_async_of_slot_being_cleared_returns_none(registry):
    release = asyncio.Event()
    disposed = []

    async def close(client):
        await release.wait()
        disposed.append(client)

    registry.register(Client, Client, disposer=close)
    client = registry.singleton(Client)

    clearing = asyncio.create_task(registry.clear_async())
    await asyncio.sleep(0)
    assert await registry.remove_async(Client) is None

    release.set()
    await clearing
    assert disposed == [client]


@pytest.mark.asyncio
async def test_clear_async_disposes_instances_built_while_clearing(registry):
    gate = asyncio.Event()
    disposed = []
    registry.register(Client, gated_factory(gate), name="a", disposer=disposed.append)
    registry.register(Client, Client, name="late", disposer=disposed.append)
    resolving = asyncio.create_task(registry.singleton_async(Client, "a"))
    await asyncio.sleep(0)

    clearing = asyncio.create_task(registry.clear_async())
    await asyncio.sleep(0)
    late = await registry.singleton_async(Client, "late")

    gate.set()
    await clearing
    a = await resolving

    assert len(disposed) == 2
    assert any(d is late for d in disposed)
    assert any(d is a for d in disposed)
    assert registry.describe() == []


@pytest.mark.asyncio
async def test_remove_async_after_sync_remove_refused_awaitable_disposer(registry):
    async def close(client):
        await asyncio.sleep(0)
        client.closed += 1

    registry.register(Client, Client, disposer=lambda client: close(client))
    client = registry.singleton(Client)

    with pytest.raises(AsyncResolutionRequired):
        registry.remove(Client)
    assert client.closed == 0

    assert await registry.remove_async(Client) is client
    assert client.closed == 1
    assert registry.describe()[0]["state"] == "absent"


@pytest.mark.asyncio
async def test_failed_build_with_cancelled_waiters_is_retrieved(registry):
    loop = asyncio.get_running_loop()
    contexts = []
    gate = asyncio.Event()

    async def build():
        await gate.wait()
        raise ConnectionError("backend unavailable")

    registry.register(Client, build)
    loop.set_exception_handler(lambda _loop, context: contexts.append(context))
    try:
        waiter = asyncio.create_task(registry.singleton_async(Client))
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        gate.set()
        for _ in range(3):
            await asyncio.sleep(0)
        assert registry.describe()[0]["state"] == "absent"
        del waiter
        gc.collect()
    finally:
        loop.set_exception_handler(None)

    assert not [c for c in contexts if "never retrieved" in c.get("message", "")]

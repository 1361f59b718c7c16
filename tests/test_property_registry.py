"""Property-based tests for ServiceRegistry using Hypothesis."""
from hypothesis import given, strategies as st

from service_locator.core.keys import ServiceKey
from service_locator.core.registry import ServiceRegistry


class Widget:
    pass


names = st.one_of(st.none(), st.text(max_size=12))


# =============================================================================
# Key Isolation Properties
# =============================================================================

@given(st.lists(names, min_size=1, max_size=8, unique=True))
def test_named_slots_never_share_instances(slot_names):
    """Property: every (type, name) key owns a distinct singleton."""
    registry = ServiceRegistry()
    for name in slot_names:
        registry.register(Widget, Widget, name=name)

    resolved = {name: registry.singleton(Widget, name) for name in slot_names}

    assert len({id(w) for w in resolved.values()}) == len(slot_names)
    for name, widget in resolved.items():
        assert registry.singleton(Widget, name) is widget


@given(st.lists(names, min_size=2, max_size=8, unique=True), st.data())
def test_remove_only_affects_its_own_key(slot_names, data):
    """Property: removing one key leaves every other cached instance intact."""
    registry = ServiceRegistry()
    disposed = []
    for name in slot_names:
        registry.register(Widget, Widget, name=name, disposer=disposed.append)
    resolved = {name: registry.singleton(Widget, name) for name in slot_names}

    victim = data.draw(st.sampled_from(slot_names))
    assert registry.remove(Widget, victim) is resolved[victim]

    assert disposed == [resolved[victim]]
    for name in slot_names:
        if name != victim:
            assert registry.singleton(Widget, name) is resolved[name]


@given(st.lists(names, max_size=8, unique=True), st.lists(names, max_size=8, unique=True))
def test_clear_disposes_each_materialized_instance_once(registered, materialized):
    """Property: clear() disposes exactly the resolved instances, once each."""
    registry = ServiceRegistry()
    disposed = []
    for name in registered:
        registry.register(Widget, Widget, name=name, disposer=disposed.append)
    built = [registry.singleton(Widget, n) for n in materialized if n in registered]

    registry.clear()

    assert sorted(map(id, disposed)) == sorted(map(id, built))
    assert all(not registry.is_registered(Widget, n) for n in registered)
    assert ServiceKey(Widget) not in registry.registered_keys()

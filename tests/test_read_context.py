"""Tests for the read context handed to provider factories."""
import pytest

from providerscope import (
    CircularDependencyError,
    Provider,
    ProviderReference,
    ProviderScope,
    UseAfterDisposeError,
)


def test_factory_receives_reference(root):
    seen = []
    provider = Provider(lambda ref: seen.append(ref) or "value")

    state = root.read_state(provider)

    assert isinstance(seen[0], ProviderReference)
    assert seen[0].scope is root
    assert seen[0].state is state


def test_provider_depends_on_provider(root):
    base_url = Provider(lambda ref: "https://example.org", name="base_url")
    endpoint = Provider(lambda ref: ref.read(base_url) + "/api", name="endpoint")

    assert root.read(endpoint) == "https://example.org/api"


def test_dependencies_recorded(root):
    base_url = Provider(lambda ref: "https://example.org", name="base_url")
    endpoint = Provider(lambda ref: ref.read(base_url) + "/api", name="endpoint")

    endpoint_state = root.read_state(endpoint)
    base_state = root.read_state(base_url)

    assert endpoint_state.dependencies == [base_state]
    assert base_state.dependents == [endpoint_state]


def test_dependencies_resolved_from_owning_scope(root, greeting, bonjour):
    """A root-owned state never depends on a descendant's overrides."""
    shout = Provider(lambda ref: ref.read(greeting).upper(), name="shout")
    french = root.child([greeting.override_for(bonjour)])

    assert french.read(shout) == "HELLO"
    assert french.read(greeting) == "Bonjour"


def test_overridden_state_sees_overrides_of_its_scope(root, greeting, bonjour):
    shout = Provider(lambda ref: ref.read(greeting).upper(), name="shout")
    french = root.child([greeting.override_for(bonjour), shout.override_for(shout)])

    assert french.read(shout) == "BONJOUR"
    assert root.read(shout) == "HELLO"


def test_direct_circular_dependency_detected(root):
    providers = {}
    providers["loop"] = Provider(lambda ref: ref.read(providers["loop"]), name="loop")

    with pytest.raises(CircularDependencyError) as excinfo:
        root.read(providers["loop"])

    assert excinfo.value.chain == ["loop@root", "loop@root"]


def test_transitive_circular_dependency_detected(root):
    providers = {}
    providers["a"] = Provider(lambda ref: ref.read(providers["b"]), name="a")
    providers["b"] = Provider(lambda ref: ref.read(providers["c"]), name="b")
    providers["c"] = Provider(lambda ref: ref.read(providers["a"]), name="c")

    with pytest.raises(CircularDependencyError) as excinfo:
        root.read(providers["a"])

    assert "a@root -> b@root -> c@root -> a@root" in str(excinfo.value)
    assert root.owned_states() == {}


def test_resolution_recovers_after_circular_failure(root):
    providers = {}
    providers["a"] = Provider(lambda ref: ref.read(providers["b"]), name="a")
    providers["b"] = Provider(lambda ref: ref.read(providers["a"]), name="b")
    standalone = Provider(lambda ref: "fine")

    with pytest.raises(CircularDependencyError):
        root.read(providers["a"])

    assert root.read(standalone) == "fine"


def test_replacement_reading_its_origin_is_circular(root):
    """Inside the overriding scope the origin resolves to the replacement itself."""
    counter = Provider(lambda ref: 0, name="counter")
    local = root.child(
        [counter.override_for(Provider(lambda ref: ref.read(counter) + 1, name="local"))],
        name="local",
    )

    with pytest.raises(CircularDependencyError) as excinfo:
        local.read(counter)

    assert excinfo.value.chain == ["counter@local", "counter@local"]
    assert root.read(counter) == 0


def test_same_origin_in_different_scopes_is_not_circular(root):
    """A local state may depend, through the root, on the root's state of the same origin."""
    base = Provider(lambda ref: 1, name="base")
    scaled = Provider(lambda ref: ref.read(base) * 10, name="scaled")
    local = root.child([base.override_for(Provider(lambda ref: ref.read(scaled) + 1, name="local"))])

    assert local.read(base) == 11
    assert root.read(base) == 1
    assert root.read(scaled) == 10


def test_on_dispose_runs_with_scope_teardown():
    calls = []

    def factory(ref):
        ref.on_dispose(lambda: calls.append("closed"))
        return "connection"

    scope = ProviderScope()
    scope.read(Provider(factory))
    assert calls == []

    scope.dispose()

    assert calls == ["closed"]


def test_failed_factory_runs_registered_cleanups(root):
    calls = []

    def factory(ref):
        ref.on_dispose(lambda: calls.append("cleanup"))
        raise ValueError("boom")

    with pytest.raises(ValueError):
        root.read(Provider(factory))

    assert calls == ["cleanup"]


def test_reference_can_push_later_values(root):
    references = []

    def factory(ref):
        references.append(ref)
        return 0

    ticker = Provider(factory)
    state = root.read_state(ticker)
    received = []
    state.add_listener(received.append)

    references[0].state.set_value(1)

    assert received == [1]
    assert root.read(ticker) == 1


def test_reference_read_after_dispose_fails(greeting):
    references = []
    provider = Provider(lambda ref: references.append(ref) or 1)
    scope = ProviderScope()
    scope.read(provider)
    scope.dispose()

    with pytest.raises(UseAfterDisposeError):
        references[0].read(greeting)

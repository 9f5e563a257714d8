"""Tests for resolving providers through the scope chain."""
import pytest

from providerscope import (
    Provider,
    ProviderScope,
    ScopeDisposedError,
    TypeMismatchError,
)


def test_root_resolves_provider_factory(root, greeting):
    assert root.read(greeting) == "Hello"


def test_override_visible_in_child_not_in_sibling(root, greeting, bonjour):
    """Overrides apply to their own subtree only."""
    french = root.child([greeting.override_for(bonjour)], name="french")
    sibling = root.child(name="sibling")

    assert root.read(greeting) == "Hello"
    assert french.read(greeting) == "Bonjour"
    assert sibling.read(greeting) == "Hello"


def test_override_visible_in_descendants(root, greeting, bonjour):
    french = root.child([greeting.override_for(bonjour)])
    grandchild = french.child().child()

    assert grandchild.read_state(greeting) is french.read_state(greeting)
    assert grandchild.read(greeting) == "Bonjour"


def test_nearest_override_wins(root, greeting, bonjour):
    hola = Provider(lambda ref: "Hola", name="hola")
    french = root.child([greeting.override_for(bonjour)])
    spanish = french.child([greeting.override_for(hola)])

    assert french.read(greeting) == "Bonjour"
    assert spanish.read(greeting) == "Hola"
    assert spanish.child().read(greeting) == "Hola"


def test_repeated_reads_return_same_state(root, greeting, bonjour):
    french = root.child([greeting.override_for(bonjour)])

    assert root.read_state(greeting) is root.read_state(greeting)
    assert french.read_state(greeting) is french.read_state(greeting)
    assert root.read_state(greeting) is not french.read_state(greeting)


def test_factory_runs_lazily_and_once(root, counting_provider):
    provider, counter = counting_provider
    child = root.child()

    assert counter.calls == 0
    child.read(provider)
    root.read(provider)
    child.child().read(provider)

    assert counter.calls == 1


def test_declared_overrides_are_not_built_eagerly(greeting, counting_provider):
    provider, counter = counting_provider
    scope = ProviderScope([greeting.override_for(provider)])

    assert counter.calls == 0
    assert scope.owned_states() == {}

    scope.read(greeting)

    assert counter.calls == 1
    scope.dispose()


def test_fallback_state_owned_and_shared_by_root(root, greeting):
    left = root.child()
    right = root.child()

    state = left.read_state(greeting)

    assert right.read_state(greeting) is state
    assert state.owner is root
    assert root.owned_states() == {greeting: state}
    assert left.owned_states() == {}
    assert right.owned_states() == {}


def test_override_state_owned_by_declaring_scope(root, greeting, bonjour):
    french = root.child([greeting.override_for(bonjour)])
    leaf = french.child()

    state = leaf.read_state(greeting)

    assert state.owner is french
    assert state.origin is greeting
    assert state.provider is bonjour
    assert french.owned_states() == {greeting: state}
    assert leaf.owned_states() == {}
    assert greeting not in root.owned_states()


def test_state_keyed_by_origin_not_replacement(root, bonjour):
    """Two origins overridden with the same replacement get independent state."""
    first = Provider(lambda ref: "first", name="first")
    second = Provider(lambda ref: "second", name="second")
    child = root.child([first.override_for(bonjour), second.override_for(bonjour)])

    first_state = child.read_state(first)
    second_state = child.read_state(second)

    assert first_state is not second_state
    assert first_state.current_value() == "Bonjour"
    assert second_state.current_value() == "Bonjour"

    first_state.set_value("Salut")
    assert second_state.current_value() == "Bonjour"


def test_replacement_read_directly_uses_its_own_state(root, greeting, bonjour):
    child = root.child([greeting.override_for(bonjour)])

    overridden = child.read_state(greeting)
    direct = child.read_state(bonjour)

    assert overridden is not direct
    assert direct.owner is root


def test_read_state_with_explicit_origin(root, greeting, bonjour):
    state = root.read_state(bonjour, origin=greeting)

    assert state.current_value() == "Bonjour"
    assert root.read_state(greeting) is state


def test_self_override_gives_subtree_local_state(root, counting_provider):
    provider, counter = counting_provider
    local = root.child([provider.override_for(provider)])

    global_state = root.read_state(provider)
    local_state = local.read_state(provider)

    assert local_state is not global_state
    assert local_state.owner is local
    assert counter.calls == 2


def test_mutation_visible_to_all_readers_of_same_state(root, greeting):
    left = root.child()
    right = root.child()

    left.read_state(greeting).set_value("Hi")

    assert right.read(greeting) == "Hi"


def test_failed_factory_memoizes_nothing(root):
    attempts = []

    def flaky(ref):
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("not yet")
        return "ready"

    provider = Provider(flaky)

    with pytest.raises(RuntimeError):
        root.read(provider)
    assert root.owned_states() == {}

    assert root.read(provider) == "ready"
    assert len(attempts) == 2


def test_value_type_checked_at_materialization(root):
    provider = Provider(lambda ref: "text", value_type=int, name="number")

    with pytest.raises(TypeMismatchError):
        root.read(provider)
    assert root.owned_states() == {}


def test_value_type_of_origin_checked_for_untyped_replacement(root):
    number = Provider(lambda ref: 1, value_type=int, name="number")
    child = root.child([number.override_for(Provider(lambda ref: "one"))])

    assert root.read(number) == 1
    with pytest.raises(TypeMismatchError):
        child.read(number)


def test_read_rejects_non_provider(root):
    with pytest.raises(TypeError):
        root.read_state(lambda ref: 1)


def test_read_from_disposed_scope_fails(greeting):
    scope = ProviderScope()
    scope.dispose()

    with pytest.raises(ScopeDisposedError):
        scope.read(greeting)


def test_scope_tree_links(root):
    child = root.child(name="child")
    grandchild = child.child(name="grandchild")

    assert child.parent is root
    assert root.children == [child]
    assert child.children == [grandchild]
    assert grandchild.root is root
    assert root.root is root
    assert root.parent is None

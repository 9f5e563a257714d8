"""
ProviderScope: a node of the scope tree that owns provider state.

Each scope holds state only for the providers it overrides (the root scope
also holds the fallback state of every provider nobody overrides). Reads that
a scope cannot answer are delegated to its parent:

    child.read_state(p)
      1. state already memoized in child for p      -> return it
      2. child overrides p                          -> build from the replacement
      3. child has a parent                         -> parent.read_state(p)
      4. child is the root                          -> build from p itself

State is created on first read and memoized, so repeated reads return the
same ProviderState until the scope is reconfigured with update_overrides().

The tree-management layer drives the lifecycle:
- ProviderScope(...) / scope.child(...) when a node attaches
- scope.update_overrides(new_overrides) when its configuration changes
- scope.dispose() when it detaches

Thread safety: Not thread-safe (all operations expected on the owner thread).
"""

import contextvars
import itertools
import logging
from typing import Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

from providerscope.config import get_scope_config
from providerscope.errors import (
    CircularDependencyError,
    DisposalError,
    ScopeDisposedError,
    TypeMismatchError,
    UseAfterDisposeError,
)
from providerscope.provider import Provider, ProviderOverride
from providerscope.reconcile import ReconcilePlan, index_overrides, plan_reconciliation
from providerscope.state import ProviderState
from providerscope.subscription import ProviderSubscription

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Resolution-in-progress stack - (scope, origin) pairs whose factories are running.
# Ordered outermost to innermost; used to report circular provider dependencies.
_resolution_stack: contextvars.ContextVar[Tuple[Tuple['ProviderScope', Provider], ...]] = contextvars.ContextVar(
    '_resolution_stack', default=()
)

_scope_ids = itertools.count(1)


class ProviderReference(Generic[T]):
    """Read context handed to a provider factory.

    Reads go through the scope that owns the state being built, and every
    state read is recorded as a dependency so teardown can dispose dependents
    before the state they depend on.

    Example:
        repository = Provider(lambda ref: Repository(ref.read(http_client)))
    """

    def __init__(self, scope: 'ProviderScope', state: ProviderState[T]):
        self._scope = scope
        self._state = state

    @property
    def scope(self) -> 'ProviderScope':
        return self._scope

    @property
    def state(self) -> ProviderState[T]:
        """The state being built. Lets long-lived factories push later values."""
        return self._state

    def read_state(self, provider: Provider) -> ProviderState:
        """Resolve another provider and record it as a dependency."""
        if self._state.is_disposed:
            raise UseAfterDisposeError(f"Cannot read {provider!r} through the reference of disposed {self._state!r}")
        dependency = self._scope.read_state(provider)
        self._state._add_dependency(dependency)
        return dependency

    def read(self, provider: Provider):
        """Resolve another provider and return its current value."""
        return self.read_state(provider).current_value()

    def on_dispose(self, callback: Callable[[], None]) -> None:
        """Register a cleanup to run when the state is disposed."""
        self._state.add_dispose_callback(callback)


class ProviderScope:
    """Scope node owning the state of the providers it overrides.

    Args:
        overrides: ProviderOverride bindings visible to this scope and its
            descendants.
        parent: Enclosing scope, or None for a root scope.
        name: Optional label used in logs and error messages.

    Raises:
        DuplicateOverrideError: If two bindings share an origin.
        ScopeDisposedError: If `parent` is already disposed.
    """

    def __init__(
        self,
        overrides: Iterable[ProviderOverride] = (),
        *,
        parent: Optional['ProviderScope'] = None,
        name: Optional[str] = None,
    ):
        self.id = next(_scope_ids)
        self.name = name or f"scope#{self.id}"
        self._overrides: Tuple[ProviderOverride, ...] = tuple(overrides)
        self._override_index = index_overrides(self._overrides)
        # Keyed by origin provider key; populated lazily on first read
        self._provider_state: Dict[int, ProviderState] = {}
        self._parent = parent
        self._children: List['ProviderScope'] = []
        self._disposed = False

        if parent is not None:
            parent._ensure_not_disposed()
            parent._children.append(self)
        logger.debug(f"Created {self!r} with {len(self._overrides)} override(s)")

    def __repr__(self) -> str:
        return f"<ProviderScope {self.name}{' disposed' if self._disposed else ''}>"

    def __enter__(self) -> 'ProviderScope':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # ========== TREE ==========

    def child(self, overrides: Iterable[ProviderOverride] = (), *, name: Optional[str] = None) -> 'ProviderScope':
        """Create a scope nested under this one."""
        return ProviderScope(overrides, parent=self, name=name)

    @property
    def parent(self) -> Optional['ProviderScope']:
        return self._parent

    @property
    def children(self) -> List['ProviderScope']:
        return list(self._children)

    @property
    def root(self) -> 'ProviderScope':
        scope = self
        while scope._parent is not None:
            scope = scope._parent
        return scope

    @property
    def overrides(self) -> Tuple[ProviderOverride, ...]:
        return self._overrides

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def owned_states(self) -> Dict[Provider, ProviderState]:
        """States this scope owns, keyed by origin provider (creation order)."""
        return {state.origin: state for state in self._provider_state.values()}

    # ========== RESOLUTION ==========

    def read_state(self, provider: Provider[T], *, origin: Optional[Provider] = None) -> ProviderState[T]:
        """Find or create the state that `provider` resolves to from this scope.

        Args:
            provider: Provider to resolve.
            origin: Key to store the state under when `provider` is being
                built as the replacement of another provider. Defaults to
                `provider` itself.

        Returns:
            The memoized ProviderState. Stable across calls until this scope
            or an ancestor is reconfigured.

        Raises:
            ScopeDisposedError: If this scope was disposed.
            CircularDependencyError: If building the state requires itself.
            TypeMismatchError: If the built value is not of the declared type.
        """
        self._ensure_not_disposed()
        if not isinstance(provider, Provider):
            raise TypeError(f"Expected Provider, got {type(provider).__name__}")

        key_provider = origin if origin is not None else provider
        state = self._provider_state.get(key_provider.key)
        if state is not None:
            return state

        override = self._override_index.get(key_provider.key)
        if override is not None:
            return self._materialize(override.replacement, key_provider)

        if self._parent is not None:
            return self._parent.read_state(provider, origin=origin)

        return self._materialize(provider, key_provider)

    def read(self, provider: Provider[T]) -> T:
        """Resolve `provider` and return its current value."""
        return self.read_state(provider).current_value()

    def listen(self, provider: Provider[T], listener: Callable[[T], None]) -> ProviderSubscription[T]:
        """Subscribe `listener` to the state `provider` resolves to from this scope."""
        return ProviderSubscription(self, provider, listener)

    def _materialize(self, provider: Provider[T], origin: Provider) -> ProviderState[T]:
        """Build, initialize and memoize the state for `origin` from `provider`'s factory."""
        stack = _resolution_stack.get()
        if any(scope is self and pending is origin for scope, pending in stack):
            chain = [f"{pending.name}@{scope.name}" for scope, pending in stack]
            chain.append(f"{origin.name}@{self.name}")
            raise CircularDependencyError(chain)

        state = provider.create_state()
        state._bind(provider, origin, self)

        token = _resolution_stack.set(stack + ((self, origin),))
        try:
            value = provider.create(ProviderReference(self, state))
            if origin.value_type is not None and not isinstance(value, origin.value_type):
                raise TypeMismatchError(
                    f"{provider!r} produced {type(value).__name__} for {origin!r}, "
                    f"expected {origin.value_type.__name__}"
                )
            state.initialize(value)
        except Exception:
            self._discard(state)
            raise
        finally:
            _resolution_stack.reset(token)

        self._provider_state[origin.key] = state
        if provider is origin:
            logger.debug(f"Materialized {origin.name} in {self.name}")
        else:
            logger.debug(f"Materialized {origin.name} in {self.name} from override {provider.name}")
        return state

    def _discard(self, state: ProviderState) -> None:
        """Dispose a state whose construction failed; the construction error takes precedence."""
        try:
            state.dispose()
        except DisposalError as e:
            logger.warning(f"Error cleaning up failed construction of {state!r} in {self.name}: {e}")

    # ========== RECONCILIATION ==========

    def update_overrides(self, overrides: Iterable[ProviderOverride]) -> ReconcilePlan:
        """Reconfigure this scope with a new override list.

        States whose binding kept the same replacement survive (their update
        hook runs if the binding object changed); states whose binding was
        added, removed or changed replacement are disposed, together with the
        states that depended on them. Replacements are built lazily on the
        next read.

        A newly added binding also evicts the states in this subtree that were
        built from the ancestor state it now shadows.

        Returns:
            The applied ReconcilePlan.

        Raises:
            DuplicateOverrideError: If two new bindings share an origin. The
                scope is left unchanged.
            DisposalError: If update hooks or cleanups failed and
                raise_on_dispose_errors is set. The reconfiguration is still
                fully applied.
        """
        self._ensure_not_disposed()
        new_overrides = tuple(overrides)
        plan = plan_reconciliation(self._overrides, new_overrides, self._provider_state)
        new_index = index_overrides(new_overrides)
        stale = self._shadowed_dependents(new_index)

        self._overrides = new_overrides
        self._override_index = new_index
        for key in list(self._provider_state):
            if key not in plan.next_state:
                del self._provider_state[key]

        errors: List[Tuple[str, BaseException]] = []
        for state, replacement in plan.updates:
            logger.debug(f"Updating {state!r} in {self.name} to {replacement.name}")
            try:
                state.update_provider(replacement)
            except Exception as e:
                errors.append((repr(state), e))

        errors.extend(_dispose_states(list(plan.disposals) + stale))
        if plan.disposals or stale:
            logger.debug(
                f"Reconfigured {self.name}: disposed {len(plan.disposals)} state(s), "
                f"evicted {len(stale)} shadowed dependent(s)"
            )
        self._report_disposal_errors(errors)
        return plan

    def _shadowed_dependents(self, new_index: Dict[int, ProviderOverride]) -> List[ProviderState]:
        """States in this subtree built from ancestor state that `new_index` starts shadowing."""
        if self._parent is None:
            return []
        stale: List[ProviderState] = []
        for key in new_index:
            if key in self._override_index or key in self._provider_state:
                continue
            shadowed = self._parent._lookup_state(key)
            if shadowed is None:
                continue
            stale.extend(
                dependent for dependent in shadowed.dependents
                if dependent.owner is not None and dependent.owner._is_within(self)
            )
        return stale

    def _lookup_state(self, key: int) -> Optional[ProviderState]:
        """The state a read of `key` resolves to from here, without building anything."""
        scope: Optional[ProviderScope] = self
        while scope is not None:
            state = scope._provider_state.get(key)
            if state is not None:
                return state
            if key in scope._override_index:
                return None
            scope = scope._parent
        return None

    def _is_within(self, ancestor: 'ProviderScope') -> bool:
        scope: Optional[ProviderScope] = self
        while scope is not None:
            if scope is ancestor:
                return True
            scope = scope._parent
        return False

    # ========== TEARDOWN ==========

    def dispose(self) -> None:
        """Dispose this scope, its descendants and every state they own.

        Descendants go first, then this scope's states with dependents before
        the states they depend on. Teardown is best-effort: every state is
        disposed even if some cleanups fail. Disposing twice is a no-op.

        Raises:
            DisposalError: If cleanups failed and raise_on_dispose_errors is set.
        """
        if self._disposed:
            return
        errors = self._dispose_subtree()
        if self._parent is not None and self in self._parent._children:
            self._parent._children.remove(self)
        logger.debug(f"Disposed {self.name}")
        self._report_disposal_errors(errors)

    def _dispose_subtree(self) -> List[Tuple[str, BaseException]]:
        errors: List[Tuple[str, BaseException]] = []
        for child in reversed(self._children):
            errors.extend(child._dispose_subtree())
        self._children.clear()

        errors.extend(_dispose_states(list(self._provider_state.values())))
        self._provider_state.clear()
        self._disposed = True
        return errors

    def _report_disposal_errors(self, errors: List[Tuple[str, BaseException]]) -> None:
        if not errors:
            return
        if get_scope_config().raise_on_dispose_errors:
            raise DisposalError(errors)
        for label, e in errors:
            logger.warning(f"Error disposing {label} in {self.name}: {e}")

    def _ensure_not_disposed(self) -> None:
        if self._disposed:
            raise ScopeDisposedError(f"{self!r} has been disposed")


def dependents_first(states: Iterable[ProviderState]) -> List[ProviderState]:
    """Order `states` plus everything depending on them so dependents come first."""
    ordered: Dict[int, ProviderState] = {}
    visiting = set()

    def visit(state: ProviderState) -> None:
        if id(state) in ordered or id(state) in visiting:
            return
        visiting.add(id(state))
        for dependent in state.dependents:
            visit(dependent)
        ordered[id(state)] = state

    for state in states:
        visit(state)
    return list(ordered.values())


def _dispose_states(states: Iterable[ProviderState]) -> List[Tuple[str, BaseException]]:
    """Evict and dispose `states` and their transitive dependents, collecting failures."""
    errors: List[Tuple[str, BaseException]] = []
    for state in dependents_first(states):
        if state.is_disposed:
            continue
        owner = state.owner
        if owner is not None and owner._provider_state.get(state.origin.key) is state:
            del owner._provider_state[state.origin.key]
        try:
            state.dispose()
        except DisposalError as e:
            errors.extend(e.errors)
        except Exception as e:
            errors.append((repr(state), e))
    return errors

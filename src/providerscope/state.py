"""
ProviderState: the observable value holder behind a provider.

A state cell is created empty by Provider.create_state(), initialized once with
the factory result, then mutated through set_value(), which notifies listeners
synchronously in subscription order. The owning ProviderScope disposes it when
the override that created it goes away or the scope itself is torn down.

Lifecycle:
    created -> initialize() -> set_value()* -> dispose()

Thread safety: Not thread-safe (all operations expected on the owner thread).
"""

import itertools
import logging
from typing import Callable, Dict, Generic, List, Optional, Tuple, TypeVar, TYPE_CHECKING

from providerscope.config import get_scope_config
from providerscope.errors import (
    DisposalError,
    DoubleInitializationError,
    ListenerError,
    UninitializedStateError,
    UseAfterDisposeError,
)

if TYPE_CHECKING:
    from providerscope.provider import Provider
    from providerscope.scope import ProviderScope

logger = logging.getLogger(__name__)

T = TypeVar('T')

RemoveListener = Callable[[], None]


class ProviderState(Generic[T]):
    """Mutable, observable holder of a provider's current value."""

    def __init__(self):
        self._value: Optional[T] = None
        self._initialized = False
        self._disposed = False

        # Insertion-ordered; keys are subscription ids
        self._listeners: Dict[int, Callable[[T], None]] = {}
        self._listener_ids = itertools.count()

        # Cleanups registered by the factory through its ProviderReference
        self._dispose_callbacks: List[Callable[[], None]] = []

        # Dict-as-ordered-set of ProviderState, keyed by id()
        self._dependencies: Dict[int, 'ProviderState'] = {}
        self._dependents: Dict[int, 'ProviderState'] = {}

        self._provider: Optional['Provider[T]'] = None
        self._origin: Optional['Provider[T]'] = None
        self._owner: Optional['ProviderScope'] = None

    def __repr__(self) -> str:
        origin = self._origin.name if self._origin is not None else "?"
        status = "disposed" if self._disposed else ("ready" if self._initialized else "empty")
        return f"<{type(self).__name__} {origin} {status}>"

    @property
    def provider(self) -> Optional['Provider[T]']:
        """Provider whose factory built this state (updated by reconciliation)."""
        return self._provider

    @property
    def origin(self) -> Optional['Provider[T]']:
        """Provider this state is keyed by in its owning scope."""
        return self._origin

    @property
    def owner(self) -> Optional['ProviderScope']:
        return self._owner

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _bind(self, provider: 'Provider[T]', origin: 'Provider[T]', owner: 'ProviderScope') -> None:
        """Attach the state to its provider, key and owning scope. Called once at materialization."""
        self._provider = provider
        self._origin = origin
        self._owner = owner

    # ========== VALUE ==========

    def initialize(self, value: T) -> None:
        """Set the initial value produced by the provider's factory.

        Raises:
            DoubleInitializationError: If the state already holds a value.
            UseAfterDisposeError: If the state was disposed.
        """
        self._ensure_not_disposed("initialize")
        if self._initialized:
            raise DoubleInitializationError(f"{self!r} is already initialized")
        self._value = value
        self._initialized = True

    def current_value(self) -> T:
        """Return the current value.

        Raises:
            UninitializedStateError: If initialize() has not been called yet.
        """
        if not self._initialized:
            raise UninitializedStateError(f"{self!r} was read before initialization")
        return self._value

    def set_value(self, value: T) -> None:
        """Replace the value, then notify every listener with it in subscription order.

        Listeners removed during the pass are skipped; listeners added during
        the pass are first notified on the next call.

        Raises:
            UseAfterDisposeError: If the state was disposed.
            UninitializedStateError: If the state was never initialized.
            ListenerError: If listeners raised and propagate_listener_errors is set.
        """
        self._ensure_not_disposed("set_value")
        if not self._initialized:
            raise UninitializedStateError(f"{self!r} cannot be updated before initialization")
        self._value = value
        self._notify_listeners(value)

    def _notify_listeners(self, value: T) -> None:
        errors: List[Tuple[str, BaseException]] = []
        for listener_id, listener in list(self._listeners.items()):
            if listener_id not in self._listeners:
                continue
            try:
                listener(value)
            except Exception as e:
                errors.append((getattr(listener, '__qualname__', repr(listener)), e))

        if not errors:
            return
        if get_scope_config().propagate_listener_errors:
            raise ListenerError(errors)
        for label, e in errors:
            logger.warning(f"Error in listener {label} of {self!r}: {e}")

    # ========== LISTENERS ==========

    def add_listener(self, listener: Callable[[T], None], *, fire_immediately: bool = False) -> RemoveListener:
        """Subscribe to value changes.

        Args:
            listener: Called with the new value after every set_value().
            fire_immediately: If True, also call the listener right away with
                the current value.

        Returns:
            A callable that removes the listener. Safe to call more than once
            and at any time, including from inside a notification.

        Raises:
            Whatever the immediate call raises; the listener is then not
            subscribed.
        """
        self._ensure_not_disposed("add_listener")
        if fire_immediately:
            listener(self.current_value())

        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = listener

        def remove_listener() -> None:
            self._listeners.pop(listener_id, None)

        return remove_listener

    # ========== PROVIDER UPDATES ==========

    def update_provider(self, provider: 'Provider[T]') -> None:
        """Point the state at a new provider reference and run did_update_provider()."""
        self._ensure_not_disposed("update_provider")
        old_provider = self._provider
        self._provider = provider
        self.did_update_provider(old_provider)

    def did_update_provider(self, old_provider: Optional['Provider[T]']) -> None:
        """Hook called after the provider reference changed. No-op by default."""

    # ========== DEPENDENCIES AND DISPOSAL ==========

    def add_dispose_callback(self, callback: Callable[[], None]) -> None:
        self._ensure_not_disposed("add_dispose_callback")
        self._dispose_callbacks.append(callback)

    def _add_dependency(self, dependency: 'ProviderState') -> None:
        self._dependencies[id(dependency)] = dependency
        dependency._dependents[id(self)] = self

    @property
    def dependencies(self) -> List['ProviderState']:
        return list(self._dependencies.values())

    @property
    def dependents(self) -> List['ProviderState']:
        return list(self._dependents.values())

    def dispose(self) -> None:
        """Run cleanups, drop listeners and mark the state disposed.

        Every cleanup runs even if an earlier one fails; failures are raised
        together afterwards. Disposing twice is a no-op.

        Raises:
            DisposalError: If any cleanup callback raised.
        """
        if self._disposed:
            return
        self._disposed = True
        self._listeners.clear()

        for dependency in self._dependencies.values():
            dependency._dependents.pop(id(self), None)
        self._dependencies.clear()

        callbacks, self._dispose_callbacks = self._dispose_callbacks, []
        errors: List[Tuple[str, BaseException]] = []
        for callback in reversed(callbacks):
            try:
                callback()
            except Exception as e:
                errors.append((repr(self), e))

        logger.debug(f"Disposed {self!r}")
        if errors:
            raise DisposalError(errors)

    def _ensure_not_disposed(self, action: str) -> None:
        if self._disposed:
            raise UseAfterDisposeError(f"Cannot {action} on disposed {self!r}")

"""
Consumer-side subscription to a provider.

ProviderSubscription resolves a provider from a scope, keeps the latest value
and forwards every change to a callback. After the scope tree is reconfigured,
refresh() re-resolves and moves the listener if the provider now resolves to a
different state.

Usage:
    with scope.listen(counter, lambda value: print(value)) as sub:
        sub.value                 # current value
        scope.read_state(counter).set_value(3)   # prints 3
"""

import logging
from typing import Callable, Generic, Optional, TypeVar, TYPE_CHECKING

from providerscope.state import ProviderState

if TYPE_CHECKING:
    from providerscope.provider import Provider
    from providerscope.scope import ProviderScope

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ProviderSubscription(Generic[T]):
    """Listener attached to the state a provider resolves to from a scope."""

    def __init__(self, scope: 'ProviderScope', provider: 'Provider[T]', listener: Callable[[T], None]):
        self._scope = scope
        self._provider = provider
        self._listener = listener
        self._state: Optional[ProviderState[T]] = None
        self._remove_listener: Optional[Callable[[], None]] = None
        self._closed = False
        self.value: Optional[T] = None
        self._listen(scope.read_state(provider))

    def __enter__(self) -> 'ProviderSubscription[T]':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def state(self) -> Optional[ProviderState[T]]:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def _listen(self, state: ProviderState[T]) -> None:
        if self._remove_listener is not None:
            self._remove_listener()
        self._state = state
        self.value = state.current_value()
        self._remove_listener = state.add_listener(self._on_value)

    def _on_value(self, value: T) -> None:
        self.value = value
        self._listener(value)

    def refresh(self) -> bool:
        """Re-resolve the provider; switch to the new state if it changed.

        The callback is not invoked on a switch; read `value` for the value of
        the new state.

        Returns:
            True if the subscription moved to a different state.
        """
        if self._closed:
            return False
        state = self._scope.read_state(self._provider)
        if state is self._state:
            return False
        logger.debug(f"Subscription to {self._provider!r} moved from {self._state!r} to {state!r}")
        self._listen(state)
        return True

    def close(self) -> None:
        """Detach the listener. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None

"""
Contextvars-based tracking of the current provider scope.

Consumers that are not handed a scope explicitly read providers from the
innermost scope entered with scope_context():

    with scope_context(app_scope):
        with scope_context(page_scope):
            read_provider(greeting)     # resolved from page_scope
        read_provider(greeting)         # resolved from app_scope

    read_provider(greeting)             # MissingScopeError
"""

import contextvars
import logging
from contextlib import contextmanager
from typing import Optional, TypeVar

from providerscope.errors import MissingScopeError
from providerscope.provider import Provider
from providerscope.scope import ProviderScope
from providerscope.state import ProviderState

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Innermost scope entered with scope_context(), or None outside any scope
current_scope: contextvars.ContextVar[Optional[ProviderScope]] = contextvars.ContextVar(
    'current_scope', default=None
)


@contextmanager
def scope_context(scope: ProviderScope):
    """Make `scope` the current scope until the block exits.

    Args:
        scope: Scope that provider reads inside the block resolve from.
    """
    if not isinstance(scope, ProviderScope):
        raise TypeError(f"Expected ProviderScope, got {type(scope).__name__}")
    token = current_scope.set(scope)
    logger.debug(f"Entered scope context {scope.name}")
    try:
        yield scope
    finally:
        current_scope.reset(token)


def get_current_scope() -> Optional[ProviderScope]:
    """Get the innermost scope entered with scope_context(), if any."""
    return current_scope.get()


def use_provider(provider: Provider[T], scope: Optional[ProviderScope] = None) -> ProviderState[T]:
    """Resolve `provider` from `scope`, or from the current scope when omitted.

    Raises:
        MissingScopeError: If no scope was given and none is current.
    """
    if scope is None:
        scope = current_scope.get()
    if scope is None:
        raise MissingScopeError(
            f"No ProviderScope found while reading {provider!r}; "
            f"pass a scope or enter one with scope_context()"
        )
    return scope.read_state(provider)


def read_provider(provider: Provider[T], scope: Optional[ProviderScope] = None) -> T:
    """Like use_provider(), returning the current value instead of the state."""
    return use_provider(provider, scope).current_value()

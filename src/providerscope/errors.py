"""
Error kinds raised by the provider scope framework.

All errors derive from ProviderScopeError so callers can catch the whole family.
Aggregate errors (DisposalError, ListenerError) carry the individual failures
so best-effort operations can report everything that went wrong at once.
"""

from typing import List, Tuple


class ProviderScopeError(Exception):
    """Base class for all provider scope errors."""


class ScopeConfigurationError(ProviderScopeError):
    """The scope tree or its overrides are configured incorrectly."""


class MissingScopeError(ScopeConfigurationError):
    """A provider was read with no enclosing ProviderScope."""


class DuplicateOverrideError(ScopeConfigurationError):
    """The same origin provider is overridden twice in one override list."""


class DoubleInitializationError(ProviderScopeError):
    """A ProviderState was initialized twice."""


class UninitializedStateError(ProviderScopeError):
    """A ProviderState was read before it was initialized."""


class UseAfterDisposeError(ProviderScopeError):
    """A disposed ProviderState was mutated or subscribed to."""


class ScopeDisposedError(UseAfterDisposeError):
    """A disposed ProviderScope was used."""


class CircularDependencyError(ProviderScopeError):
    """A provider factory transitively depends on itself."""

    def __init__(self, chain: List[str]):
        self.chain = list(chain)
        super().__init__(f"Circular provider dependency: {' -> '.join(self.chain)}")


class TypeMismatchError(ProviderScopeError, TypeError):
    """A provider produced, or was overridden with, a value of the wrong type."""


class _AggregateError(ProviderScopeError):
    """Several failures collected during a best-effort operation."""

    action = "operation"

    def __init__(self, errors: List[Tuple[str, BaseException]]):
        self.errors = list(errors)
        details = "; ".join(f"{label}: {exc!r}" for label, exc in self.errors)
        super().__init__(f"{len(self.errors)} error(s) during {self.action}: {details}")

    @property
    def exceptions(self) -> List[BaseException]:
        return [exc for _, exc in self.errors]


class DisposalError(_AggregateError):
    """One or more cleanups failed while disposing state."""

    action = "disposal"


class ListenerError(_AggregateError):
    """One or more listeners raised while being notified."""

    action = "notification"

"""
Provider identities and override bindings.

A Provider is an immutable description of how to build a value. Providers are
compared by identity only: two providers wrapping the same factory are still
two different providers. Each provider gets an integer key at construction,
which scopes use to index their state.

A ProviderOverride says "inside this subtree, resolve `origin` with
`replacement`'s factory". Overrides are plain values; building one has no
effect until it is handed to a ProviderScope.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar, TYPE_CHECKING

from providerscope.errors import TypeMismatchError
from providerscope.state import ProviderState

if TYPE_CHECKING:
    from providerscope.scope import ProviderReference

logger = logging.getLogger(__name__)

T = TypeVar('T')

_provider_keys = itertools.count(1)


class Provider(Generic[T]):
    """Identity-compared descriptor of a value factory.

    Providers are usually declared once at module level:

        greeting = Provider(lambda ref: "Hello", name="greeting")

    and read through a ProviderScope:

        scope = ProviderScope()
        scope.read(greeting)  # "Hello"

    Args:
        factory: Callable receiving a ProviderReference and returning the
            initial value. The reference can read other providers.
        name: Optional label used in logs and error messages.
        value_type: Optional type the produced value must be an instance of.
            Enables override and materialization type checks.
    """

    def __init__(
        self,
        factory: Callable[['ProviderReference'], T],
        *,
        name: Optional[str] = None,
        value_type: Optional[type] = None,
    ):
        if not callable(factory):
            raise TypeError(f"Provider factory must be callable, got {type(factory).__name__}")
        key = next(_provider_keys)
        object.__setattr__(self, '_factory', factory)
        object.__setattr__(self, 'key', key)
        object.__setattr__(self, 'name', name or f"provider#{key}")
        object.__setattr__(self, 'value_type', value_type)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable; cannot set '{name}'")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable; cannot delete '{name}'")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"

    @classmethod
    def value(cls, value: T, *, name: Optional[str] = None, value_type: Optional[type] = None) -> 'Provider[T]':
        """Create a provider that always produces `value`.

        Typically used to inject fakes:

            repository.override_for(Provider.value(fake_repository))
        """
        return cls(lambda ref: value, name=name, value_type=value_type)

    def override_for(self, replacement: 'Provider[T]') -> 'ProviderOverride[T]':
        """Bind `replacement` in place of this provider for a subtree.

        Pure: every call returns a new binding and leaves earlier ones untouched.
        """
        return ProviderOverride(origin=self, replacement=replacement)

    def create_state(self) -> ProviderState[T]:
        """Create the (uninitialized) state cell that will hold this provider's value.

        Subclasses return a ProviderState subclass to customize how the state
        reacts to provider updates.
        """
        return ProviderState()

    def create(self, ref: 'ProviderReference') -> T:
        """Run the factory against a read context."""
        return self._factory(ref)


@dataclass(frozen=True, eq=False)
class ProviderOverride(Generic[T]):
    """Replacement of `origin` by `replacement` within a scope's subtree.

    Compared by identity, like providers. A scope that receives a freshly built
    binding for the same origin and replacement keeps its state; a binding with
    a different replacement resets it.
    """
    origin: Provider[T]
    replacement: Provider[T]

    def __post_init__(self):
        for role in ('origin', 'replacement'):
            if not isinstance(getattr(self, role), Provider):
                raise TypeError(
                    f"ProviderOverride {role} must be a Provider, "
                    f"got {type(getattr(self, role)).__name__}"
                )

        origin_type = self.origin.value_type
        replacement_type = self.replacement.value_type
        if origin_type is not None and replacement_type is not None:
            if not issubclass(replacement_type, origin_type):
                raise TypeMismatchError(
                    f"Cannot override {self.origin!r} ({origin_type.__name__}) with "
                    f"{self.replacement!r} ({replacement_type.__name__})"
                )

    def __repr__(self) -> str:
        return f"ProviderOverride({self.origin.name} -> {self.replacement.name})"

"""
Hierarchical, override-aware provider state.

Providers describe how to build a value. ProviderScopes form a tree that
stores the state built from providers, and lets any subtree swap a provider
for another one without affecting the rest of the tree.

Key Features:
- Identity-compared providers with lazily created, memoized state
- Subtree overrides that shadow ancestor state
- Synchronous listener notification on every value change
- Reconciliation that keeps, updates or resets state when overrides change
- Dependency-aware teardown with best-effort error collection

Quick Start:
    >>> from providerscope import Provider, ProviderScope
    >>> greeting = Provider(lambda ref: "Hello", name="greeting")
    >>> root = ProviderScope()
    >>> french = root.child([greeting.override_for(Provider(lambda ref: "Bonjour"))])
    >>> sibling = root.child()
    >>> french.read(greeting)
    'Bonjour'
    >>> sibling.read(greeting)
    'Hello'

Architecture:
    Resolution walks from the starting scope towards the root:

        own memoized state -> own override -> parent scope -> root fallback

    Each state is owned by exactly one scope: the one whose override caused
    its creation, or the root for providers nobody overrides.

Modules:
    - provider: Provider identities and override bindings
    - state: ProviderState, the observable value holder
    - scope: ProviderScope tree, resolution and teardown
    - reconcile: Pure planning of override reconfiguration
    - context: Contextvars-based current scope
    - subscription: Consumer-side listener helper
    - config: Framework behaviour switches
    - errors: Error kinds
"""

from providerscope.errors import (
    ProviderScopeError,
    ScopeConfigurationError,
    MissingScopeError,
    DuplicateOverrideError,
    DoubleInitializationError,
    UninitializedStateError,
    UseAfterDisposeError,
    ScopeDisposedError,
    CircularDependencyError,
    TypeMismatchError,
    DisposalError,
    ListenerError,
)

from providerscope.config import (
    ScopeConfig,
    get_scope_config,
    configure,
    reset_scope_config,
)

from providerscope.state import ProviderState

from providerscope.provider import (
    Provider,
    ProviderOverride,
)

from providerscope.reconcile import (
    ReconcilePlan,
    index_overrides,
    plan_reconciliation,
)

from providerscope.subscription import ProviderSubscription

from providerscope.scope import (
    ProviderScope,
    ProviderReference,
    dependents_first,
)

from providerscope.context import (
    scope_context,
    get_current_scope,
    use_provider,
    read_provider,
)

__all__ = [
    # Errors
    'ProviderScopeError',
    'ScopeConfigurationError',
    'MissingScopeError',
    'DuplicateOverrideError',
    'DoubleInitializationError',
    'UninitializedStateError',
    'UseAfterDisposeError',
    'ScopeDisposedError',
    'CircularDependencyError',
    'TypeMismatchError',
    'DisposalError',
    'ListenerError',
    # Config
    'ScopeConfig',
    'get_scope_config',
    'configure',
    'reset_scope_config',
    # Core
    'Provider',
    'ProviderOverride',
    'ProviderState',
    'ProviderScope',
    'ProviderReference',
    'ProviderSubscription',
    'dependents_first',
    # Reconciliation
    'ReconcilePlan',
    'index_overrides',
    'plan_reconciliation',
    # Ambient scope
    'scope_context',
    'get_current_scope',
    'use_provider',
    'read_provider',
]

__version__ = '0.1.0'

"""
Override reconciliation planning.

When a scope's override list changes, every state it already holds is checked
against the old and new binding for its origin:

    old binding | new binding | action
    ------------+-------------+-------------------------------------------------
    absent      | absent      | keep (fallback state of the root scope)
    absent      | present     | dispose; the override supersedes it
    present     | absent      | dispose; reads fall through to the ancestors
    B           | B           | keep untouched (same binding object)
    R           | R           | keep, update the provider reference in place
    R1          | R2          | dispose; rebuilt lazily from R2

("R" compares replacement providers by identity.)

plan_reconciliation() only computes the decision. It never mutates its inputs,
so it can be exercised without a live scope tree; ProviderScope applies the plan.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Tuple

from providerscope.errors import DuplicateOverrideError
from providerscope.provider import Provider, ProviderOverride
from providerscope.state import ProviderState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcilePlan:
    """Outcome of reconciling a scope's state against a new override list.

    Attributes:
        next_state: State the scope keeps, keyed by origin provider key.
        updates: (state, new replacement) pairs whose update hook must run.
        disposals: States to dispose, in the order they were encountered.
    """
    next_state: Dict[int, ProviderState]
    updates: Tuple[Tuple[ProviderState, Provider], ...]
    disposals: Tuple[ProviderState, ...]

    @property
    def is_noop(self) -> bool:
        return not self.updates and not self.disposals


def index_overrides(overrides: Iterable[ProviderOverride]) -> Dict[int, ProviderOverride]:
    """Index bindings by origin key.

    Raises:
        TypeError: If an entry is not a ProviderOverride.
        DuplicateOverrideError: If two bindings share an origin.
    """
    indexed: Dict[int, ProviderOverride] = {}
    for override in overrides:
        if not isinstance(override, ProviderOverride):
            raise TypeError(f"Expected ProviderOverride, got {type(override).__name__}")
        key = override.origin.key
        if key in indexed:
            raise DuplicateOverrideError(f"{override.origin!r} is overridden more than once")
        indexed[key] = override
    return indexed


def plan_reconciliation(
    old_overrides: Iterable[ProviderOverride],
    new_overrides: Iterable[ProviderOverride],
    provider_state: Mapping[int, ProviderState],
) -> ReconcilePlan:
    """Decide which states survive a change from `old_overrides` to `new_overrides`.

    Args:
        old_overrides: Bindings the scope was configured with.
        new_overrides: Bindings the scope is being reconfigured with.
        provider_state: The scope's current state, keyed by origin provider key.

    Returns:
        ReconcilePlan describing kept, updated and disposed states.
    """
    old_index = index_overrides(old_overrides)
    new_index = index_overrides(new_overrides)

    next_state: Dict[int, ProviderState] = {}
    updates = []
    disposals = []

    for key, state in provider_state.items():
        old_override = old_index.get(key)
        new_override = new_index.get(key)

        if old_override is None and new_override is None:
            next_state[key] = state
        elif old_override is None or new_override is None:
            disposals.append(state)
        elif old_override is new_override:
            next_state[key] = state
        elif old_override.replacement is new_override.replacement:
            next_state[key] = state
            updates.append((state, new_override.replacement))
        else:
            disposals.append(state)

    plan = ReconcilePlan(next_state=next_state, updates=tuple(updates), disposals=tuple(disposals))
    logger.debug(
        f"Reconciliation plan: kept={len(next_state)}, updated={len(plan.updates)}, "
        f"disposed={len(plan.disposals)}"
    )
    return plan

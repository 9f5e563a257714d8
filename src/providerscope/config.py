"""
Framework configuration for provider scopes.

Module-level storage for the switches that decide how best-effort operations
report failures. Everything runs on a single owner thread, so a plain module
global is enough.
"""

import dataclasses
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScopeConfig:
    """Behaviour switches for the framework.

    Attributes:
        raise_on_dispose_errors: If True (default), failures collected while
            tearing down state are raised as one DisposalError once every cell
            has been disposed. If False they are logged and dropped.
        propagate_listener_errors: If True, listener failures are raised as a
            ListenerError after all listeners have been notified. If False
            (default) they are logged.
    """
    raise_on_dispose_errors: bool = True
    propagate_listener_errors: bool = False


_scope_config = ScopeConfig()


def get_scope_config() -> ScopeConfig:
    """Get the active framework configuration."""
    return _scope_config


def configure(**changes) -> ScopeConfig:
    """Replace selected fields of the framework configuration.

    Args:
        **changes: ScopeConfig field values to change.

    Returns:
        The new active configuration.

    Raises:
        TypeError: If a key is not a ScopeConfig field.
    """
    global _scope_config
    _scope_config = dataclasses.replace(_scope_config, **changes)
    logger.debug(f"Scope config updated: {_scope_config}")
    return _scope_config


def reset_scope_config() -> None:
    """Restore the default configuration. Mostly useful for tests."""
    global _scope_config
    _scope_config = ScopeConfig()

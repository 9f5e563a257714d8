"""Pytest configuration and shared fixtures."""
import pytest

import providerscope.config as config_module
from providerscope import Provider, ProviderScope


@pytest.fixture(autouse=True)
def reset_scope_config():
    """Restore the framework configuration after each test."""
    original_config = config_module._scope_config

    yield

    config_module._scope_config = original_config


@pytest.fixture
def greeting():
    """Provide the canonical greeting provider."""
    return Provider(lambda ref: "Hello", name="greeting")


@pytest.fixture
def bonjour():
    """Provide a replacement for the greeting provider."""
    return Provider(lambda ref: "Bonjour", name="bonjour")


@pytest.fixture
def root():
    """Provide a root scope that is torn down after the test."""
    scope = ProviderScope(name="root")
    yield scope
    scope.dispose()


class FactoryCounter:
    """Callable factory that records how often it ran."""

    def __init__(self, value):
        self.value = value
        self.calls = 0

    def __call__(self, ref):
        self.calls += 1
        return self.value


@pytest.fixture
def counting_provider():
    """Provide a (provider, counter) pair whose factory call count is observable."""
    counter = FactoryCounter(0)
    return Provider(counter, name="counter"), counter

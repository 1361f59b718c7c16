"""Pytest configuration and shared fixtures."""

import pytest

from service_locator import locator
from service_locator.config import LocatorSettings
from service_locator.core.registry import ServiceRegistry
from service_locator.logging_config import configure_logging


def pytest_configure(config):
    """Route registry logs through structlog at debug level."""
    configure_logging(level="DEBUG", colors=False)


@pytest.fixture
def settings():
    """Default settings, independent of the environment."""
    return LocatorSettings()


@pytest.fixture
def registry(settings):
    """Fresh registry per test."""
    return ServiceRegistry(settings)


@pytest.fixture
def global_registry():
    """Install a fresh global registry and drop it afterwards."""
    installed = locator.set_registry(ServiceRegistry(LocatorSettings()))
    yield installed
    locator.reset_registry()

"""
Service locator package.

Runtime dependency-injection registry:
- Sync and async factories keyed by (type, optional name)
- Lazily built, cached singletons and fresh instances on demand
- Disposal hooks for materialized instances
- A process-wide registry behind plain functions
- structlog logging driven by the same settings
"""

from __future__ import annotations

from .config import LocatorSettings
from .core import (
    AsyncResolutionRequired,
    Disposable,
    ServiceKey,
    ServiceLocatorError,
    ServiceNotRegistered,
    ServiceRegistry,
    ServiceTypeMismatch,
)
from .logging_config import (
    configure_from_env,
    configure_from_settings,
    configure_logging,
    get_logger,
)
from .locator import (
    clear_locator,
    clear_locator_async,
    create,
    create_async,
    get_registry,
    is_registered,
    register,
    register_async,
    register_instance,
    remove,
    remove_async,
    reset_registry,
    set_registry,
    singleton,
    singleton_async,
    unregister,
)

__version__ = "0.1.0"

__all__ = [
    "LocatorSettings",
    "ServiceKey",
    "ServiceRegistry",
    "Disposable",
    "ServiceLocatorError",
    "ServiceNotRegistered",
    "AsyncResolutionRequired",
    "ServiceTypeMismatch",
    "get_registry",
    "set_registry",
    "reset_registry",
    "register",
    "register_async",
    "register_instance",
    "singleton",
    "singleton_async",
    "create",
    "create_async",
    "is_registered",
    "remove",
    "remove_async",
    "unregister",
    "clear_locator",
    "clear_locator_async",
    "configure_logging",
    "configure_from_settings",
    "configure_from_env",
    "get_logger",
]

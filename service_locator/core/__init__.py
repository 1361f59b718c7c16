"""
Registry core.

Keys, the exception taxonomy, disposal helpers and the ServiceRegistry itself.
"""

from __future__ import annotations

from .disposal import Disposable
from .errors import (
    AsyncResolutionRequired,
    ServiceLocatorError,
    ServiceNotRegistered,
    ServiceTypeMismatch,
)
from .keys import ServiceKey
from .registry import (
    FactoryEntry,
    FactoryKind,
    ServiceRegistry,
    SingletonSlot,
    SlotState,
)

__all__ = [
    # Keys
    "ServiceKey",
    # Errors
    "ServiceLocatorError",
    "ServiceNotRegistered",
    "AsyncResolutionRequired",
    "ServiceTypeMismatch",
    # Disposal
    "Disposable",
    # Registry
    "FactoryEntry",
    "FactoryKind",
    "ServiceRegistry",
    "SingletonSlot",
    "SlotState",
]

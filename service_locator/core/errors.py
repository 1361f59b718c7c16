"""Exceptions raised by the service registry."""

from __future__ import annotations

from typing import Any

from service_locator.core.keys import ServiceKey, type_label


class ServiceLocatorError(Exception):
    """Base class for registry errors."""


class ServiceNotRegistered(ServiceLocatorError, LookupError):
    """Raised when no factory is registered for the requested key."""

    def __init__(self, service_type: Any, name: str | None = None):
        self.service_type = service_type
        self.name = name
        self.key = ServiceKey(service_type, name)
        self.message = f"Service not registered in locator: {self.key.label}"
        super().__init__(self.message)


class AsyncResolutionRequired(ServiceLocatorError, RuntimeError):
    """Raised when a synchronous call needs to await something.

    Async factories, in-flight builds and async disposers can only be driven
    through the ``*_async`` counterpart of the operation.
    """

    def __init__(self, key: ServiceKey, operation: str, reason: str):
        self.key = key
        self.operation = operation
        self.reason = reason
        self.message = (
            f"{operation}() cannot complete synchronously for {key.label}: "
            f"{reason}; use {operation}_async()"
        )
        super().__init__(self.message)


class ServiceTypeMismatch(ServiceLocatorError, TypeError):
    """Raised when a factory produces a value of the wrong class."""

    def __init__(self, key: ServiceKey, value: Any):
        self.key = key
        self.expected = key.service_type
        self.actual = type(value)
        self.message = (
            f"Factory for {key.label} produced {type_label(self.actual)}, "
            f"expected an instance of {type_label(self.expected)}"
        )
        super().__init__(self.message)

"""Registration keys.

A key is the pair (type tag, optional instance name). The type tag is usually
a class, but any hashable discriminator works as long as callers use the same
one for the same logical service.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Hashable


def type_label(service_type: Any) -> str:
    """Human readable name for a type tag."""
    if isinstance(service_type, type):
        return service_type.__qualname__
    if isinstance(service_type, str):
        return service_type
    return repr(service_type)


@dataclass(frozen=True)
class ServiceKey:
    """Identifies one registration slot.

    Two keys are equal iff both the type tag and the name match; the same
    type under different names gives fully independent slots.
    """

    service_type: Hashable
    name: str | None = None

    @property
    def label(self) -> str:
        base = type_label(self.service_type)
        if self.name is None:
            return base
        return f"{base}[{self.name}]"

    def __str__(self) -> str:
        return self.label

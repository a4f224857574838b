"""Database layer - engine, base classes, types, and record-store guards."""

from commission_kernel.db.base import Base, TrackedBase, UUIDString
from commission_kernel.db.types import format_minor_units, to_minor_units

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "format_minor_units",
    "to_minor_units",
]

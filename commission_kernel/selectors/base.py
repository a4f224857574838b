"""
Module: commission_kernel.selectors.base
Responsibility: Abstract base class for read-only selectors, the query side
    of the kernel.
Architecture position: Kernel > Selectors.  May import db/, domain/ and
    models/.  MUST NOT import services/ or outer packages.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - No locks: selectors never issue SELECT ... FOR UPDATE, so reporting
      cannot block ledger writers.
    - Selectors return frozen dataclasses, not ORM instances.
    - The caller owns the session and its snapshot; a selector must not be
      used to gate a payout decision.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from commission_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Base class for selectors; stores the caller's session."""

    def __init__(self, session: Session):
        self.session = session

"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session contract for every write service in the
    kernel.  Services persist with ``session.flush()``, never
    ``session.commit()``.

Architecture position:
    Kernel > Services.  Extended by the ledger engine, the attribution
    resolver and the partner registry.

Invariants enforced:
    Transaction boundaries belong to the caller.  A ledger operation, its
    attribution stamp and its order marker must commit together, so no
    service may commit or roll back on its own.  The transaction runner in
    ``commission_services`` owns commit, rollback and retry.

Failure modes:
    A subclass that commits would split the balance update from its ledger
    entry and break atomicity.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from commission_kernel.db.base import Base
from commission_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel write services.

    Contract:
        Accepts the caller's Session and an optional Clock; flushes within
        the caller's transaction.

    Non-goals:
        - Does NOT commit or roll back.
        - Does NOT provide read models; those live in selectors/.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

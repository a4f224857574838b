"""
ORM-Level Record Store Guards.

===============================================================================
WHY THIS EXISTS
===============================================================================

The commission ledger must be tamper-evident and its balances must have a
single writer.  Convention is not enough: any code holding a session could
otherwise edit a settled payout or bump a partner's available commission.
These listeners make both mistakes fail at flush time, before any SQL is
sent.

    session.flush()
         |
         v
    [before_flush] ----> deletes of ledger rows / partners     -> ImmutabilityViolationError
         |         ----> partner balance writes outside scope   -> BalanceOwnershipError
         |         ----> referral_code changes                  -> ImmutabilityViolationError
         v
    [before_update] ---> settled CommissionTransaction edits     -> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if every check passes)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                  | Rule
------------------------|------------------------------------------------------
CommissionTransaction   | never deleted; financial fields frozen once the row
                        | has left PENDING; settled_at / reversed_at write-once
Partner                 | never deleted; referral_code frozen; balance columns
                        | written only inside ledger_write_scope()

===============================================================================
DESIGN DECISIONS
===============================================================================

1. "WAS SETTLED" NOT "IS SETTLED".
   Approving a payout request moves PENDING -> COMPLETED and stamps the
   snapshots in the same flush.  The check therefore looks at the status
   the row had BEFORE this flush, via attribute history.

2. WRITE SCOPE IS A SESSION FLAG.
   The ledger engine enters ledger_write_scope(session) around its
   mutation and flush.  The flag lives in ``session.info`` so it cannot leak
   into another thread's session.

3. updated_at / updated_by_id / status / admin_notes stay mutable.
   They are audit annotations and the status-correction surface, not money.

===============================================================================
USAGE
===============================================================================

Registered by db.engine.init_engine_from_url().  Tests that need to
simulate tampering may call unregister_immutability_listeners() and
register again afterwards.
===============================================================================
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from commission_kernel.exceptions import BalanceOwnershipError, ImmutabilityViolationError
from commission_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

LEDGER_WRITE_SCOPE_KEY = "commission_ledger_write_scope"

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


@contextmanager
def ledger_write_scope(session: Session) -> Generator[Session, None, None]:
    """Allow partner balance columns to change for the duration of the block."""
    depth = session.info.get(LEDGER_WRITE_SCOPE_KEY, 0)
    session.info[LEDGER_WRITE_SCOPE_KEY] = depth + 1
    try:
        yield session
    finally:
        if depth:
            session.info[LEDGER_WRITE_SCOPE_KEY] = depth
        else:
            session.info.pop(LEDGER_WRITE_SCOPE_KEY, None)


def in_ledger_write_scope(session: Session) -> bool:
    return session.info.get(LEDGER_WRITE_SCOPE_KEY, 0) > 0


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
            "reason": reason,
        },
    )
    return ImmutabilityViolationError(entity_type=entity_type, entity_id=str(entity_id), reason=reason)


def _check_commission_transaction_update(mapper, connection, target):
    """Freeze the financial fields of entries that were already past PENDING."""
    from commission_kernel.domain.commission import TransactionStatus
    from commission_kernel.models.commission_transaction import (
        FINANCIAL_FIELDS,
        WRITE_ONCE_FIELDS,
    )

    status_history = get_history(target, "status")
    if status_history.deleted:
        previous_status = status_history.deleted[0]
    else:
        previous_status = target.status
    was_settled = previous_status != TransactionStatus.PENDING

    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        hist = attr.history
        if not hist.has_changes():
            continue
        if attr.key in WRITE_ONCE_FIELDS and hist.deleted and hist.deleted[0] is not None:
            raise _blocked(
                "CommissionTransaction",
                target.id,
                "UPDATE",
                f"'{attr.key}' is write-once",
                attr.key,
            )
        if was_settled and attr.key in FINANCIAL_FIELDS:
            raise _blocked(
                "CommissionTransaction",
                target.id,
                "UPDATE",
                f"Cannot modify '{attr.key}' on a {previous_status} ledger entry",
                attr.key,
            )


def _check_before_flush(session, flush_context, instances):
    """Block deletes, referral code edits and balance writes from outside the engine."""
    from commission_kernel.models.commission_transaction import CommissionTransaction
    from commission_kernel.models.partner import BALANCE_COLUMNS, Partner

    for obj in list(session.deleted):
        if isinstance(obj, CommissionTransaction):
            raise _blocked(
                "CommissionTransaction", obj.id, "DELETE", "ledger entries are never deleted"
            )
        if isinstance(obj, Partner):
            raise _blocked("Partner", obj.id, "DELETE", "partners are never hard-deleted")

    writer_scope = in_ledger_write_scope(session)

    for obj in list(session.new):
        if isinstance(obj, Partner) and not writer_scope:
            nonzero = [c for c in BALANCE_COLUMNS if getattr(obj, c, None)]
            if nonzero:
                logger.error(
                    "balance_ownership_violation",
                    extra={"partner_id": str(obj.id), "fields": nonzero, "operation": "INSERT"},
                )
                raise BalanceOwnershipError(partner_id=str(obj.id), fields=nonzero)

    for obj in list(session.dirty):
        if not isinstance(obj, Partner):
            continue
        if get_history(obj, "referral_code").deleted:
            raise _blocked(
                "Partner", obj.id, "UPDATE", "referral_code is immutable", "referral_code"
            )
        if writer_scope:
            continue
        changed = [c for c in BALANCE_COLUMNS if get_history(obj, c).has_changes()]
        if changed:
            logger.error(
                "balance_ownership_violation",
                extra={"partner_id": str(obj.id), "fields": changed, "operation": "UPDATE"},
            )
            raise BalanceOwnershipError(partner_id=str(obj.id), fields=changed)


_MAPPER_LISTENERS = (("before_update", _check_commission_transaction_update),)


def register_immutability_listeners() -> None:
    """Register the guards (idempotent)."""
    from commission_kernel.models.commission_transaction import CommissionTransaction

    for name, fn in _MAPPER_LISTENERS:
        if not event.contains(CommissionTransaction, name, fn):
            event.listen(CommissionTransaction, name, fn)
    if not event.contains(Session, "before_flush", _check_before_flush):
        event.listen(Session, "before_flush", _check_before_flush)


def unregister_immutability_listeners() -> None:
    """Remove the guards.  FOR TESTING ONLY."""
    from commission_kernel.models.commission_transaction import CommissionTransaction

    for name, fn in _MAPPER_LISTENERS:
        if event.contains(CommissionTransaction, name, fn):
            event.remove(CommissionTransaction, name, fn)
    if event.contains(Session, "before_flush", _check_before_flush):
        event.remove(Session, "before_flush", _check_before_flush)

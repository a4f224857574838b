"""
Typed Exception Hierarchy for the Commission Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Money movement must fail precisely. A caller deciding between "retry",
"show the partner a message" and "page an operator" cannot do so by
parsing message strings. Every error here therefore has:

  1. A TYPED class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. A KIND (validation / business_rule / not_found / transient / integrity)
  4. Structured DATA as attributes (amounts in integer cents, ids)

Example - WRONG:
    try:
        ledger.payout(...)
    except Exception as e:
        if "insufficient" in str(e):
            ...

Example - RIGHT:
    try:
        ledger.payout(...)
    except InsufficientFundsError as e:
        respond(code=e.code, shortfall=e.shortfall)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CommissionKernelError (base)
    |
    +-- LedgerValidationError                   kind=validation
    |   +-- InvalidAmountError
    |   +-- InvalidMoneyFormatError
    |   +-- MissingReasonError
    |   +-- MissingActorError
    |   +-- InvalidAdjustmentTypeError
    |   +-- InvalidTransactionStatusError
    |   +-- InvalidTransactionTypeError
    |   +-- InvalidCurrencyError
    |   +-- InvalidPaymentMethodError
    |   +-- InvalidCommissionRateError
    |   +-- HoldReleaseMismatchError
    |
    +-- BusinessRuleError                       kind=business_rule
    |   +-- InsufficientFundsError
    |   +-- DeductionExceedsBalanceError
    |   +-- HoldExceedsAvailableError
    |   +-- HoldNotFoundError
    |   +-- HoldAlreadyReleasedError
    |   +-- BelowMinimumPayoutError
    |   +-- OrderNotCompletedError
    |   +-- InvalidStatusTransitionError
    |   +-- DuplicatePartnerError
    |   +-- PartnerStatusError
    |
    +-- NotFoundError                           kind=not_found
    |   +-- PartnerNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- OrderNotFoundError
    |
    +-- TransientLedgerError                    kind=transient (retryable)
    |   +-- ConcurrencyConflictError
    |   +-- LedgerTimeoutError
    |   +-- StoreUnavailableError
    |
    +-- LedgerIntegrityError                    kind=integrity
        +-- ImmutabilityViolationError
        +-- BalanceOwnershipError
        +-- BalanceInvariantError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Kind            | Code                          | When Raised
----------------|-------------------------------|-------------------------------------
validation      | INVALID_AMOUNT                | amount <= 0 or not integer cents
                | INVALID_MONEY_FORMAT          | "40.005", "abc", floats at the edge
                | MISSING_REASON                | adjustment / hold without a reason
                | MISSING_ACTOR                 | admin operation without an admin id
                | INVALID_ADJUSTMENT_TYPE       | type outside ADD/DEDUCT/HOLD/...
                | INVALID_TRANSACTION_STATUS    | unknown status value
                | INVALID_TRANSACTION_TYPE      | unknown ledger entry type filter
                | INVALID_CURRENCY              | currency outside the supported set
                | INVALID_PAYMENT_METHOD        | unknown payout method
                | INVALID_COMMISSION_RATE       | rate outside [0, 100]
                | HOLD_RELEASE_MISMATCH         | release amount != held amount
----------------|-------------------------------|-------------------------------------
business_rule   | INSUFFICIENT_FUNDS            | payout > withdrawable
                | DEDUCTION_EXCEEDS_BALANCE     | deduct > available
                | HOLD_EXCEEDS_AVAILABLE        | hold > available
                | HOLD_NOT_FOUND                | release of a missing / non-HOLD row
                | HOLD_ALREADY_RELEASED         | second release of the same hold
                | BELOW_MINIMUM_PAYOUT          | payout request under the minimum
                | ORDER_NOT_COMPLETED           | EARN on an unpaid order
                | INVALID_STATUS_TRANSITION     | forbidden status correction
                | DUPLICATE_PARTNER             | email already registered
                | PARTNER_STATUS_INVALID        | lifecycle move not allowed
----------------|-------------------------------|-------------------------------------
not_found       | PARTNER_NOT_FOUND             |
                | TRANSACTION_NOT_FOUND         |
                | ORDER_NOT_FOUND               |
----------------|-------------------------------|-------------------------------------
transient       | CONCURRENCY_CONFLICT          | version conflict / lost race
                | LEDGER_TIMEOUT                | lock or statement timeout
                | STORE_UNAVAILABLE             | database unreachable
----------------|-------------------------------|-------------------------------------
integrity       | IMMUTABILITY_VIOLATION        | edit of a settled ledger entry
                | BALANCE_OWNERSHIP_VIOLATION   | balance write outside the engine
                | BALANCE_INVARIANT_VIOLATION   | post-mutation invariant failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Transient errors are the ONLY retryable kind. The transaction runner
   retries them; everything else propagates on the first attempt.

2. Integrity errors indicate a bug or tampering, never user error. They
   are logged at ERROR and surfaced to operators, not partners.

3. An EARN on an already-processed order is not an error at all: it
   returns None.
===============================================================================
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Caller-facing error category."""

    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    INTEGRITY = "integrity"


class CommissionKernelError(Exception):
    """
    Base exception for all commission kernel errors.

    All subclasses carry a ``code`` class attribute and a ``kind``.
    """

    code: str = "COMMISSION_KERNEL_ERROR"
    kind: ErrorKind = ErrorKind.INTEGRITY

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.TRANSIENT


# Validation errors


class LedgerValidationError(CommissionKernelError):
    """Input rejected before any mutation was attempted."""

    code: str = "VALIDATION_ERROR"
    kind: ErrorKind = ErrorKind.VALIDATION


class InvalidAmountError(LedgerValidationError):
    """Amount is not a positive integer number of minor units."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object, reason: str = "amount must be positive"):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid amount {amount!r}: {reason}")


class InvalidMoneyFormatError(LedgerValidationError):
    """A decimal major-unit string could not be converted to minor units."""

    code: str = "INVALID_MONEY_FORMAT"

    def __init__(self, value: object, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid money value {value!r}: {reason}")


class MissingReasonError(LedgerValidationError):
    """Audit reason is mandatory for the operation."""

    code: str = "MISSING_REASON"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"A non-empty reason is required for {operation}")


class MissingActorError(LedgerValidationError):
    """Administrative operation invoked without an admin identity."""

    code: str = "MISSING_ACTOR"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"An authenticated admin id is required for {operation}")


class InvalidAdjustmentTypeError(LedgerValidationError):
    code: str = "INVALID_ADJUSTMENT_TYPE"

    def __init__(self, adjustment_type: object):
        self.adjustment_type = adjustment_type
        super().__init__(f"Invalid adjustment type: {adjustment_type!r}")


class InvalidTransactionStatusError(LedgerValidationError):
    code: str = "INVALID_TRANSACTION_STATUS"

    def __init__(self, status: object):
        self.status = status
        super().__init__(f"Invalid transaction status: {status!r}")


class InvalidTransactionTypeError(LedgerValidationError):
    code: str = "INVALID_TRANSACTION_TYPE"

    def __init__(self, transaction_type: object):
        self.transaction_type = transaction_type
        super().__init__(f"Invalid transaction type: {transaction_type!r}")


class InvalidCurrencyError(LedgerValidationError):
    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: object):
        self.currency = currency
        super().__init__(f"Unsupported currency code: {currency!r}")


class InvalidPaymentMethodError(LedgerValidationError):
    code: str = "INVALID_PAYMENT_METHOD"

    def __init__(self, method: object):
        self.method = method
        super().__init__(f"Invalid payment method: {method!r}")


class InvalidCommissionRateError(LedgerValidationError):
    code: str = "INVALID_COMMISSION_RATE"

    def __init__(self, rate: object):
        self.rate = rate
        super().__init__(f"Commission rate must be between 0 and 100, got {rate!r}")


class HoldReleaseMismatchError(LedgerValidationError):
    """A RELEASE_HOLD adjustment named an amount different from the hold."""

    code: str = "HOLD_RELEASE_MISMATCH"

    def __init__(self, hold_transaction_id: str, requested: int, held: int):
        self.hold_transaction_id = hold_transaction_id
        self.requested = requested
        self.held = held
        super().__init__(
            f"Release amount {requested} does not match hold "
            f"{hold_transaction_id} amount {held}"
        )


# Business-rule errors


class BusinessRuleError(CommissionKernelError):
    """Request is well-formed but violates a ledger rule."""

    code: str = "BUSINESS_RULE_ERROR"
    kind: ErrorKind = ErrorKind.BUSINESS_RULE


class InsufficientFundsError(BusinessRuleError):
    """Payout exceeds the partner's withdrawable commission."""

    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, partner_id: str, requested: int, withdrawable: int):
        self.partner_id = partner_id
        self.requested = requested
        self.withdrawable = withdrawable
        self.shortfall = requested - withdrawable
        super().__init__(
            f"Insufficient withdrawable funds for partner {partner_id}: "
            f"requested {requested}, withdrawable {withdrawable}, "
            f"shortfall {self.shortfall}"
        )


class DeductionExceedsBalanceError(BusinessRuleError):
    code: str = "DEDUCTION_EXCEEDS_BALANCE"

    def __init__(self, partner_id: str, requested: int, available: int):
        self.partner_id = partner_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        super().__init__(
            f"Deduction of {requested} exceeds available commission "
            f"{available} for partner {partner_id}"
        )


class HoldExceedsAvailableError(BusinessRuleError):
    code: str = "HOLD_EXCEEDS_AVAILABLE"

    def __init__(self, partner_id: str, requested: int, available: int):
        self.partner_id = partner_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        super().__init__(
            f"Hold of {requested} exceeds available commission "
            f"{available} for partner {partner_id}"
        )


class HoldNotFoundError(BusinessRuleError):
    """Referenced transaction does not exist or is not a HOLD."""

    code: str = "HOLD_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Hold not found: {transaction_id}")


class HoldAlreadyReleasedError(BusinessRuleError):
    code: str = "HOLD_ALREADY_RELEASED"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Hold {transaction_id} has already been released")


class BelowMinimumPayoutError(BusinessRuleError):
    code: str = "BELOW_MINIMUM_PAYOUT"

    def __init__(self, requested: int, minimum: int):
        self.requested = requested
        self.minimum = minimum
        super().__init__(f"Payout of {requested} is below the minimum of {minimum}")


class OrderNotCompletedError(BusinessRuleError):
    code: str = "ORDER_NOT_COMPLETED"

    def __init__(self, order_id: str, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} is {status}, not completed")


class InvalidStatusTransitionError(BusinessRuleError):
    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, transaction_id: str, from_status: str, to_status: str, reason: str):
        self.transaction_id = transaction_id
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        super().__init__(
            f"Cannot move transaction {transaction_id} from {from_status} "
            f"to {to_status}: {reason}"
        )


class DuplicatePartnerError(BusinessRuleError):
    code: str = "DUPLICATE_PARTNER"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"A partner with email {email} already exists")


class PartnerStatusError(BusinessRuleError):
    code: str = "PARTNER_STATUS_INVALID"

    def __init__(self, partner_id: str, from_status: str, to_status: str):
        self.partner_id = partner_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Partner {partner_id} cannot move from {from_status} to {to_status}"
        )


# Not-found errors


class NotFoundError(CommissionKernelError):
    code: str = "NOT_FOUND"
    kind: ErrorKind = ErrorKind.NOT_FOUND


class PartnerNotFoundError(NotFoundError):
    code: str = "PARTNER_NOT_FOUND"

    def __init__(self, partner_id: str):
        self.partner_id = partner_id
        super().__init__(f"Partner not found: {partner_id}")


class TransactionNotFoundError(NotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Commission transaction not found: {transaction_id}")


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


# Transient errors


class TransientLedgerError(CommissionKernelError):
    """Operation aborted with no effect; safe to retry."""

    code: str = "TRANSIENT_ERROR"
    kind: ErrorKind = ErrorKind.TRANSIENT


class ConcurrencyConflictError(TransientLedgerError):
    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, attempts: int = 1):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id} "
            f"(after {attempts} attempt(s))"
        )


class LedgerTimeoutError(TransientLedgerError):
    code: str = "LEDGER_TIMEOUT"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Timed out during {operation}" + (f": {detail}" if detail else ""))


class StoreUnavailableError(TransientLedgerError):
    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(
            f"Record store unavailable during {operation}" + (f": {detail}" if detail else "")
        )


# Integrity errors


class LedgerIntegrityError(CommissionKernelError):
    code: str = "LEDGER_INTEGRITY_ERROR"
    kind: ErrorKind = ErrorKind.INTEGRITY


class ImmutabilityViolationError(LedgerIntegrityError):
    """Attempt to modify or delete a protected ledger record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


class BalanceOwnershipError(LedgerIntegrityError):
    """Partner balance columns changed outside the ledger engine."""

    code: str = "BALANCE_OWNERSHIP_VIOLATION"

    def __init__(self, partner_id: str, fields: list[str]):
        self.partner_id = partner_id
        self.fields = fields
        super().__init__(
            f"Balance fields {', '.join(fields)} of partner {partner_id} may "
            "only be changed by the commission ledger engine"
        )


class BalanceInvariantError(LedgerIntegrityError):
    code: str = "BALANCE_INVARIANT_VIOLATION"

    def __init__(self, partner_id: str, detail: str):
        self.partner_id = partner_id
        self.detail = detail
        super().__init__(f"Balance invariant violated for partner {partner_id}: {detail}")

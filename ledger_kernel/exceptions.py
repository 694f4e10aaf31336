"""
Typed exception hierarchy for the ledger kernel.

Every error raised by a ledger operation is a subclass of LedgerKernelError.
Callers catch by type and read structured attributes; they never parse
messages.  Each class carries a machine-readable ``code`` and each category
carries the ``http_status`` an outer API layer should map it to.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError                     400, no state change
    |   +-- MissingFieldError
    |   +-- InvalidAmountError
    |   +-- EmptyOrderItemsError
    |   +-- InvalidOrderItemError
    |   +-- InvalidTaxRateError
    |   +-- NegativeTotalError
    |   +-- InactiveReferenceError
    |
    +-- NotFoundError                       404, absent or other tenant
    |   +-- OrderNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- AccountNotFoundError
    |   +-- ExpenseNotFoundError
    |   +-- ReferenceNotFoundError
    |
    +-- StateError                          409, no partial effect
    |   +-- OrderCancelledError
    |   +-- OrderNotActiveError
    |   +-- InvalidStatusTransitionError
    |   +-- InvalidOperationalTransitionError
    |   +-- OverpaymentError
    |   +-- OrderHasPaymentsError
    |   +-- TotalBelowReceivedError
    |   +-- EntityReferencedError
    |
    +-- ConflictError                       retryable
    |   +-- SequenceConflictError
    |   +-- LockTimeoutError
    |
    +-- AuthorizationError                  403
    |   +-- PermissionDeniedError
    |
    +-- ImmutabilityViolationError          append-only record touched
    |
    +-- InternalLedgerError                 500, transaction rolled back

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        orchestrator.apply_payment(...)
    except OverpaymentError as e:
        return {"error": e.code, "balance": str(e.balance)}
    except ConflictError:
        # already retried by the orchestrator; let the client retry later
        raise
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"
    http_status: int = 500
    retryable: bool = False


# Validation errors


class ValidationError(LedgerKernelError):
    """Missing or malformed input. Nothing was written."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400


class MissingFieldError(ValidationError):
    """A required field was not supplied."""

    code: str = "MISSING_FIELD"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")


class InvalidAmountError(ValidationError):
    """Monetary amount is zero, negative or not a number."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid amount for {field}: {value}")


class EmptyOrderItemsError(ValidationError):
    """An order needs at least one item."""

    code: str = "EMPTY_ORDER_ITEMS"

    def __init__(self):
        self.field = "items"
        super().__init__("At least one order item is required")


class InvalidOrderItemError(ValidationError):
    """An order item has a bad quantity, price or description."""

    code: str = "INVALID_ORDER_ITEM"

    def __init__(self, index: int, field: str, reason: str):
        self.index = index
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid order item #{index} ({field}): {reason}")


class InvalidTaxRateError(ValidationError):
    """Tax rate outside [0, 1)."""

    code: str = "INVALID_TAX_RATE"

    def __init__(self, tax_rate: str):
        self.field = "tax_rate"
        self.tax_rate = tax_rate
        super().__init__(f"Tax rate must be in [0, 1): {tax_rate}")


class NegativeTotalError(ValidationError):
    """Discount exceeds subtotal plus tax."""

    code: str = "NEGATIVE_TOTAL"

    def __init__(self, subtotal: str, tax_amount: str, discount: str):
        self.field = "discount"
        self.subtotal = subtotal
        self.tax_amount = tax_amount
        self.discount = discount
        super().__init__(
            f"Discount {discount} exceeds subtotal {subtotal} plus tax {tax_amount}"
        )


class InactiveReferenceError(ValidationError):
    """Referenced reference-data row exists but is deactivated."""

    code: str = "INACTIVE_REFERENCE"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} is inactive")


# Not-found errors


class NotFoundError(LedgerKernelError):
    """Entity is absent, or belongs to another tenant."""

    code: str = "NOT_FOUND"
    http_status: int = 404


class OrderNotFoundError(NotFoundError):
    """Order was not found in the tenant."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment was not found in the tenant."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class AccountNotFoundError(NotFoundError):
    """Account was not found in the tenant."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class ExpenseNotFoundError(NotFoundError):
    """Expense was not found in the tenant."""

    code: str = "EXPENSE_NOT_FOUND"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


class ReferenceNotFoundError(NotFoundError):
    """Customer, payment method, category or supplier not found in the tenant."""

    code: str = "REFERENCE_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# State errors


class StateError(LedgerKernelError):
    """Operation is not legal in the entity's current state."""

    code: str = "STATE_ERROR"
    http_status: int = 409


class OrderCancelledError(StateError):
    """Cancelled orders accept no payments, edits or transitions."""

    code: str = "ORDER_CANCELLED"

    def __init__(self, order_id: str, operation: str):
        self.order_id = order_id
        self.operation = operation
        super().__init__(f"Cannot {operation}: order {order_id} is cancelled")


class OrderNotActiveError(StateError):
    """Operation requires the order to be ACTIVE."""

    code: str = "ORDER_NOT_ACTIVE"

    def __init__(self, order_id: str, status: str, operation: str):
        self.order_id = order_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation}: order {order_id} is {status}, not ACTIVE"
        )


class InvalidStatusTransitionError(StateError):
    """Commercial status transition not in the transition table."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, order_id: str, from_status: str, to_status: str):
        self.order_id = order_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid status transition for order {order_id}: "
            f"{from_status} -> {to_status}"
        )


class InvalidOperationalTransitionError(StateError):
    """Operational status may only move one stage forward or back."""

    code: str = "INVALID_OPERATIONAL_TRANSITION"

    def __init__(self, order_id: str, from_status: str, to_status: str):
        self.order_id = order_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid operational transition for order {order_id}: "
            f"{from_status} -> {to_status}"
        )


class OverpaymentError(StateError):
    """Payment amount exceeds what the order can still owe."""

    code: str = "OVERPAYMENT"

    def __init__(self, order_id: str, amount: str, balance: str):
        self.order_id = order_id
        self.field = "amount"
        self.amount = amount
        self.balance = balance
        super().__init__(
            f"Payment amount {amount} exceeds available balance {balance} "
            f"on order {order_id}"
        )


class OrderHasPaymentsError(StateError):
    """Orders with payments cannot be cancelled."""

    code: str = "ORDER_HAS_PAYMENTS"

    def __init__(self, order_id: str, payment_count: int):
        self.order_id = order_id
        self.payment_count = payment_count
        super().__init__(
            f"Order {order_id} has {payment_count} payment(s) and cannot be cancelled"
        )


class TotalBelowReceivedError(StateError):
    """Replacing items would push the total under the amount already received."""

    code: str = "TOTAL_BELOW_RECEIVED"

    def __init__(self, order_id: str, total: str, received: str):
        self.order_id = order_id
        self.total = total
        self.received = received
        super().__init__(
            f"New total {total} for order {order_id} is below the "
            f"{received} already received"
        )


class EntityReferencedError(StateError):
    """Reference data row is still used by ledger records."""

    code: str = "ENTITY_REFERENCED"

    def __init__(self, entity_type: str, entity_id: str, referenced_by: str, count: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.referenced_by = referenced_by
        self.count = count
        super().__init__(
            f"{entity_type} {entity_id} cannot be deleted: "
            f"referenced by {count} {referenced_by} row(s)"
        )


# Conflict errors


class ConflictError(LedgerKernelError):
    """Concurrent modification detected. Safe to retry."""

    code: str = "CONFLICT"
    http_status: int = 409
    retryable: bool = True


class SequenceConflictError(ConflictError):
    """Two allocations produced the same number for a tenant series."""

    code: str = "SEQUENCE_CONFLICT"

    def __init__(self, tenant_id: str, series: str, detail: str = ""):
        self.tenant_id = tenant_id
        self.series = series
        self.detail = detail
        super().__init__(
            f"Duplicate {series} number for tenant {tenant_id}"
            + (f": {detail}" if detail else "")
        )


class LockTimeoutError(ConflictError):
    """Row lock could not be acquired in time (or deadlock / serialization failure)."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(
            f"Lock conflict during {operation}"
            + (f": {detail}" if detail else "")
        )


# Authorization errors


class AuthorizationError(LedgerKernelError):
    """Caller lacks a capability."""

    code: str = "AUTHORIZATION_ERROR"
    http_status: int = 403


class PermissionDeniedError(AuthorizationError):
    """Authority refused (resource, action) for the actor."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, actor_id: str, resource: str, action: str):
        self.actor_id = actor_id
        self.resource = resource
        self.action = action
        super().__init__(f"Missing permission: {resource}:{action}")


# Immutability errors


class ImmutabilityViolationError(LedgerKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Internal errors


class InternalLedgerError(LedgerKernelError):
    """Unexpected failure inside an atomic unit. The unit was rolled back."""

    code: str = "INTERNAL_ERROR"
    http_status: int = 500

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Internal error during {operation}: {detail}")

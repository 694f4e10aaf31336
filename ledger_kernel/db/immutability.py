"""
ORM-level append-only enforcement for ledger records.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners below inspect the flushed instance and raise
ImmutabilityViolationError, which aborts the flush and leaves the database
untouched:

    session.flush()
         |
         v
    [before_update] --> _check_*_update() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Bulk ``session.execute(update(...))`` bypasses mapper events.  Services never
issue bulk statements against the protected tables.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | Rule
---------------------|---------------------------------------------------------
OrderStatusHistory   | Never updated, never deleted
Transaction          | Never updated.  Deleted only as part of a reversal
OrderItem            | Never updated.  Replacement deletes and re-inserts
Order                | ``number`` never changes once assigned

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

    # For tests that need to temporarily disable:
    from ledger_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
    # ... test code ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_registered = False


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_status_history_update(mapper, connection, target):
    _block(
        "OrderStatusHistory", target, "UPDATE",
        "Status history rows are append-only",
    )


def _check_status_history_delete(mapper, connection, target):
    _block(
        "OrderStatusHistory", target, "DELETE",
        "Status history rows are append-only",
    )


def _check_transaction_update(mapper, connection, target):
    _block(
        "Transaction", target, "UPDATE",
        "Account transactions cannot be modified; book an adjustment instead",
    )


def _check_order_item_update(mapper, connection, target):
    _block(
        "OrderItem", target, "UPDATE",
        "Order items cannot be modified; replace the item set instead",
    )


def _check_order_number_update(mapper, connection, target):
    """Block any change to an already-assigned order number."""
    history = inspect(target).attrs.number.history
    if not history.has_changes():
        return
    previous = [v for v in history.deleted if v is not None]
    if previous:
        _block(
            "Order", target, "UPDATE",
            f"Order number {previous[0]} is immutable",
        )


def register_immutability_listeners():
    """
    Register all append-only event listeners.

    Safe to call more than once; registration happens a single time.
    """
    global _registered
    if _registered:
        return

    from ledger_kernel.models.account import Transaction
    from ledger_kernel.models.order import Order, OrderItem, OrderStatusHistory

    event.listen(OrderStatusHistory, "before_update", _check_status_history_update)
    event.listen(OrderStatusHistory, "before_delete", _check_status_history_delete)
    event.listen(Transaction, "before_update", _check_transaction_update)
    event.listen(OrderItem, "before_update", _check_order_item_update)
    event.listen(Order, "before_update", _check_order_number_update)

    _registered = True
    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if it was never registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove all append-only event listeners.

    Primarily for tests that need to set up corrupt state deliberately.
    """
    global _registered

    from ledger_kernel.models.account import Transaction
    from ledger_kernel.models.order import Order, OrderItem, OrderStatusHistory

    _safe_remove_listener(OrderStatusHistory, "before_update", _check_status_history_update)
    _safe_remove_listener(OrderStatusHistory, "before_delete", _check_status_history_delete)
    _safe_remove_listener(Transaction, "before_update", _check_transaction_update)
    _safe_remove_listener(OrderItem, "before_update", _check_order_item_update)
    _safe_remove_listener(Order, "before_update", _check_order_number_update)

    _registered = False

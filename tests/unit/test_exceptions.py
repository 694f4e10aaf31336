"""Tests for the typed error hierarchy (ledger_kernel/exceptions.py)."""

import inspect

import pytest

import ledger_kernel.exceptions as exc_module
from ledger_kernel.exceptions import (
    AuthorizationError,
    ConflictError,
    EntityReferencedError,
    InternalLedgerError,
    LedgerKernelError,
    LockTimeoutError,
    NotFoundError,
    OrderNotFoundError,
    OverpaymentError,
    PermissionDeniedError,
    SequenceConflictError,
    StateError,
    ValidationError,
)


def _all_error_classes():
    return [
        cls for _, cls in inspect.getmembers(exc_module, inspect.isclass)
        if issubclass(cls, LedgerKernelError)
    ]


class TestHierarchy:

    def test_codes_are_unique(self):
        codes = [cls.code for cls in _all_error_classes()]

        assert len(codes) == len(set(codes))

    @pytest.mark.parametrize("category,status", [
        (ValidationError, 400),
        (NotFoundError, 404),
        (StateError, 409),
        (AuthorizationError, 403),
        (InternalLedgerError, 500),
    ])
    def test_http_status_by_category(self, category, status):
        assert category.http_status == status
        for cls in _all_error_classes():
            if issubclass(cls, category):
                assert cls.http_status == status

    def test_only_conflicts_are_retryable(self):
        for cls in _all_error_classes():
            assert cls.retryable is issubclass(cls, ConflictError)

    def test_conflict_subclasses(self):
        assert issubclass(SequenceConflictError, ConflictError)
        assert issubclass(LockTimeoutError, ConflictError)


class TestStructuredAttributes:

    def test_overpayment_carries_field(self):
        error = OverpaymentError("o-1", "150.00", "100.00")

        assert error.order_id == "o-1"
        assert error.field == "amount"
        assert error.balance == "100.00"
        assert error.code == "OVERPAYMENT"

    def test_not_found_carries_id(self):
        error = OrderNotFoundError("abc")

        assert error.order_id == "abc"
        assert "abc" in str(error)

    def test_entity_referenced(self):
        error = EntityReferencedError("Supplier", "s-1", "Expense", 2)

        assert error.referenced_by == "Expense"
        assert error.count == 2

    def test_permission_denied(self):
        error = PermissionDeniedError("u-1", "payments", "delete")

        assert (error.resource, error.action) == ("payments", "delete")
        assert str(error) == "Missing permission: payments:delete"

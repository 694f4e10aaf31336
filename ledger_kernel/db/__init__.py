"""Database layer - engine, base classes, column types and immutability."""

from ledger_kernel.db.base import UUID, Base, TenantScopedBase, TrackedTenantBase, UUIDString
from ledger_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from ledger_kernel.db.types import Money, Quantity, Rate, money, round_money

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TenantScopedBase",
    "TrackedTenantBase",
    "UUIDString",
    "UUID",
    "Money",
    "Rate",
    "Quantity",
    "money",
    "round_money",
]

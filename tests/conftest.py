"""
Pytest fixtures for the ledger kernel test suite.

Provides:
- A session-scoped engine and schema
- Per-test sessions isolated by an outer transaction that is rolled back
- An orchestrator whose sessions join that same outer transaction
- A provisioned tenant (payment methods, accounts, categories, customer)
- Logging capture

Environment Variables:
- DATABASE_URL: Database under test.  Defaults to in-memory SQLite.
  Tests marked ``postgres`` need real row locks and are skipped unless the
  URL points at PostgreSQL.
"""

import json
import logging
import os
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.config import CompletionPolicy, LedgerSettings
from ledger_kernel.db.base import Base
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.dtos import Actor, OrderItemSpec
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.services.ledger_orchestrator import LedgerOrchestrator, LedgerServices
from ledger_kernel.services.provisioning_service import ProvisioningService


# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_TEST_URL = "sqlite+pysqlite:///:memory:"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_TEST_URL)


def is_postgres_url(url: str) -> bool:
    return url.startswith("postgresql")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


def pytest_collection_modifyitems(config, items):
    if is_postgres_url(get_database_url()):
        return
    skip_pg = pytest.mark.skip(reason="needs PostgreSQL row locks (set DATABASE_URL)")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.apply_payment(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure (engine + tables created ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(
        get_database_url(), echo=False,
        pool_size=30, max_overflow=20, pool_timeout=10,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end.

    Immutability listeners are registered once and remain active.
    """
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


def _truncate_all_tables(engine):
    """Delete all rows.  Used by tests that really commit."""
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


# =============================================================================
# Per-test connection with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def db_connection(db_tables, db_engine):
    """A connection holding an outer transaction that is rolled back at teardown."""
    conn = db_engine.connect()
    trans = conn.begin()
    yield conn
    try:
        trans.rollback()
    finally:
        conn.close()


@pytest.fixture(scope="function")
def session(db_connection) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Uses the SQLAlchemy 2.0 ``join_transaction_mode="create_savepoint"``
    pattern: ``session.commit()`` inside a test only releases a savepoint,
    and the outer transaction is rolled back at teardown.
    """
    sess = Session(
        bind=db_connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )
    yield sess
    sess.close()


@pytest.fixture(scope="function")
def session_factory(db_connection) -> sessionmaker[Session]:
    """Sessions that join the test's outer transaction (for the orchestrator)."""
    return sessionmaker(
        bind=db_connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )


@pytest.fixture
def fresh(session):
    """Re-read a row from the database, bypassing the identity map."""

    def _fresh(model, row_id):
        return session.get(model, row_id, populate_existing=True)

    return _fresh


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def actor(test_actor_id) -> Actor:
    return Actor(id=test_actor_id, name="Test Seller")


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings(
        database_url=get_database_url(),
        completion_policy=CompletionPolicy.BALANCE_ONLY,
        max_retries=3,
        retry_backoff_seconds=0,
    )


@pytest.fixture
def provisioned(session):
    """A tenant with the default payment methods, accounts and categories."""
    result = ProvisioningService(session).provision_tenant(
        "Test Tenant", f"test-{uuid4().hex[:8]}"
    )
    session.flush()
    return result


@pytest.fixture
def tenant_id(provisioned) -> UUID:
    return provisioned.tenant.id


@pytest.fixture
def customer(session, tenant_id):
    return ProvisioningService(session).add_customer(
        tenant_id, "CC-1001", "Cliente Uno", email="cliente@example.com"
    )


@pytest.fixture
def cash_method(provisioned):
    return provisioned.payment_methods["Efectivo"]


@pytest.fixture
def cash_account(provisioned):
    return provisioned.accounts["Efectivo"]


@pytest.fixture
def nequi_method(provisioned):
    return provisioned.payment_methods["Nequi"]


@pytest.fixture
def nequi_account(provisioned):
    return provisioned.accounts["Nequi"]


@pytest.fixture
def services(session, settings, deterministic_clock) -> LedgerServices:
    """The service graph bound to the test session (no commits)."""
    return LedgerServices.build(session, settings, deterministic_clock)


@pytest.fixture
def orchestrator(session_factory, settings, deterministic_clock) -> LedgerOrchestrator:
    """Orchestrator whose sessions join the test transaction; retries do not sleep."""
    return LedgerOrchestrator(
        session_factory,
        settings,
        clock=deterministic_clock,
        sleep=lambda seconds: None,
    )


@pytest.fixture
def make_order(services, tenant_id, customer, actor):
    """
    Create an order through OrderService.

    Usage::

        order = make_order(Decimal("100000"))
        order = make_order(items=[OrderItemSpec("A", 2, "500")], tax_rate="0.19")
    """

    def _make(total: Decimal | str | None = None, items=None, **kwargs):
        if items is None:
            items = [OrderItemSpec("Servicio", 1, total if total is not None else "100000")]
        return services.orders.create_order(tenant_id, customer.id, items, actor, **kwargs)

    return _make


# =============================================================================
# PostgreSQL fixtures (real commits, cleanup by delete)
# =============================================================================


@pytest.fixture(scope="function")
def pg_session_factory(db_engine, db_tables):
    """Committing session factory for concurrency tests.  Data is wiped at teardown."""
    factory = get_session_factory()
    yield factory
    _truncate_all_tables(db_engine)


@pytest.fixture
def pg_provisioned(pg_session_factory):
    """A committed tenant with one customer, for multi-connection tests."""
    session = pg_session_factory()
    try:
        service = ProvisioningService(session)
        result = service.provision_tenant("Concurrent Tenant", f"conc-{uuid4().hex[:8]}")
        customer = service.add_customer(result.tenant.id, "CC-9000", "Cliente Concurrente")
        session.commit()
        yield result, customer
    finally:
        session.close()


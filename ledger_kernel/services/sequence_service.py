"""
SequenceService -- per-tenant document numbering via locked counter rows.

Responsibility:
    Hands out the next order or expense number for a tenant.  A dedicated
    counter row per (tenant_id, series) is locked with ``SELECT ... FOR
    UPDATE`` so concurrent allocations serialize instead of colliding.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by OrderService (series "orders") and ExpenseService
    (series "expenses").

Invariants enforced:
    - Numbers are unique and strictly increasing per tenant and series.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback returns the value.
    - A counter created for a tenant that already has numbered rows (for
      example imported data) starts after the highest existing number.

Failure modes:
    - IntegrityError on concurrent counter creation: resolved with a
      savepoint rollback and re-lock.
    - ValueError for an unknown series name.

Audit relevance:
    Allocation is logged at DEBUG with tenant, series and value.
"""

from uuid import UUID

from sqlalchemy import Integer, String, UniqueConstraint, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base, UUIDString
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.expense import Expense
from ledger_kernel.models.order import Order

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row holds the last number issued for one tenant and series.
    """

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("tenant_id", "series", name="uq_sequence_tenant_series"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Series name ("orders", "expenses")
    series: Mapped[str] = mapped_column(String(50), nullable=False)

    # Last value handed out
    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class SequenceService:
    """
    Service for allocating document numbers.

    Contract:
        ``next_number(tenant_id, series)`` returns the value following the
        highest number ever issued for that tenant and series.

    Guarantees:
        - Concurrency safety: the counter row is locked until the caller's
          transaction ends, so two allocations never see the same value.
        - Aggregate max() is read once, when the counter is first created,
          and never again.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Numbers are not gap-free across failed inserts that are retried.
    """

    ORDERS = "orders"
    EXPENSES = "expenses"

    # Numbered table per series, used to bootstrap a new counter
    _SERIES_MODELS = {
        ORDERS: Order,
        EXPENSES: Expense,
    }

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(self, tenant_id: UUID, series: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(
                SequenceCounter.tenant_id == tenant_id,
                SequenceCounter.series == series,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _highest_issued(self, tenant_id: UUID, series: str) -> int:
        model = self._SERIES_MODELS[series]
        highest = self._session.execute(
            select(func.max(model.number)).where(model.tenant_id == tenant_id)
        ).scalar_one_or_none()
        return int(highest or 0)

    def next_number(self, tenant_id: UUID, series: str) -> int:
        """
        Allocate the next number for a tenant series.

        Preconditions:
            - The caller is within an active database transaction.

        Postconditions:
            - Returns an integer > 0 strictly greater than any number
              previously issued for (tenant_id, series).
            - The counter row stays locked until the transaction completes.

        Raises:
            ValueError: Unknown series.
        """
        if series not in self._SERIES_MODELS:
            raise ValueError(f"Unknown number series: {series!r}")

        counter = self._lock_counter(tenant_id, series)

        if counter is None:
            # First allocation for this tenant series.  Another transaction
            # may create the same counter concurrently; the savepoint keeps
            # the caller's earlier work if our insert loses that race.
            start = self._highest_issued(tenant_id, series)
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(
                    tenant_id=tenant_id, series=series, current_value=start + 1
                )
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={
                        "tenant_id": str(tenant_id),
                        "series": series,
                        "value": counter.current_value,
                    },
                )
                return counter.current_value
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"tenant_id": str(tenant_id), "series": series},
                )
                savepoint.rollback()
                counter = self._lock_counter(tenant_id, series)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={
                "tenant_id": str(tenant_id),
                "series": series,
                "value": counter.current_value,
            },
        )
        return counter.current_value

    def current_number(self, tenant_id: UUID, series: str) -> int | None:
        """
        Last number issued, without incrementing.

        Returns None if the series has never been used for the tenant.
        """
        counter = self._session.execute(
            select(SequenceCounter).where(
                SequenceCounter.tenant_id == tenant_id,
                SequenceCounter.series == series,
            )
        ).scalar_one_or_none()

        return counter.current_value if counter else None

"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers for human-readable
    document numbers (``REQ-20240115-001``, ``PO-20240115-001``,
    ``GRN-2024-0001``).  Uses a dedicated counter table with row-level
    locking (``SELECT ... FOR UPDATE``) to guarantee uniqueness under
    concurrent access.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by the
    approval engine, the purchase-order editor, and the receiving engine.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth.
      The "SELECT max(number) + 1" pattern is FORBIDDEN -- two concurrent
      writers would both read the same maximum.
    - Transactional: an increment only becomes visible when the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from sqlalchemy import String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from procure_kernel.db.base import Base
from procure_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g., "PO-20240115", "GRN-2024")
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Guarantees:
        - Strictly monotonic sequences per name via a locked counter row.
        - Gap-safe under normal operation; rollback returns the value.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        number = sequences.next_document_number("PO", "20240115", width=3)
        # -> "PO-20240115-001"
    """

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        1. Locks the sequence row (or creates it if it does not exist)
        2. Increments the counter
        3. Returns the new value

        Postconditions:
            - Returns an integer > 0 strictly greater than any previously
              returned value for this sequence name.
            - The counter row stays locked until the transaction completes.
        """
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            # First use of this sequence.  Another transaction may create the
            # row at the same time, so isolate the insert in a savepoint.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._session.execute(
                    select(SequenceCounter)
                    .where(SequenceCounter.name == sequence_name)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one()

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Get the current value of a sequence without incrementing."""
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def next_document_number(self, prefix: str, period_key: str, width: int) -> str:
        """
        Allocate the next document number for ``prefix`` within ``period_key``.

        Numbering restarts for every period key (a day for REQ/PO, a year for
        GRN).  Numbers past ``width`` digits simply grow wider.
        """
        value = self.next_value(f"{prefix}-{period_key}")
        return f"{prefix}-{period_key}-{value:0{width}d}"

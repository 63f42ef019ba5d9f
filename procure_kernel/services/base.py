"""
BaseService -- abstract base for all write-side services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every store and engine that mutates procurement records.  Concrete
    services receive a SQLAlchemy ``Session`` that they use via
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or rollback themselves.  ``ProcurementService`` (or a
    test harness) owns commit/rollback, so a receipt that fails half way
    leaves nothing behind.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from procure_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for write-side services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide reporting queries -- those belong in
          ``procure_kernel/selectors/`` subclasses.
    """

    def __init__(self, session: Session):
        self.session = session

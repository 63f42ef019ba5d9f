"""
Module: procure_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.  Selectors
    are the read side of the procurement module: they return frozen DTOs or
    computed rollups and never mutate records.
Architecture position: Kernel > Selectors.  May import from db/base.py.
    MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(), session.delete(),
      session.commit(), or session.flush().
    - Session ownership: the caller owns the session and its transaction scope.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from procure_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Guarantees:
        - session is stored as a public attribute for subclass query use.
        - No commit, flush, add, or delete operations are performed.
    """

    def __init__(self, session: Session):
        self.session = session

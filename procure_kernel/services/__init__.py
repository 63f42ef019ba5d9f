"""Kernel services: flush-only base, sequence allocation, entity locks."""

from procure_kernel.services.base import BaseService
from procure_kernel.services.lock_service import (
    EntityLockRegistry,
    get_lock_registry,
)
from procure_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "BaseService",
    "EntityLockRegistry",
    "get_lock_registry",
    "SequenceCounter",
    "SequenceService",
]

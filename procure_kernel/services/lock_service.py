"""
EntityLockRegistry -- in-process mutual exclusion per entity.

Responsibility:
    Serializes mutating operations on a single purchase order inside one
    process.  Every receipt, edit, cancellation, and manual status step on a
    PO runs while holding that PO's lock, so two handlers can never validate
    against the same stale remaining-quantity snapshot.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Used only by the
    procurement facade; engines never see it.

Invariants enforced:
    - At most one holder per (entity_type, entity_id) key at a time.
    - Acquisition waits at most ``timeout`` seconds, then raises
      ``LockTimeoutError`` (a ``ConcurrencyError``).
    - Lock objects are dropped once no thread holds or waits for them, so
      the registry does not grow with the number of orders ever touched.

Non-goals:
    Cross-process exclusion.  Multiple worker processes rely on the
    database row lock (``SELECT ... FOR UPDATE``) and the optimistic
    version column instead.
"""

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager

from procure_kernel.exceptions import LockTimeoutError
from procure_kernel.logging_config import get_logger

logger = get_logger("services.locks")


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class EntityLockRegistry:
    """Registry of per-entity locks keyed by ``(entity_type, entity_id)``."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[tuple[str, str], _Entry] = {}

    def _checkout(self, key: tuple[str, str]) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.users += 1
            return entry

    def _checkin(self, key: tuple[str, str], entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(key, None)

    @contextmanager
    def hold(
        self,
        entity_type: str,
        entity_id: object,
        timeout: float,
    ) -> Iterator[None]:
        """
        Hold the lock for one entity for the duration of the ``with`` block.

        Raises:
            LockTimeoutError: The lock was not acquired within ``timeout``.
        """
        key = (entity_type, str(entity_id))
        entry = self._checkout(key)
        started = time.monotonic()
        try:
            if not entry.lock.acquire(timeout=timeout):
                logger.warning(
                    "entity_lock_timeout",
                    extra={
                        "entity_type": entity_type,
                        "entity_id": key[1],
                        "timeout_seconds": timeout,
                    },
                )
                raise LockTimeoutError(entity_type, key[1], timeout)
            waited_ms = round((time.monotonic() - started) * 1000, 2)
            logger.debug(
                "entity_lock_acquired",
                extra={
                    "entity_type": entity_type,
                    "entity_id": key[1],
                    "waited_ms": waited_ms,
                },
            )
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(key, entry)

    def is_held(self, entity_type: str, entity_id: object) -> bool:
        """True while some thread holds the lock for this entity."""
        with self._guard:
            entry = self._entries.get((entity_type, str(entity_id)))
            return entry is not None and entry.lock.locked()


_default_registry = EntityLockRegistry()


def get_lock_registry() -> EntityLockRegistry:
    """Process-wide registry shared by every ``ProcurementService``."""
    return _default_registry

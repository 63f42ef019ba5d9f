"""
Module ORM Registry (``procure_modules._orm_registry``).

Ensures every SQLAlchemy model is imported so that ``Base.metadata`` holds
its table before ``create_tables()`` runs.  Kernel tables (sequence
counters) first, then each module's ``orm``.

This function is idempotent -- repeated calls are harmless.
"""


def import_all_orm_models() -> None:
    """Import kernel and module ORM models to register their tables."""
    import procure_kernel.services.sequence_service  # noqa: F401
    import procure_modules.procurement.orm  # noqa: F401

"""
Procurement Modules.

Thin orchestration layers over the Procurement Kernel and Engines.
Each module contains:
- Domain models (the nouns)
- Workflows (state machines)
- Configuration schemas
- ORM persistence and a service facade

Modules:
- Procurement: Requisitions, purchase orders, receiving, spend reporting
"""

from procure_modules import procurement

__all__ = ["procurement"]

"""
Procurement Kernel

Infrastructure shared by the procurement lifecycle engine:
- Typed exceptions with stable error codes
- Structured JSON logging
- Transactional sequence numbers for document identifiers
- Per-entity locking for purchase-order mutations
- Append-only enforcement for goods receipts
"""

__version__ = "0.1.0"

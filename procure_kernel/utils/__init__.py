"""Utility functions."""

from procure_kernel.utils.serialization import to_primitive

__all__ = ["to_primitive"]

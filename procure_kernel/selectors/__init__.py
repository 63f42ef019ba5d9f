"""Read-only selectors."""

from procure_kernel.selectors.base import BaseSelector

__all__ = ["BaseSelector"]

"""Pure domain value objects: clock and workflow definitions."""

from procure_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from procure_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Guard",
    "Transition",
    "Workflow",
]

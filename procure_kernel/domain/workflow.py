"""
Canonical workflow types (``procure_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines.  Requisitions and purchase
orders both declare their lifecycle as a ``Workflow`` so that Guard,
Transition, and Workflow are defined once, and so transition tables can be
checked exhaustively by tests (every state reachable, terminal states have
no outgoing transitions).

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``terminal_states`` have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning engine does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def find_transition(
        self,
        from_state: str,
        action: str,
        to_state: str | None = None,
    ) -> Transition | None:
        """Return the transition for ``action`` out of ``from_state``, if any.

        Actions with several outcomes (receiving) pass ``to_state`` to pick one.
        """
        for transition in self.transitions:
            if transition.from_state != from_state or transition.action != action:
                continue
            if to_state is None or transition.to_state == to_state:
                return transition
        return None

    def actions_from(self, state: str) -> tuple[str, ...]:
        """Actions available in ``state`` (declaration order, no duplicates)."""
        seen: list[str] = []
        for transition in self.transitions:
            if transition.from_state == state and transition.action not in seen:
                seen.append(transition.action)
        return tuple(seen)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

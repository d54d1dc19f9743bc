"""
ticketguard Lifecycle State Machine

Transition-table state machine for long-running loops.

    (state, event type) -> (next state, context updater)

Updaters are pure functions ``(event, context) -> context``. Invariants
are checked against the proposed state and context before either is
committed.

A loop that ticks forever records one self-loop per tick, so the trace is
a ring buffer holding only the most recent ``trace_limit`` transitions.
``transitions`` keeps the lifetime count.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, Generic, List, Tuple, TypeVar

import attrs
import structlog
from returns.result import Failure, Result, Success

from ticketguard.core.exceptions import InvariantViolation

logger = structlog.get_logger()

# Enough to see the last few minutes of a 30 s loop plus its shutdown
DEFAULT_TRACE_LIMIT = 64

S = TypeVar("S", bound=Enum)
E = TypeVar("E")
C = TypeVar("C")

ContextUpdater = Callable[[Any, Any], Any]
TransitionEntry = Tuple[Any, ContextUpdater]
Invariant = Callable[[Any, Any], bool]


@attrs.define(frozen=True, slots=True)
class Transition(Generic[S]):
    """One committed transition and the context it produced."""

    from_state: S
    event_type: str
    to_state: S
    timestamp: datetime
    context_snapshot: Dict[str, Any] = attrs.Factory(dict)

    @property
    def is_self_loop(self) -> bool:
        return self.from_state == self.to_state

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_state": self.from_state.name,
            "event_type": self.event_type,
            "to_state": self.to_state.name,
            "timestamp": self.timestamp.isoformat(),
            "context_snapshot": self.context_snapshot,
        }


@attrs.define
class StateMachineBase(ABC, Generic[S, E, C]):
    """
    Base for lifecycle machines driven by a single owner thread.

    Subclasses supply the transition table:

        class PumpMachine(StateMachineBase[PumpState, Any, PumpContext]):
            def transition_table(self):
                return {
                    (PumpState.ON, Tick): (PumpState.ON, self._count_tick),
                    (PumpState.ON, Stop): (PumpState.OFF, self._keep),
                }

        machine = PumpMachine(_state=PumpState.ON, _context=PumpContext())
    """

    _state: S = attrs.field(alias="_state")
    _context: C = attrs.field(alias="_context")
    trace_limit: int = attrs.field(default=DEFAULT_TRACE_LIMIT, validator=attrs.validators.ge(1))
    _logger: Any = attrs.field(factory=lambda: structlog.get_logger(), alias="_logger")
    _trace: Deque[Transition[S]] = attrs.field(init=False)
    _invariants: List[Tuple[str, Invariant]] = attrs.field(factory=list, init=False)
    _transitions: int = attrs.field(default=0, init=False)

    @_trace.default
    def _empty_trace(self) -> Deque[Transition[S]]:
        return deque(maxlen=self.trace_limit)

    @abstractmethod
    def transition_table(self) -> Dict[Tuple[S, type], TransitionEntry]:
        ...

    @property
    def state(self) -> S:
        return self._state

    @property
    def context(self) -> C:
        return self._context

    @property
    def transitions(self) -> int:
        """Transitions committed since construction, including ones no longer traced."""
        return self._transitions

    def add_invariant(self, name: str, invariant: Invariant) -> None:
        """Check ``invariant(next_state, next_context)`` before every commit."""
        self._invariants.append((name, invariant))

    def process_event(self, event: E) -> Result[S, str]:
        """
        Apply ``event`` to the current state.

        Returns:
            Success(new_state), or Failure(message) when the current state
            has no transition for this event type

        Raises:
            InvariantViolation: The transition would break an invariant;
                nothing is committed
        """
        event_name = type(event).__name__
        entry = self.transition_table().get((self._state, type(event)))
        if entry is None:
            self._logger.warning(
                "invalid_transition",
                current_state=self._state.name,
                event_type=event_name,
            )
            return Failure(f"No transition from {self._state.name} on {event_name}")

        next_state, update = entry
        next_context = update(event, self._context)

        for name, invariant in self._invariants:
            if not invariant(next_state, next_context):
                self._logger.error(
                    "invariant_violated",
                    invariant=name,
                    from_state=self._state.name,
                    to_state=next_state.name,
                )
                raise InvariantViolation(f"Invariant '{name}' violated on {event_name}")

        transition = Transition(
            from_state=self._state,
            event_type=event_name,
            to_state=next_state,
            timestamp=datetime.now(timezone.utc),
            context_snapshot=attrs.asdict(next_context) if attrs.has(type(next_context)) else {},
        )
        self._trace.append(transition)
        self._transitions += 1

        # One self-loop per tick; only real state changes are worth info
        log = self._logger.debug if transition.is_self_loop else self._logger.info
        log(
            "state_transition",
            from_state=self._state.name,
            to_state=next_state.name,
            event_type=event_name,
        )

        self._state = next_state
        self._context = next_context
        return Success(next_state)

    def get_trace(self) -> List[Transition[S]]:
        """The most recent transitions, oldest first."""
        return list(self._trace)

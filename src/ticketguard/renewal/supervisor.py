"""
ticketguard Renewal Supervisor

Background thread that keeps a credential handle fresh.

Loop:
    while not cancelled:
        handle.renew_if_needed()      # failures logged, never fatal
        token.wait(interval)          # sole suspension/cancellation point

Lifecycle (RenewalStateMachine):
    RUNNING --RenewalAttempted--> RUNNING
    RUNNING --CancelObserved----> TERMINATED

No transition leaves TERMINATED, so an attempt after cancellation cannot be
recorded. Only the most recent transitions are kept in the trace.

Usage:
    task = start_renewal(handle, interval=30.0)
    try:
        run_workload()
    finally:
        task.cancel()
        task.join(timeout=1.0)
"""

from __future__ import annotations

import threading
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import attrs
import structlog

from ticketguard.config import RENEWAL_THREAD_NAME
from ticketguard.core.cancellation import CancellationToken
from ticketguard.core.exceptions import CredentialRenewalError, StateError
from ticketguard.core.state_machine import StateMachineBase, Transition, TransitionEntry

logger = structlog.get_logger()

ErrorHandler = Callable[[CredentialRenewalError], None]


class Renewable(Protocol):
    def renew_if_needed(self) -> bool: ...


# =============================================================================
# LIFECYCLE STATE MACHINE
# =============================================================================


class RenewalState(Enum):
    RUNNING = auto()
    TERMINATED = auto()


@attrs.define(frozen=True, slots=True)
class RenewalAttempted:
    """One pass of the loop body finished."""

    renewed: bool = False
    error: Optional[str] = None


@attrs.define(frozen=True, slots=True)
class CancelObserved:
    """The loop saw the cancel request and is exiting."""

    reason: Optional[str] = None


@attrs.define(frozen=True, slots=True)
class RenewalContext:
    attempts: int = 0
    renewals: int = 0
    failures: int = 0
    last_error: Optional[str] = None
    cancel_reason: Optional[str] = None


@attrs.define
class RenewalStateMachine(StateMachineBase[RenewalState, Any, RenewalContext]):
    """RUNNING until cancellation is observed, then TERMINATED for good."""

    def transition_table(self) -> Dict[Tuple[RenewalState, type], TransitionEntry]:
        return {
            (RenewalState.RUNNING, RenewalAttempted): (
                RenewalState.RUNNING,
                self._handle_attempt,
            ),
            (RenewalState.RUNNING, CancelObserved): (
                RenewalState.TERMINATED,
                self._handle_cancel,
            ),
        }

    @staticmethod
    def _handle_attempt(event: RenewalAttempted, ctx: RenewalContext) -> RenewalContext:
        if event.error is not None:
            return attrs.evolve(
                ctx,
                attempts=ctx.attempts + 1,
                failures=ctx.failures + 1,
                last_error=event.error,
            )
        return attrs.evolve(
            ctx,
            attempts=ctx.attempts + 1,
            renewals=ctx.renewals + int(event.renewed),
        )

    @staticmethod
    def _handle_cancel(event: CancelObserved, ctx: RenewalContext) -> RenewalContext:
        return attrs.evolve(ctx, cancel_reason=event.reason)


def counts_consistent(state: RenewalState, ctx: RenewalContext) -> bool:
    """Invariant: every renewal and every failure is also an attempt."""
    return ctx.renewals + ctx.failures <= ctx.attempts


# =============================================================================
# RENEWAL TASK
# =============================================================================


@attrs.define
class RenewalTask:
    """
    Handle to the background renewal thread.

    The thread is a daemon so it can never keep the interpreter alive, but
    callers are still expected to cancel() and join() with a bounded
    timeout on shutdown.
    """

    handle: Renewable
    interval: float = attrs.field(validator=attrs.validators.gt(0.0))
    on_error: Optional[ErrorHandler] = None
    token: CancellationToken = attrs.Factory(CancellationToken)
    name: str = RENEWAL_THREAD_NAME

    _logger: Any = attrs.Factory(lambda: structlog.get_logger())
    _state_machine: RenewalStateMachine = attrs.Factory(
        lambda self: RenewalStateMachine(
            _state=RenewalState.RUNNING,
            _context=RenewalContext(),
            _logger=self._logger,
        ),
        takes_self=True,
    )
    _thread: Optional[threading.Thread] = None

    def __attrs_post_init__(self) -> None:
        self._state_machine.add_invariant("counts_consistent", counts_consistent)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def state(self) -> RenewalState:
        return self._state_machine.state

    @property
    def context(self) -> RenewalContext:
        return self._state_machine.context

    @property
    def attempts(self) -> int:
        return self.context.attempts

    @property
    def renewals(self) -> int:
        return self.context.renewals

    @property
    def failures(self) -> int:
        return self.context.failures

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def get_trace(self) -> List[Transition[RenewalState]]:
        """Recent lifecycle transitions, bounded by the machine's trace_limit."""
        return self._state_machine.get_trace()

    @property
    def transitions(self) -> int:
        return self._state_machine.transitions

    def start(self) -> None:
        """Start the renewal thread. A task can only be started once."""
        if self._thread is not None:
            raise StateError(f"Renewal task {self.name} already started")

        self._thread = threading.Thread(
            target=self._run,
            name=self.name,
            daemon=True,
        )
        self._thread.start()

        self._logger.info(
            "renewal_started",
            thread=self.name,
            interval=self.interval,
        )

    def cancel(self, reason: Optional[str] = None) -> None:
        """
        Request termination.

        The loop exits at its next wait, immediately if it is waiting now,
        and makes no further renewal attempts.
        """
        self.token.cancel(reason)
        self._logger.debug("renewal_cancel_requested", thread=self.name, reason=reason)

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the thread to finish.

        Returns:
            True if the thread has terminated (or never started)
        """
        if self._thread is None:
            return True
        self._thread.join(timeout=timeout)
        return not self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Thread body
    # -------------------------------------------------------------------------

    def _run(self) -> None:
        try:
            self._loop()
        except Exception as e:
            self._logger.error(
                "renewal_thread_uncaught_exception",
                thread=self.name,
                error=str(e),
                exc_info=True,
            )

    def _loop(self) -> None:
        while not self.token.cancelled:
            self._attempt()
            if self.token.wait(self.interval):
                break

        self._state_machine.process_event(CancelObserved(reason=self.token.reason))
        self._logger.info(
            "renewal_stopped",
            thread=self.name,
            attempts=self.attempts,
            failures=self.failures,
        )

    def _attempt(self) -> None:
        self._logger.debug("renewal_invoking", thread=self.name)
        try:
            renewed = self.handle.renew_if_needed()
        except CredentialRenewalError as e:
            self._state_machine.process_event(RenewalAttempted(error=str(e)))
            self._report(e)
            return
        except Exception as e:
            self._state_machine.process_event(RenewalAttempted(error=str(e)))
            self._logger.error(
                "renewal_unexpected_error",
                thread=self.name,
                error=str(e),
                exc_info=True,
            )
            return

        self._state_machine.process_event(RenewalAttempted(renewed=bool(renewed)))
        self._logger.debug("renewal_completed", thread=self.name, renewed=bool(renewed))

    def _report(self, error: CredentialRenewalError) -> None:
        if self.on_error is None:
            self._logger.error(
                "renewal_failed",
                thread=self.name,
                error=error.message,
                code=error.code,
                retry_in=self.interval,
            )
            return
        try:
            self.on_error(error)
        except Exception as e:
            self._logger.error(
                "renewal_error_handler_failed",
                thread=self.name,
                error=str(e),
                exc_info=True,
            )


def start_renewal(
    handle: Renewable,
    interval: float,
    on_error: Optional[ErrorHandler] = None,
    token: Optional[CancellationToken] = None,
    logger: Optional[Any] = None,
    name: str = RENEWAL_THREAD_NAME,
) -> RenewalTask:
    """
    Start a renewal thread for ``handle``.

    Args:
        handle: Anything with renew_if_needed(), normally a CredentialHandle
        interval: Seconds between attempts
        on_error: Called with each CredentialRenewalError (default: log it)
        token: Cancellation token (default: a fresh one)
        logger: Logger for the task (default: structlog)
        name: Thread name

    Returns:
        The running RenewalTask
    """
    task = RenewalTask(
        handle=handle,
        interval=interval,
        on_error=on_error,
        token=token or CancellationToken(),
        name=name,
        logger=logger or structlog.get_logger(),
    )
    task.start()
    return task

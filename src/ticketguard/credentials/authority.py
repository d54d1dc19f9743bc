"""
ticketguard Authentication Authorities

An authority turns (principal, keytab) into a fresh ticket. The credential
handle decides *when* to ask; the authority only knows *how*.

Implementations:
- SimulatedAuthority: in-process KDC stand-in with configurable lifetimes,
  an injectable clock and injectable failures (tests, demos)
- GSSAPIAuthority: real keytab login via the gssapi package
  (see ticketguard.credentials.gssapi_authority)
"""

from __future__ import annotations

import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, FrozenSet, Optional

import attrs
import structlog
from returns.result import Failure, Result, Success

from ticketguard.core.types import Principal, TicketTimes

logger = structlog.get_logger()

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Authority(ABC):
    """
    Authentication collaborator.

    Implementations must be safe to call from the renewal thread while the
    transport uses the same credentials from another thread.
    """

    @abstractmethod
    def acquire(self, principal: Principal, keytab_path: str) -> Result[TicketTimes, str]:
        """
        Obtain a fresh ticket for ``principal`` from ``keytab_path``.

        Returns:
            Success(ticket_times) or Failure(error_message)

        May raise OSError for I/O-class failures talking to the KDC.
        """
        ...

    def now(self) -> datetime:
        """Current time as seen by this authority."""
        return utc_now()


def check_keytab(keytab_path: str) -> Optional[str]:
    """Return an error message if the keytab is missing or obviously malformed."""
    if not keytab_path:
        return "No keytab path given"
    if not os.path.isfile(keytab_path):
        return f"Keytab not found: {keytab_path}"
    if os.path.getsize(keytab_path) == 0:
        return f"Keytab is empty: {keytab_path}"
    return None


@attrs.define
class SimulatedAuthority(Authority):
    """
    In-process authority issuing tickets with fixed lifetimes.

    The default lifetimes mirror a test realm with a 10 minute ticket
    lifetime and a 15 minute renewable lifetime.

    Example:
        authority = SimulatedAuthority(
            ticket_lifetime=timedelta(milliseconds=120),
            renew_lifetime=timedelta(seconds=1),
        )
        handle = login("renewal1@EXAMPLE.COM", "/path/to.keytab", authority=authority)
    """

    ticket_lifetime: timedelta = timedelta(minutes=10)
    renew_lifetime: Optional[timedelta] = timedelta(minutes=15)
    clock: Clock = utc_now
    rejected_principals: FrozenSet[str] = attrs.field(factory=frozenset, converter=frozenset)
    fail_next: int = 0

    _acquisitions: int = 0
    _lock: threading.Lock = attrs.Factory(threading.Lock)
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def __attrs_post_init__(self) -> None:
        if self.ticket_lifetime <= timedelta(0):
            raise ValueError("ticket_lifetime must be positive")
        if self.renew_lifetime is not None and self.renew_lifetime <= self.ticket_lifetime:
            raise ValueError("renew_lifetime must exceed ticket_lifetime")

    @property
    def acquisitions(self) -> int:
        """Number of tickets issued so far."""
        return self._acquisitions

    def now(self) -> datetime:
        return self.clock()

    def inject_failures(self, count: int) -> None:
        """Make the next ``count`` acquisitions fail."""
        with self._lock:
            self.fail_next = count

    def acquire(self, principal: Principal, keytab_path: str) -> Result[TicketTimes, str]:
        problem = check_keytab(keytab_path)
        if problem:
            return Failure(problem)
        if str(principal) in self.rejected_principals or principal.name in self.rejected_principals:
            return Failure(f"Client not found in Kerberos database: {principal}")

        with self._lock:
            if self.fail_next > 0:
                self.fail_next -= 1
                return Failure("Cannot contact any KDC for requested realm")
            self._acquisitions += 1

        times = TicketTimes.issued_at(self.clock(), self.ticket_lifetime, self.renew_lifetime)
        self._logger.debug(
            "simulated_ticket_issued",
            principal=str(principal),
            end_time=times.end_time.isoformat(),
        )
        return Success(times)

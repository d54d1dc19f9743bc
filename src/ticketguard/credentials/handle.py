"""
ticketguard Credential Handle

The process-wide "currently logged-in principal".

A handle is created once by ``login`` and afterwards changed only by
``renew_if_needed``, which swaps in a whole new TicketTimes. There is no
lock around the handle: the authority and transport synchronize
internally, and readers always see either the old or the new ticket.

Renewal policy, for a ticket issued at A, expiring at E, renewable until R:

    A ......... refresh point ......... E ............ R
    |   no-op   |     re-acquire        |  re-acquire  | CredentialExpiredError

The refresh point is A + refresh_window * (E - A).
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any, Optional, Union

import attrs
import structlog
from returns.result import Failure

from ticketguard.config import REFRESH_WINDOW
from ticketguard.core.exceptions import (
    AuthenticationError,
    CredentialExpiredError,
    CredentialRenewalError,
    StateError,
)
from ticketguard.core.types import CredentialState, Principal, TicketTimes
from ticketguard.credentials.authority import Authority

logger = structlog.get_logger()

_current_handle: Optional[CredentialHandle] = None
_current_lock = threading.Lock()


@attrs.define
class CredentialHandle:
    """
    An authenticated principal plus the ticket currently held for it.

    Use ``login`` rather than constructing this directly.
    """

    principal: Principal
    keytab_path: str
    authority: Authority
    _ticket: TicketTimes
    refresh_window: float = attrs.field(
        default=REFRESH_WINDOW,
        validator=[attrs.validators.gt(0.0), attrs.validators.le(1.0)],
    )
    _renewals: int = 0
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def ticket(self) -> TicketTimes:
        """The ticket currently held."""
        return self._ticket

    @property
    def renewals(self) -> int:
        """Number of successful re-acquisitions since login."""
        return self._renewals

    @property
    def state(self) -> CredentialState:
        return self._ticket.state_at(self.authority.now(), self.refresh_window)

    @property
    def remaining(self) -> timedelta:
        """Time left in the primary lifetime (negative once expired)."""
        return self._ticket.end_time - self.authority.now()

    def is_valid(self, at: Optional[datetime] = None) -> bool:
        """Check if the held ticket is within its primary lifetime."""
        return self._ticket.is_valid_at(at or self.authority.now())

    def needs_refresh(self) -> bool:
        return self.state is not CredentialState.VALID

    def renew_if_needed(self) -> bool:
        """
        Refresh the ticket from the keytab if it is due.

        Safe to call on a timer indefinitely, concurrently with transport
        use of the current ticket.

        Returns:
            True if a new ticket was acquired, False if nothing was needed

        Raises:
            CredentialExpiredError: The ticket is past its renewable lifetime
            CredentialRenewalError: The authority failed to issue a new ticket
        """
        ticket = self._ticket
        now = self.authority.now()
        state = ticket.state_at(now, self.refresh_window)

        if state is CredentialState.VALID:
            self._logger.debug(
                "renewal_not_needed",
                principal=str(self.principal),
                end_time=ticket.end_time.isoformat(),
            )
            return False

        if state is CredentialState.EXPIRED:
            raise CredentialExpiredError(
                f"Ticket for {self.principal} expired at {ticket.end_time.isoformat()} "
                f"and was renewable until {ticket.grace_limit.isoformat()}"
            )

        try:
            result = self.authority.acquire(self.principal, self.keytab_path)
        except OSError as e:
            raise CredentialRenewalError(f"Failed to renew ticket from keytab: {e}") from e

        if isinstance(result, Failure):
            raise CredentialRenewalError(f"Failed to renew ticket from keytab: {result.failure()}")

        self._ticket = result.unwrap()
        self._renewals += 1

        self._logger.info(
            "credential_renewed",
            principal=str(self.principal),
            previous_state=state.name,
            valid_until=self._ticket.end_time.isoformat(),
            renewals=self._renewals,
        )
        return True


def login(
    principal: Union[str, Principal],
    keytab_path: str,
    authority: Optional[Authority] = None,
    refresh_window: float = REFRESH_WINDOW,
    logger: Optional[Any] = None,
) -> CredentialHandle:
    """
    Log in from a keytab and make the result the process-wide credential.

    Args:
        principal: Principal name ("renewal1" or "renewal1@EXAMPLE.COM")
        keytab_path: Keytab holding the principal's keys
        authority: Authority to use (default: GSSAPIAuthority)
        refresh_window: Fraction of the ticket lifetime after which to refresh
        logger: Logger for the handle (default: structlog)

    Returns:
        The new current CredentialHandle

    Raises:
        AuthenticationError: Keytab missing or malformed, or login rejected
    """
    global _current_handle

    log = logger or structlog.get_logger()

    if isinstance(principal, str):
        try:
            principal = Principal.from_string(principal)
        except ValueError as e:
            raise AuthenticationError(f"Malformed principal: {e}") from e

    if authority is None:
        from ticketguard.credentials.gssapi_authority import GSSAPIAuthority

        authority = GSSAPIAuthority()

    log.info("login_start", principal=str(principal), keytab=keytab_path)

    try:
        result = authority.acquire(principal, keytab_path)
    except OSError as e:
        log.error("login_failed", principal=str(principal), error=str(e))
        raise AuthenticationError(f"Login from keytab failed: {e}") from e

    if isinstance(result, Failure):
        log.error("login_failed", principal=str(principal), error=result.failure())
        raise AuthenticationError(f"Login from keytab failed: {result.failure()}")

    handle = CredentialHandle(
        principal=principal,
        keytab_path=keytab_path,
        authority=authority,
        ticket=result.unwrap(),
        refresh_window=refresh_window,
        logger=log,
    )

    with _current_lock:
        if _current_handle is not None:
            log.info(
                "credential_handle_replaced",
                previous=str(_current_handle.principal),
                current=str(principal),
            )
        _current_handle = handle

    log.info(
        "login_success",
        principal=str(principal),
        valid_until=handle.ticket.end_time.isoformat(),
    )
    return handle


def get_current_handle() -> CredentialHandle:
    """
    Return the process-wide credential.

    Raises:
        StateError: Nobody has logged in yet
    """
    handle = _current_handle
    if handle is None:
        raise StateError("No credential: call login() first")
    return handle


def reset_current_handle() -> None:
    """Forget the process-wide credential. Useful for testing."""
    global _current_handle
    with _current_lock:
        _current_handle = None

"""
ticketguard Exception Types

Error taxonomy for credential lifetime management and the workload that
depends on it.

Propagation:
- AuthenticationError and SetupError are fatal and abort the run.
- CredentialRenewalError (and CredentialExpiredError) are contained by the
  renewal loop and only logged.
"""

from typing import Optional


class TicketGuardError(Exception):
    """Base exception for all ticketguard errors."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class AuthenticationError(TicketGuardError):
    """
    Login failed.

    The keytab is missing, malformed, or the authority rejected the
    principal. Raised at startup; aborts the process.
    """

    pass


class CredentialRenewalError(TicketGuardError):
    """
    A single renewal attempt failed.

    The renewal loop logs this and tries again on its next tick, since a
    later attempt may succeed before the credential fully expires.
    """

    pass


class CredentialExpiredError(CredentialRenewalError):
    """
    Credential is past its renewable lifetime.

    The ticket can no longer be refreshed from the keytab without a new
    login.
    """

    def __init__(self, message: str = "Credential has expired beyond its renewal window") -> None:
        super().__init__(message, code=32)  # KRB_AP_ERR_TKT_EXPIRED


class SetupError(TicketGuardError):
    """
    Workload setup failed.

    Covers connecting, table creation and the bulk load. Fatal.
    """

    pass


class StateError(TicketGuardError):
    """
    Invalid state transition or lifecycle misuse.

    Raised when an operation is not valid in the current state, such as
    asking for the current credential before anyone has logged in.
    """

    pass


class InvariantViolation(TicketGuardError):
    """
    A lifecycle invariant failed after a transition.

    The transition is not committed. This indicates a bug in a context
    updater, not a runtime condition to recover from.
    """

    pass

"""
ticketguard Credentials

Keytab login and renew-if-needed for a single process-wide principal.
"""

from ticketguard.credentials.authority import Authority, SimulatedAuthority, utc_now
from ticketguard.credentials.gssapi_authority import GSSAPIAuthority, gssapi_available
from ticketguard.credentials.handle import (
    CredentialHandle,
    get_current_handle,
    login,
    reset_current_handle,
)

__all__ = [
    "Authority",
    "SimulatedAuthority",
    "GSSAPIAuthority",
    "gssapi_available",
    "utc_now",
    "CredentialHandle",
    "login",
    "get_current_handle",
    "reset_current_handle",
]

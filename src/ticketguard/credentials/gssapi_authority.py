"""
ticketguard GSSAPI Authority

Keytab login through the GSSAPI Kerberos Credential Store Extension.

GSSAPI provides:
- Initial credentials from a client keytab (no kinit needed)
- A shared credential cache that the transport reads implicitly

Requirements:
- gssapi Python package (pip install ticketguard[native])
- MIT Kerberos libraries with the credential store extension
- Valid krb5.conf configuration
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from typing import Any, Optional

import attrs
import structlog
from returns.result import Failure, Result, Success

from ticketguard.core.types import Principal, TicketTimes
from ticketguard.credentials.authority import Authority, check_keytab

logger = structlog.get_logger()

# Check if GSSAPI is available
try:
    import gssapi
    from gssapi import raw as gssapi_raw
    _gssapi_available = True
    _gssapi_error = None
except ImportError as e:
    gssapi = None  # type: ignore
    gssapi_raw = None  # type: ignore
    _gssapi_available = False
    _gssapi_error = str(e)
except OSError as e:
    # gssapi installed but the Kerberos libraries are missing
    gssapi = None  # type: ignore
    gssapi_raw = None  # type: ignore
    _gssapi_available = False
    _gssapi_error = str(e)


def gssapi_available() -> bool:
    """Check if GSSAPI is available."""
    return _gssapi_available


def has_credential_store() -> bool:
    """Does the underlying GSSAPI library support the Credential Store Extension?"""
    return _gssapi_available and "acquire_cred_from" in dir(gssapi_raw)


def default_ccache() -> str:
    return os.environ.get("KRB5CCNAME", f"FILE:/tmp/krb5cc_ticketguard_{os.getuid()}")


def ticket_times_from_lifetime(
    now: datetime, lifetime_seconds: int, renew_lifetime: Optional[timedelta]
) -> TicketTimes:
    """
    Build TicketTimes from a GSSAPI credential lifetime.

    The assumed renewable lifetime is dropped when it does not outlast the
    ticket itself.
    """
    ticket_lifetime = timedelta(seconds=lifetime_seconds)
    if renew_lifetime is not None and renew_lifetime <= ticket_lifetime:
        renew_lifetime = None
    return TicketTimes.issued_at(now, ticket_lifetime, renew_lifetime)


@attrs.define
class GSSAPIAuthority(Authority):
    """
    Authority backed by the system Kerberos library.

    Tickets are written into ``ccache``; KRB5CCNAME is pointed at it so
    that any GSSAPI/SPNEGO transport in this process picks them up.

    GSSAPI reports only the remaining lifetime of a credential, not its
    renew-till time, so ``renew_lifetime`` is an assumed value rather than
    the KDC's real limit. It is measured from each acquisition, so the grace
    limit moves forward with every renewal. CredentialExpiredError in this
    mode therefore fires against that assumed window. Set it to the realm's
    max_renewable_life, or to None to treat tickets as non-renewable.

    Example:
        authority = GSSAPIAuthority(ccache="FILE:/tmp/krb5cc_renewal1")
        handle = login("renewal1@EXAMPLE.COM", "/etc/security/renewal1.keytab", authority=authority)
    """

    ccache: str = attrs.Factory(default_ccache)
    renew_lifetime: Optional[timedelta] = timedelta(days=7)
    export_ccache: bool = True
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def acquire(self, principal: Principal, keytab_path: str) -> Result[TicketTimes, str]:
        if not _gssapi_available:
            return Failure(f"GSSAPI library not available: {_gssapi_error}")
        if not has_credential_store():
            return Failure("GSSAPI library lacks the credential store extension")

        problem = check_keytab(keytab_path)
        if problem:
            return Failure(problem)

        store = {"client_keytab": keytab_path, "ccache": self.ccache}
        name = gssapi.Name(str(principal), name_type=gssapi.NameType.kerberos_principal)

        try:
            creds = gssapi.Credentials(name=name, usage="initiate", store=store)
            lifetime = creds.lifetime
        except gssapi.exceptions.GSSError as e:
            self._logger.error(
                "gssapi_acquire_failed",
                principal=str(principal),
                keytab=keytab_path,
                error=str(e),
            )
            return Failure(f"GSSAPI error: {e}")

        if not lifetime:
            return Failure(f"Acquired credentials for {principal} are already expired")

        if self.export_ccache:
            os.environ["KRB5CCNAME"] = self.ccache

        times = ticket_times_from_lifetime(self.now(), lifetime, self.renew_lifetime)

        self._logger.info(
            "gssapi_creds_from_keytab",
            principal=str(principal),
            keytab=keytab_path,
            ccache=self.ccache,
            lifetime=lifetime,
        )
        return Success(times)

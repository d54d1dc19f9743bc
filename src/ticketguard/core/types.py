"""
ticketguard Core Types

Value types shared by the credential handle, the renewal supervisor and
the workload runner.

Design Principles:
- Immutable: all value types use frozen attrs classes
- Validated: constraints enforced at construction
- Swappable: the credential handle replaces a whole TicketTimes rather
  than mutating one, so concurrent readers never observe a torn state
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum, auto
from typing import Any, Dict, Optional

import attrs
from attrs import field, validators


# =============================================================================
# ENUMS
# =============================================================================


class CredentialState(Enum):
    """Validity of a credential at a point in time."""

    VALID = auto()  # Before the refresh point
    REFRESH_DUE = auto()  # Past the refresh point, ticket still valid
    GRACE = auto()  # Primary lifetime over, still renewable
    EXPIRED = auto()  # Past the renewable lifetime


class MismatchKind(Enum):
    """Kinds of discrepancies found while validating a polled row."""

    UNEXPECTED_STRING = auto()
    UNEXPECTED_NUMBER = auto()
    NO_ROWS = auto()
    EXTRA_ROWS = auto()


# =============================================================================
# IDENTITY TYPES
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Realm:
    """
    Kerberos realm.

    INVARIANT: name is uppercase per convention
    """

    name: str = field(validator=validators.instance_of(str))

    def __attrs_post_init__(self) -> None:
        if self.name != self.name.upper():
            object.__setattr__(self, "name", self.name.upper())

    def __str__(self) -> str:
        return self.name


@attrs.define(frozen=True, slots=True)
class Principal:
    """
    Kerberos principal.

    Format: name@realm (e.g., renewal1@EXAMPLE.COM). The realm is optional
    because keytab logins commonly rely on the default realm from krb5.conf.

    INVARIANT: name is non-empty
    """

    name: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    realm: Optional[Realm] = field(
        default=None,
        validator=validators.optional(validators.instance_of(Realm)),
    )

    @classmethod
    def from_string(cls, principal_str: str) -> Principal:
        """
        Parse principal from string format.

        Examples:
            "renewal1" -> Principal(name="renewal1", realm=None)
            "renewal1@EXAMPLE.COM" -> Principal(name="renewal1", realm=Realm("EXAMPLE.COM"))
            "hbase/host@EXAMPLE.COM" -> Principal(name="hbase/host", realm=Realm("EXAMPLE.COM"))
        """
        if not principal_str or principal_str.isspace():
            raise ValueError("Principal must not be empty")
        if "@" not in principal_str:
            return cls(name=principal_str)

        # Split on last @ to handle names with @ in them
        at_pos = principal_str.rfind("@")
        name = principal_str[:at_pos]
        realm = principal_str[at_pos + 1 :]
        if not name or not realm:
            raise ValueError(f"Invalid principal format: {principal_str}")

        return cls(name=name, realm=Realm(realm))

    def __str__(self) -> str:
        if self.realm is None:
            return self.name
        return f"{self.name}@{self.realm}"


# =============================================================================
# TICKET TYPES
# =============================================================================


@attrs.define(frozen=True, slots=True)
class TicketTimes:
    """
    Ticket validity times.

    INVARIANT: auth_time <= end_time
    INVARIANT: If renewable, renew_till > end_time
    """

    auth_time: datetime
    end_time: datetime
    renew_till: Optional[datetime] = None

    def __attrs_post_init__(self) -> None:
        if self.auth_time > self.end_time:
            raise ValueError("auth_time must be before end_time")
        if self.renew_till is not None and self.renew_till <= self.end_time:
            raise ValueError("renew_till must be after end_time")

    @classmethod
    def issued_at(
        cls,
        now: datetime,
        lifetime: timedelta,
        renew_lifetime: Optional[timedelta] = None,
    ) -> TicketTimes:
        """Build ticket times for a ticket issued at ``now``."""
        renew_till = now + renew_lifetime if renew_lifetime else None
        return cls(auth_time=now, end_time=now + lifetime, renew_till=renew_till)

    @property
    def lifetime(self) -> timedelta:
        """Primary lifetime of the ticket."""
        return self.end_time - self.auth_time

    @property
    def is_renewable(self) -> bool:
        return self.renew_till is not None

    @property
    def grace_limit(self) -> datetime:
        """Last instant at which the ticket can still be refreshed."""
        return self.renew_till if self.renew_till is not None else self.end_time

    def refresh_point(self, window: float) -> datetime:
        """Instant after which the ticket should be refreshed."""
        return self.auth_time + self.lifetime * window

    def is_valid_at(self, time: Optional[datetime] = None) -> bool:
        """Check if ticket times are valid at given time."""
        if time is None:
            time = datetime.now(timezone.utc)
        return self.auth_time <= time < self.end_time

    def state_at(self, time: datetime, window: float) -> CredentialState:
        """Classify the ticket at ``time`` for a given refresh window."""
        if time >= self.grace_limit:
            return CredentialState.EXPIRED
        if time >= self.end_time:
            return CredentialState.GRACE
        if time >= self.refresh_point(window):
            return CredentialState.REFRESH_DUE
        return CredentialState.VALID


# =============================================================================
# VALIDATION TYPES
# =============================================================================


@attrs.define(frozen=True, slots=True)
class ValidationMismatch:
    """
    Observed data differs from what the bulk load wrote.

    A monitoring signal, never raised: the poll loop logs it as a warning
    and keeps going.
    """

    kind: MismatchKind
    message: str
    expected: Any = None
    observed: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.name,
            "message": self.message,
            "expected": self.expected,
            "observed": self.observed,
        }

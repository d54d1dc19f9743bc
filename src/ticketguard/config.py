"""
ticketguard Configuration

Fixed configuration values for the renewal demo, grouped into attrs config
classes. The defaults are the operating values; tests and examples build
their own instances with shorter periods.

Timing rationale: the renewal period is much shorter than the query period,
so ticket expiry has to be handled by the renewal thread rather than by
incidental workload traffic.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping

import attrs
from attrs import field, validators

DEFAULT_PRINCIPAL = "renewal1"
DEFAULT_KEYTAB = "/usr/local/lib/hadoop/etc/secure/keytabs/renewal1.headless.keytab"

# Refresh once 80% of the ticket lifetime has passed
REFRESH_WINDOW = 0.8

# Issue a query every 6 minutes
QUERY_PERIOD = 6 * 60.0
# Attempt a renewal every 30 seconds
RENEWAL_PERIOD = 30.0
# Bounded wait for the renewal thread on shutdown
SHUTDOWN_TIMEOUT = 1.0
RENEWAL_THREAD_NAME = "KerberosCredentials-Renewal"

PHOENIX_URL = "http://localhost:8765/"
TABLE_NAME = "KERBEROS_TEST"
NUM_ROWS = 100_000
UPDATES_PER_BATCH = 5_000

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _positive(instance: Any, attribute: attrs.Attribute, value: float) -> None:
    if value <= 0:
        raise ValueError(f"{attribute.name} must be positive, got {value}")


def _identifier(instance: Any, attribute: attrs.Attribute, value: str) -> None:
    if not _IDENTIFIER.match(value):
        raise ValueError(f"{attribute.name} must be a plain SQL identifier, got {value!r}")


@attrs.define
class CredentialConfig:
    """
    Who to log in as and from where.

    Attributes:
        principal: Principal name, with or without @REALM
        keytab_path: Keytab holding the principal's keys
        refresh_window: Fraction of the ticket lifetime after which to refresh
    """

    principal: str = DEFAULT_PRINCIPAL
    keytab_path: str = DEFAULT_KEYTAB
    refresh_window: float = field(
        default=REFRESH_WINDOW,
        validator=[validators.gt(0.0), validators.le(1.0)],
    )


@attrs.define
class RenewalConfig:
    """
    Renewal thread timing.

    Attributes:
        interval: Seconds between renewal attempts
        shutdown_timeout: Seconds to wait for the thread after cancelling it
        thread_name: Name given to the renewal thread
    """

    interval: float = field(default=RENEWAL_PERIOD, validator=_positive)
    shutdown_timeout: float = field(default=SHUTDOWN_TIMEOUT, validator=_positive)
    thread_name: str = RENEWAL_THREAD_NAME


@attrs.define
class WorkloadConfig:
    """
    Workload target and sizing.

    Attributes:
        url: Phoenix Query Server URL
        table_name: Table created and polled by the workload
        num_rows: Rows written during the bulk load
        batch_size: Commit every this many rows
        query_period: Seconds between polls
        upsert_verb: Write statement verb; "UPSERT" for Phoenix
    """

    url: str = PHOENIX_URL
    table_name: str = field(default=TABLE_NAME, validator=_identifier)
    num_rows: int = field(default=NUM_ROWS, validator=validators.ge(0))
    batch_size: int = field(default=UPDATES_PER_BATCH, validator=validators.ge(1))
    query_period: float = field(default=QUERY_PERIOD, validator=_positive)
    upsert_verb: str = "UPSERT"

    @property
    def create_table_sql(self) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {self.table_name}"
            "(pk varchar not null primary key, col1 integer)"
        )

    @property
    def upsert_sql(self) -> str:
        return f"{self.upsert_verb} INTO {self.table_name} VALUES(?,?)"

    @property
    def select_sql(self) -> str:
        return f"SELECT * FROM {self.table_name} LIMIT 1"


@attrs.define
class AppConfig:
    """Complete configuration for one orchestrated run."""

    credentials: CredentialConfig = attrs.Factory(CredentialConfig)
    renewal: RenewalConfig = attrs.Factory(RenewalConfig)
    workload: WorkloadConfig = attrs.Factory(WorkloadConfig)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Mapping[str, Any]]) -> "AppConfig":
        """
        Build a config from nested plain mappings.

        Example:
            AppConfig.from_mapping({
                "credentials": {"principal": "renewal1@EXAMPLE.COM"},
                "workload": {"num_rows": 1000},
            })

        Raises:
            ValueError: On unknown sections or keys, or invalid values
        """
        sections: Dict[str, type] = {
            "credentials": CredentialConfig,
            "renewal": RenewalConfig,
            "workload": WorkloadConfig,
        }
        unknown = set(data) - set(sections)
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")

        built = {}
        for name, section_cls in sections.items():
            try:
                built[name] = section_cls(**dict(data.get(name, {})))
            except TypeError as e:
                raise ValueError(f"Invalid '{name}' config: {e}") from e
        return cls(**built)

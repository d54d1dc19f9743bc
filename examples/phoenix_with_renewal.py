#!/usr/bin/env python3
"""
Phoenix With Renewal Example

Runs the renewal demo against a real Kerberized cluster: logs in from a
headless keytab with GSSAPI, renews the ticket every 30 seconds in the
background and queries Phoenix through the Query Server every 6 minutes
until interrupted with Ctrl-C.

Requirements:
- pip install ticketguard[native,phoenix]
- A krb5.conf for the cluster's realm
- A Phoenix Query Server with SPNEGO authentication

Environment overrides:
    TICKETGUARD_PRINCIPAL  (default: renewal1)
    TICKETGUARD_KEYTAB     (default: the Hadoop headless keytab path)
    TICKETGUARD_PQS_URL    (default: http://localhost:8765/)
"""

import os
import sys

from ticketguard import AppConfig, AuthenticationError, SetupError, run_with_renewal
from ticketguard.config import DEFAULT_KEYTAB, DEFAULT_PRINCIPAL, PHOENIX_URL
from ticketguard.credentials.gssapi_authority import GSSAPIAuthority, gssapi_available


def main():
    if not gssapi_available():
        print("GSSAPI not available. Install with: pip install ticketguard[native]")
        return 1

    config = AppConfig.from_mapping(
        {
            "credentials": {
                "principal": os.environ.get("TICKETGUARD_PRINCIPAL", DEFAULT_PRINCIPAL),
                "keytab_path": os.environ.get("TICKETGUARD_KEYTAB", DEFAULT_KEYTAB),
            },
            "workload": {"url": os.environ.get("TICKETGUARD_PQS_URL", PHOENIX_URL)},
        }
    )

    print(f"Logging in as {config.credentials.principal}")
    print(f"Writing {config.workload.num_rows} rows to {config.workload.table_name}")
    print("Press Ctrl-C to stop")

    try:
        polls = run_with_renewal(config, authority=GSSAPIAuthority())
    except AuthenticationError as e:
        print(f"Login failed: {e}")
        return 1
    except SetupError as e:
        print(f"Setup failed: {e}")
        return 1

    print(f"Stopped after {polls} queries")
    return 0


if __name__ == "__main__":
    sys.exit(main())

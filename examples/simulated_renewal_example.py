#!/usr/bin/env python3
"""
Simulated Renewal Example

Demonstrates ticketguard without a KDC or a Phoenix cluster.
This example shows:
1. Keytab login against a simulated authority with 2 second tickets
2. A background renewal thread keeping the ticket valid
3. The bulk load and polling workload, here against SQLite
4. Bounded shutdown and the renewal thread's transition trace
"""

import os
import sqlite3
import tempfile
import threading
from datetime import timedelta

from ticketguard import AppConfig, CancellationToken, RenewalOrchestrator
from ticketguard.credentials.authority import SimulatedAuthority


class SQLiteConnection:
    """Exposes a settable ``autocommit`` on top of sqlite3 isolation levels."""

    def __init__(self, path: str) -> None:
        self._conn = sqlite3.connect(path, isolation_level=None)

    @property
    def autocommit(self) -> bool:
        return self._conn.isolation_level is None

    @autocommit.setter
    def autocommit(self, value: bool) -> None:
        self._conn.isolation_level = None if value else "DEFERRED"

    def cursor(self):
        return self._conn.cursor()

    def commit(self) -> None:
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()


def main():
    """Run the workload for a few seconds under short-lived tickets."""

    print("=" * 60)
    print("ticketguard - Simulated Renewal Example")
    print("=" * 60)
    print()

    workdir = tempfile.mkdtemp(prefix="ticketguard-")
    keytab_path = os.path.join(workdir, "renewal1.headless.keytab")
    with open(keytab_path, "wb") as f:
        f.write(b"\x05\x02")  # any non-empty file will do for the simulator
    db_path = os.path.join(workdir, "workload.db")

    config = AppConfig.from_mapping(
        {
            "credentials": {
                "principal": "renewal1@EXAMPLE.COM",
                "keytab_path": keytab_path,
            },
            "renewal": {"interval": 0.5},
            "workload": {
                "url": f"sqlite:///{db_path}",
                "num_rows": 1_000,
                "batch_size": 100,
                "query_period": 1.0,
                "upsert_verb": "INSERT OR REPLACE",
            },
        }
    )

    authority = SimulatedAuthority(
        ticket_lifetime=timedelta(seconds=2),
        renew_lifetime=timedelta(seconds=30),
    )

    orchestrator = RenewalOrchestrator(
        config=config,
        authority=authority,
        connect=lambda: SQLiteConnection(db_path),
    )

    # ==========================================================================
    # RUN FOR FIVE SECONDS
    # ==========================================================================
    print("1. Running workload (5 seconds)")
    print("-" * 40)

    token = CancellationToken()
    timer = threading.Timer(5.0, token.cancel, kwargs={"reason": "demo finished"})
    timer.start()
    polls = orchestrator.run(token)
    timer.join()

    print(f"   Polls: {polls}")
    print(f"   Tickets issued: {authority.acquisitions}")
    print(f"   Ticket still valid: {orchestrator.handle.is_valid()}")
    print()

    # ==========================================================================
    # RENEWAL THREAD SUMMARY
    # ==========================================================================
    print("2. Renewal Thread")
    print("-" * 40)

    task = orchestrator.renewal_task
    print(f"   State: {task.state.name}")
    print(f"   Attempts: {task.attempts}")
    print(f"   Renewals: {task.renewals}")
    print(f"   Failures: {task.failures}")
    print()

    trace = task.get_trace()
    print(f"   Last transitions ({len(trace)} total):")
    for transition in trace[-3:]:
        print(
            f"     {transition.from_state.name} --{transition.event_type}--> "
            f"{transition.to_state.name}"
        )
    print()


if __name__ == "__main__":
    main()

"""
ticketguard Workload

The foreground job that uses the credential through its transport.
"""

from ticketguard.workload.collaborator import (
    ConnectFn,
    Connection,
    Cursor,
    connect_phoenix,
    phoenix_connector,
)
from ticketguard.workload.runner import BulkLoadReport, WorkloadRunner

__all__ = [
    "ConnectFn",
    "Connection",
    "Cursor",
    "connect_phoenix",
    "phoenix_connector",
    "BulkLoadReport",
    "WorkloadRunner",
]

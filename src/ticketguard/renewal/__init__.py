"""
ticketguard Renewal

Background credential renewal.
"""

from ticketguard.renewal.supervisor import (
    RenewalState,
    RenewalTask,
    RenewalStateMachine,
    start_renewal,
)

__all__ = [
    "RenewalState",
    "RenewalTask",
    "RenewalStateMachine",
    "start_renewal",
]

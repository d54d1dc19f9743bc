"""
ticketguard Core Module

Foundational types and abstractions shared by the credential, renewal and
workload packages.

Components:
- types: Value types (Principal, TicketTimes, ValidationMismatch, ...)
- state_machine: Base state machine with invariant checking
- cancellation: Cooperative cancellation token
- exceptions: Custom exception types
"""

from ticketguard.core.types import (
    CredentialState,
    MismatchKind,
    Principal,
    Realm,
    TicketTimes,
    ValidationMismatch,
)
from ticketguard.core.state_machine import StateMachineBase, Transition
from ticketguard.core.cancellation import CancellationToken
from ticketguard.core.exceptions import (
    TicketGuardError,
    AuthenticationError,
    CredentialRenewalError,
    CredentialExpiredError,
    InvariantViolation,
    SetupError,
    StateError,
)

__all__ = [
    # Types
    "CredentialState",
    "MismatchKind",
    "Principal",
    "Realm",
    "TicketTimes",
    "ValidationMismatch",
    # State Machine
    "StateMachineBase",
    "Transition",
    # Cancellation
    "CancellationToken",
    # Exceptions
    "TicketGuardError",
    "AuthenticationError",
    "CredentialRenewalError",
    "CredentialExpiredError",
    "InvariantViolation",
    "SetupError",
    "StateError",
]

"""
ticketguard - Kerberos credential renewal for long-running clients

Keeps a keytab-based Kerberos login valid for the whole life of a process
whose runtime exceeds the ticket lifetime, using a background renewal
thread that runs alongside the real workload instead of relying on
workload traffic to refresh the ticket.

Components:
- credentials: keytab login and renew-if-needed (simulated or GSSAPI)
- renewal: background renewal thread with cooperative cancellation
- workload: Phoenix bulk load and polling workload
- orchestrator: wiring, bounded shutdown and signal handling

Example Usage:
    from ticketguard import AppConfig, run_with_renewal

    config = AppConfig.from_mapping({
        "credentials": {
            "principal": "renewal1@EXAMPLE.COM",
            "keytab_path": "/etc/security/keytabs/renewal1.headless.keytab",
        },
        "workload": {"url": "http://pqs.example.com:8765/"},
    })
    run_with_renewal(config)  # until SIGINT/SIGTERM
"""

from ticketguard.config import AppConfig, CredentialConfig, RenewalConfig, WorkloadConfig
from ticketguard.core.cancellation import CancellationToken
from ticketguard.core.exceptions import (
    AuthenticationError,
    CredentialExpiredError,
    CredentialRenewalError,
    SetupError,
)
from ticketguard.credentials.handle import CredentialHandle, get_current_handle, login
from ticketguard.orchestrator import RenewalOrchestrator, run_with_renewal
from ticketguard.renewal.supervisor import RenewalTask, start_renewal
from ticketguard.workload.runner import WorkloadRunner

__version__ = "0.1.0"

__all__ = [
    # Main API
    "login",
    "get_current_handle",
    "start_renewal",
    "run_with_renewal",
    "RenewalOrchestrator",
    "WorkloadRunner",
    # Types
    "CredentialHandle",
    "RenewalTask",
    "CancellationToken",
    # Configuration
    "AppConfig",
    "CredentialConfig",
    "RenewalConfig",
    "WorkloadConfig",
    # Errors
    "AuthenticationError",
    "CredentialRenewalError",
    "CredentialExpiredError",
    "SetupError",
    # Metadata
    "__version__",
]

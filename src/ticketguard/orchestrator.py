"""
ticketguard Orchestrator

Wires the credential handle, the renewal thread and the workload together:

    login -> start renewal (background) -> run workload (foreground)
          -> finally: cancel renewal, bounded join

Startup and setup failures propagate. Shutdown of the renewal thread is
best effort: a join that times out is logged, not raised.
"""

from __future__ import annotations

import signal
import sys
from typing import Any, Callable, Dict, Iterable, Optional

import attrs
import structlog

from ticketguard.config import AppConfig
from ticketguard.core.cancellation import CancellationToken
from ticketguard.core.exceptions import CredentialRenewalError
from ticketguard.credentials.authority import Authority
from ticketguard.credentials.handle import CredentialHandle, login
from ticketguard.renewal.supervisor import RenewalTask, start_renewal
from ticketguard.workload.collaborator import ConnectFn, phoenix_connector
from ticketguard.workload.runner import WorkloadRunner

logger = structlog.get_logger()


@attrs.define
class RenewalOrchestrator:
    """
    Runs one workload under a continuously renewed credential.

    Example:
        orchestrator = RenewalOrchestrator(
            config=AppConfig(),
            authority=GSSAPIAuthority(),
        )
        token = CancellationToken()
        install_signal_handlers(token)
        orchestrator.run(token)
    """

    config: AppConfig = attrs.Factory(AppConfig)
    authority: Optional[Authority] = None
    connect: Optional[ConnectFn] = None
    on_renewal_error: Optional[Callable[[CredentialRenewalError], None]] = None
    _handle: Optional[CredentialHandle] = None
    _renewal_task: Optional[RenewalTask] = None
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def handle(self) -> Optional[CredentialHandle]:
        return self._handle

    @property
    def renewal_task(self) -> Optional[RenewalTask]:
        return self._renewal_task

    def run(self, token: Optional[CancellationToken] = None) -> int:
        """
        Log in, renew in the background and run the workload to completion.

        Args:
            token: Cancels the workload's polling loop (default: a fresh one)

        Returns:
            Number of polls the workload performed

        Raises:
            AuthenticationError: Login failed
            SetupError: Connecting or bulk load failed
        """
        cfg = self.config
        token = token or CancellationToken()

        self._handle = login(
            cfg.credentials.principal,
            cfg.credentials.keytab_path,
            authority=self.authority,
            refresh_window=cfg.credentials.refresh_window,
            logger=self._logger,
        )

        self._renewal_task = start_renewal(
            self._handle,
            interval=cfg.renewal.interval,
            on_error=self.on_renewal_error,
            logger=self._logger,
            name=cfg.renewal.thread_name,
        )

        try:
            runner = WorkloadRunner(
                connect=self.connect or phoenix_connector(cfg.workload.url),
                config=cfg.workload,
                token=token,
                logger=self._logger,
            )
            return runner.run()
        finally:
            self._shutdown_renewal()

    def _shutdown_renewal(self) -> None:
        task = self._renewal_task
        if task is None:
            return
        task.cancel(reason="workload finished")
        timeout = self.config.renewal.shutdown_timeout
        if task.join(timeout=timeout):
            self._logger.info("renewal_shutdown_complete", thread=task.name)
        else:
            self._logger.warning(
                "renewal_shutdown_timeout",
                thread=task.name,
                timeout=timeout,
            )


def install_signal_handlers(
    token: CancellationToken,
    signals: Iterable[signal.Signals] = (signal.SIGINT, signal.SIGTERM),
) -> Dict[signal.Signals, Any]:
    """
    Cancel ``token`` when the process receives a termination signal.

    Must be called from the main thread.

    Returns:
        The previous handlers, keyed by signal, for restore_signal_handlers()
    """

    def _handler(signum: int, frame: Any) -> None:
        name = signal.Signals(signum).name
        logger.info("shutdown_signal_received", signal=name)
        token.cancel(reason=f"received {name}")

    previous = {}
    for sig in signals:
        previous[sig] = signal.signal(sig, _handler)
    return previous


def restore_signal_handlers(previous: Dict[signal.Signals, Any]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def run_with_renewal(
    config: Optional[AppConfig] = None,
    authority: Optional[Authority] = None,
    connect: Optional[ConnectFn] = None,
    token: Optional[CancellationToken] = None,
    install_signals: bool = True,
) -> int:
    """
    Run the orchestrator until a termination signal arrives.

    Returns:
        Number of polls the workload performed
    """
    token = token or CancellationToken()
    previous = {}
    if install_signals and sys.platform != "win32":
        previous = install_signal_handlers(token)
    try:
        orchestrator = RenewalOrchestrator(
            config=config or AppConfig(),
            authority=authority,
            connect=connect,
        )
        return orchestrator.run(token)
    finally:
        restore_signal_handlers(previous)

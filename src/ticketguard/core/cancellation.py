"""
Cooperative cancellation for the renewal and polling loops.

Each loop receives a CancellationToken and suspends only in
``token.wait(timeout)``. Cancelling wakes a waiting loop immediately; a
loop that is busy observes the cancel at its next wait.
"""

from __future__ import annotations

import threading
from typing import Optional

import attrs


@attrs.define
class CancellationToken:
    """
    A one-shot cancel flag with a timed wait.

    Example:
        token = CancellationToken()

        while not token.cancelled:
            do_work()
            if token.wait(30.0):
                break

        # elsewhere
        token.cancel()
    """

    _event: threading.Event = attrs.Factory(threading.Event)
    _reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        """Why cancellation was requested, if a reason was given."""
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        """Request cancellation. Idempotent; the first reason wins."""
        if not self._event.is_set():
            self._reason = reason
        self._event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Sleep for up to ``timeout`` seconds.

        Returns:
            True if cancellation was requested (before or during the wait),
            False if the full timeout elapsed.
        """
        return self._event.wait(timeout=timeout)

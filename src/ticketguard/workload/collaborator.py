"""
ticketguard Data Collaborator

The slice of PEP 249 (DB-API 2.0) the workload relies on, plus a connect
factory for Apache Phoenix through the Phoenix Query Server.

The Phoenix connection authenticates with SPNEGO, so it uses whatever
Kerberos ticket the credential handle currently holds in the ccache.
"""

from __future__ import annotations

import functools
from typing import Any, Callable, Optional, Protocol, Sequence

import structlog

from ticketguard.core.exceptions import SetupError

logger = structlog.get_logger()


class Cursor(Protocol):
    def execute(self, operation: str, parameters: Optional[Sequence[Any]] = None) -> Any: ...

    def fetchone(self) -> Optional[Sequence[Any]]: ...

    def close(self) -> None: ...


class Connection(Protocol):
    autocommit: bool

    def cursor(self) -> Cursor: ...

    def commit(self) -> None: ...

    def close(self) -> None: ...


ConnectFn = Callable[[], Connection]


def connect_phoenix(url: str, **kwargs: Any) -> Connection:
    """
    Open a Phoenix Query Server connection authenticated via SPNEGO.

    Raises:
        SetupError: phoenixdb is not installed
    """
    try:
        import phoenixdb
    except ImportError as e:
        raise SetupError("phoenixdb not available. Install with: pip install ticketguard[phoenix]") from e

    kwargs.setdefault("authentication", "SPNEGO")
    kwargs.setdefault("autocommit", True)
    logger.debug("phoenix_connect", url=url, authentication=kwargs["authentication"])
    return phoenixdb.connect(url, **kwargs)


def phoenix_connector(url: str, **kwargs: Any) -> ConnectFn:
    """Bind connect_phoenix to a URL for use as a WorkloadRunner connect factory."""
    return functools.partial(connect_phoenix, url, **kwargs)

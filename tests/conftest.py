"""
Pytest configuration and shared fixtures for ticketguard tests.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest
from structlog.testing import CapturingLogger

from ticketguard.core.types import Principal, Realm
from ticketguard.credentials.authority import SimulatedAuthority
from ticketguard.credentials.handle import CredentialHandle, login, reset_current_handle


# =============================================================================
# REALM AND PRINCIPAL FIXTURES
# =============================================================================


@pytest.fixture
def test_realm() -> Realm:
    """Test Kerberos realm."""
    return Realm("EXAMPLE.COM")


@pytest.fixture
def test_principal(test_realm: Realm) -> Principal:
    """Headless principal used for keytab logins."""
    return Principal(name="renewal1", realm=test_realm)


@pytest.fixture
def keytab_file(tmp_path) -> str:
    """A non-empty file standing in for a keytab."""
    path = tmp_path / "renewal1.headless.keytab"
    path.write_bytes(b"\x05\x02\x00\x00\x00\x45")
    return str(path)


@pytest.fixture(autouse=True)
def _reset_current_handle():
    """Every test starts logged out."""
    reset_current_handle()
    yield
    reset_current_handle()


# =============================================================================
# TIME-RELATED FIXTURES
# =============================================================================


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# CREDENTIAL FIXTURES
# =============================================================================


@pytest.fixture
def simulated_authority(clock: FakeClock) -> SimulatedAuthority:
    """10 minute tickets renewable for 15 minutes, on a fake clock."""
    return SimulatedAuthority(
        ticket_lifetime=timedelta(minutes=10),
        renew_lifetime=timedelta(minutes=15),
        clock=clock,
    )


@pytest.fixture
def handle(test_principal, keytab_file, simulated_authority) -> CredentialHandle:
    """A freshly logged-in handle on the fake clock."""
    return login(test_principal, keytab_file, authority=simulated_authority)


@pytest.fixture
def capturing_logger() -> CapturingLogger:
    return CapturingLogger()


def calls_named(logger: CapturingLogger, method_name: str, event: str = None) -> list:
    """Captured calls for one log level, optionally filtered by event name."""
    return [
        call
        for call in logger.calls
        if call.method_name == method_name and (event is None or call.args[0] == event)
    ]


class CountingHandle:
    """Wraps a renewable and counts renew_if_needed calls."""

    def __init__(self, inner=None, side_effect=None) -> None:
        self.inner = inner
        self.side_effect = side_effect
        self.calls = 0
        self._lock = threading.Lock()

    def renew_if_needed(self) -> bool:
        with self._lock:
            self.calls += 1
            call = self.calls
        if self.side_effect is not None:
            self.side_effect(call)
        if self.inner is None:
            return False
        return self.inner.renew_if_needed()


# =============================================================================
# DATA COLLABORATOR FAKES
# =============================================================================


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self.conn = conn
        self.closed = False
        self._results = []

    def execute(self, operation, parameters=None):
        self.conn.statements.append((operation, parameters))
        if self.conn.fail_on and self.conn.fail_on in operation:
            raise RuntimeError(f"statement failed: {operation}")
        if operation.startswith("UPSERT"):
            if self.conn.fail_after_rows is not None and len(self.conn.rows) >= self.conn.fail_after_rows:
                raise RuntimeError("region server unavailable")
            key, value = parameters
            self.conn.rows[key] = value
        elif operation.startswith("SELECT"):
            self._results = list(self.conn.query_rows)

    def fetchone(self):
        if self._results:
            return self._results.pop(0)
        return None

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    """In-memory DB-API connection recording commits and autocommit changes."""

    def __init__(self, query_rows=None, fail_on=None, fail_after_rows=None) -> None:
        self.query_rows = [("0", 0)] if query_rows is None else list(query_rows)
        self.fail_on = fail_on
        self.fail_after_rows = fail_after_rows
        self.rows = {}
        self.statements = []
        self.cursors = []
        self.commits = 0
        self.closed = False
        self.autocommit_changes = []
        self._autocommit = True

    @property
    def autocommit(self) -> bool:
        return self._autocommit

    @autocommit.setter
    def autocommit(self, value: bool) -> None:
        self.autocommit_changes.append(value)
        self._autocommit = value

    def cursor(self) -> FakeCursor:
        cursor = FakeCursor(self)
        self.cursors.append(cursor)
        return cursor

    def commit(self) -> None:
        self.commits += 1

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()


# =============================================================================
# PYTEST MARKERS
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "native: marks tests requiring native GSSAPI and a KDC"
    )

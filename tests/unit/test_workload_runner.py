"""
Unit tests for ticketguard.workload.

Tests the bulk load, row validation and the cancellable polling loop
against an in-memory DB-API connection.
"""

import threading
import time

import pytest

from ticketguard.config import WorkloadConfig
from ticketguard.core.cancellation import CancellationToken
from ticketguard.core.exceptions import SetupError
from ticketguard.core.types import MismatchKind
from ticketguard.workload.collaborator import phoenix_connector
from ticketguard.workload.runner import WorkloadRunner

from tests.conftest import FakeConnection, calls_named


def make_runner(conn, logger=None, token=None, **workload) -> WorkloadRunner:
    workload.setdefault("table_name", "T")
    workload.setdefault("query_period", 0.01)
    kwargs = {
        "connect": lambda: conn,
        "config": WorkloadConfig(**workload),
        "token": token or CancellationToken(),
    }
    if logger is not None:
        kwargs["logger"] = logger
    return WorkloadRunner(**kwargs)


class TestBulkLoad:
    """Tests for the bulk load phase."""

    def test_commit_cadence(self, fake_connection):
        runner = make_runner(fake_connection, num_rows=10, batch_size=3)
        report = runner.bulk_load(fake_connection)

        # i = 0, 3, 6, 9 plus the final commit
        assert report.commits == 5
        assert fake_connection.commits == 5
        assert report.rows == 10

    def test_rows_written(self, fake_connection):
        runner = make_runner(fake_connection, num_rows=10, batch_size=3)
        runner.bulk_load(fake_connection)
        assert fake_connection.rows == {str(i): i for i in range(10)}

    def test_statements(self, fake_connection):
        runner = make_runner(fake_connection, num_rows=2, batch_size=5)
        runner.bulk_load(fake_connection)
        operations = [op for op, _ in fake_connection.statements]
        assert operations[0] == (
            "CREATE TABLE IF NOT EXISTS T(pk varchar not null primary key, col1 integer)"
        )
        assert operations[1:] == ["UPSERT INTO T VALUES(?,?)"] * 2

    def test_autocommit_toggled(self, fake_connection):
        runner = make_runner(fake_connection, num_rows=4, batch_size=2)
        runner.bulk_load(fake_connection)
        assert fake_connection.autocommit_changes == [False, True]
        assert fake_connection.autocommit is True

    def test_zero_rows_still_commits_once(self, fake_connection):
        runner = make_runner(fake_connection, num_rows=0, batch_size=3)
        report = runner.bulk_load(fake_connection)
        assert report.commits == 1
        assert fake_connection.rows == {}

    def test_cursor_closed(self, fake_connection):
        runner = make_runner(fake_connection, num_rows=3, batch_size=2)
        runner.bulk_load(fake_connection)
        assert all(cursor.closed for cursor in fake_connection.cursors)

    def test_create_table_failure(self, capturing_logger):
        conn = FakeConnection(fail_on="CREATE TABLE")
        runner = make_runner(conn, logger=capturing_logger, num_rows=3, batch_size=2)
        with pytest.raises(SetupError) as exc_info:
            runner.bulk_load(conn)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert calls_named(capturing_logger, "error", "bulk_load_failed")

    def test_write_failure_mid_load(self):
        conn = FakeConnection(fail_after_rows=4)
        runner = make_runner(conn, num_rows=10, batch_size=3)
        with pytest.raises(SetupError, match="after 4 rows"):
            runner.bulk_load(conn)
        assert all(cursor.closed for cursor in conn.cursors)


class TestPollOnce:
    """Tests for the single-row validation."""

    def test_expected_row_has_no_mismatches(self, capturing_logger):
        conn = FakeConnection(query_rows=[("0", 0)])
        runner = make_runner(conn, logger=capturing_logger)
        assert runner.poll_once(conn) == []
        assert calls_named(capturing_logger, "warning") == []

    def test_unexpected_string(self, capturing_logger):
        conn = FakeConnection(query_rows=[("1", 0)])
        runner = make_runner(conn, logger=capturing_logger)
        mismatches = runner.poll_once(conn)

        assert [m.kind for m in mismatches] == [MismatchKind.UNEXPECTED_STRING]
        warnings = calls_named(capturing_logger, "warning", "validation_mismatch")
        assert len(warnings) == 1
        assert warnings[0].kwargs["message"] == "Found unexpected string column data"
        assert warnings[0].kwargs["observed"] == "1"

    def test_unexpected_number(self, capturing_logger):
        conn = FakeConnection(query_rows=[("0", 7)])
        runner = make_runner(conn, logger=capturing_logger)
        mismatches = runner.poll_once(conn)
        assert [m.kind for m in mismatches] == [MismatchKind.UNEXPECTED_NUMBER]
        assert len(calls_named(capturing_logger, "warning")) == 1

    def test_both_columns_wrong(self):
        conn = FakeConnection(query_rows=[("1", 1)])
        runner = make_runner(conn)
        kinds = [m.kind for m in runner.poll_once(conn)]
        assert kinds == [MismatchKind.UNEXPECTED_STRING, MismatchKind.UNEXPECTED_NUMBER]

    def test_no_rows(self, capturing_logger):
        conn = FakeConnection(query_rows=[])
        runner = make_runner(conn, logger=capturing_logger)
        mismatches = runner.poll_once(conn)
        assert [m.kind for m in mismatches] == [MismatchKind.NO_ROWS]
        warnings = calls_named(capturing_logger, "warning", "validation_mismatch")
        assert warnings[0].kwargs["message"] == "Expected results for query, but found none"

    def test_more_than_one_row(self, capturing_logger):
        conn = FakeConnection(query_rows=[("0", 0), ("1", 1)])
        runner = make_runner(conn, logger=capturing_logger)
        mismatches = runner.poll_once(conn)
        assert [m.kind for m in mismatches] == [MismatchKind.EXTRA_ROWS]
        warnings = calls_named(capturing_logger, "warning", "validation_mismatch")
        assert len(warnings) == 1
        assert warnings[0].kwargs["message"] == "Found more than one row of data"

    def test_query_and_cursor(self, fake_connection):
        runner = make_runner(fake_connection)
        runner.poll_once(fake_connection)
        assert fake_connection.statements == [("SELECT * FROM T LIMIT 1", None)]
        assert fake_connection.cursors[0].closed

    def test_driver_error_propagates(self):
        conn = FakeConnection(fail_on="SELECT")
        runner = make_runner(conn)
        with pytest.raises(RuntimeError):
            runner.poll_once(conn)
        assert conn.cursors[0].closed


class TestPolling:
    """Tests for the cancellable polling loop."""

    def test_pre_cancelled_token_skips_polling(self, fake_connection):
        token = CancellationToken()
        token.cancel()
        runner = make_runner(fake_connection, token=token)
        assert runner.poll_until_cancelled(fake_connection) == 0
        assert fake_connection.statements == []

    def test_cancel_interrupts_wait(self, fake_connection):
        token = CancellationToken()
        runner = make_runner(fake_connection, token=token, query_period=60.0)
        timer = threading.Timer(0.05, token.cancel, args=("test done",))
        timer.start()

        start = time.monotonic()
        polls = runner.poll_until_cancelled(fake_connection)
        elapsed = time.monotonic() - start
        timer.join()

        assert polls == 1
        assert elapsed < 5.0

    def test_polls_repeat(self, fake_connection):
        token = CancellationToken()
        runner = make_runner(fake_connection, token=token, query_period=0.01)
        timer = threading.Timer(0.1, token.cancel)
        timer.start()
        polls = runner.poll_until_cancelled(fake_connection)
        timer.join()
        assert polls >= 2

    def test_mismatches_do_not_stop_polling(self, capturing_logger):
        conn = FakeConnection(query_rows=[])
        token = CancellationToken()
        runner = make_runner(conn, logger=capturing_logger, token=token, query_period=0.01)
        timer = threading.Timer(0.1, token.cancel)
        timer.start()
        polls = runner.poll_until_cancelled(conn)
        timer.join()
        assert polls >= 2
        assert len(calls_named(capturing_logger, "warning", "validation_mismatch")) == polls

    def test_wait_failure_propagates(self, fake_connection, capturing_logger):
        class BrokenToken(CancellationToken):
            def wait(self, timeout=None):
                raise RuntimeError("interrupted")

        runner = make_runner(fake_connection, logger=capturing_logger, token=BrokenToken())
        with pytest.raises(RuntimeError, match="interrupted"):
            runner.poll_until_cancelled(fake_connection)
        assert calls_named(capturing_logger, "error", "poll_wait_failed")


class TestRun:
    """Tests for both phases on one connection."""

    def test_run_closes_connection(self, fake_connection):
        token = CancellationToken()
        runner = make_runner(fake_connection, token=token, num_rows=5, batch_size=2)
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        polls = runner.run()
        timer.join()

        assert polls >= 1
        assert fake_connection.closed
        assert fake_connection.commits == 4

    def test_run_closes_connection_on_setup_error(self):
        conn = FakeConnection(fail_on="CREATE TABLE")
        runner = make_runner(conn)
        with pytest.raises(SetupError):
            runner.run()
        assert conn.closed

    def test_connect_failure(self, capturing_logger):
        def refuse():
            raise ConnectionRefusedError("connection refused")

        runner = WorkloadRunner(
            connect=refuse,
            config=WorkloadConfig(url="http://pqs.invalid:8765/"),
            logger=capturing_logger,
        )
        with pytest.raises(SetupError, match="pqs.invalid"):
            runner.run()
        assert calls_named(capturing_logger, "error", "connect_failed")


class TestPhoenixConnector:
    def test_missing_driver_is_setup_error(self, monkeypatch):
        import sys

        monkeypatch.setitem(sys.modules, "phoenixdb", None)
        connect = phoenix_connector("http://localhost:8765/")
        with pytest.raises(SetupError, match="phoenixdb not available"):
            connect()

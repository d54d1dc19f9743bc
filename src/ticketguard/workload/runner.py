"""
ticketguard Workload Runner

Foreground workload that consumes the credential implicitly through its
transport.

Phases, on one connection that is closed on every exit path:
1. Bulk load: create the table, write N deterministic rows with a commit
   every K rows and once at the end. Any failure raises SetupError.
2. Polling: read one row, compare it with what the bulk load wrote, log a
   warning per mismatch, then wait for the query period. Cancelling the
   token ends the loop cleanly.
"""

from __future__ import annotations

import contextlib
from typing import Any, List

import attrs
import structlog

from ticketguard.config import WorkloadConfig
from ticketguard.core.cancellation import CancellationToken
from ticketguard.core.exceptions import SetupError
from ticketguard.core.types import MismatchKind, ValidationMismatch
from ticketguard.workload.collaborator import ConnectFn, Connection

logger = structlog.get_logger()

# The first row by primary key, as written by the bulk load
EXPECTED_KEY = "0"
EXPECTED_VALUE = 0


@attrs.define(frozen=True, slots=True)
class BulkLoadReport:
    rows: int
    commits: int


@attrs.define
class WorkloadRunner:
    """
    Bulk load followed by an unbounded polling loop.

    Example:
        runner = WorkloadRunner(
            connect=phoenix_connector("http://pqs.example.com:8765/"),
            config=WorkloadConfig(),
            token=token,
        )
        runner.run()  # returns once token is cancelled
    """

    connect: ConnectFn
    config: WorkloadConfig = attrs.Factory(WorkloadConfig)
    token: CancellationToken = attrs.Factory(CancellationToken)
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def run(self) -> int:
        """
        Run both phases.

        Returns:
            Number of polls performed before cancellation

        Raises:
            SetupError: Connecting, table creation or bulk load failed
        """
        conn = self._open()
        with contextlib.closing(conn):
            self.bulk_load(conn)
            return self.poll_until_cancelled(conn)

    def _open(self) -> Connection:
        try:
            return self.connect()
        except SetupError:
            raise
        except Exception as e:
            self._logger.error("connect_failed", url=self.config.url, error=str(e))
            raise SetupError(f"Failed to connect to {self.config.url}: {e}") from e

    # =========================================================================
    # PHASE 1: BULK LOAD
    # =========================================================================

    def bulk_load(self, conn: Connection) -> BulkLoadReport:
        """
        Create the table and write num_rows rows.

        Row i is (str(i), i). A commit is issued whenever i is a multiple
        of batch_size, and once more after the last row.

        Raises:
            SetupError: Any step failed
        """
        cfg = self.config
        rows = 0
        commits = 0

        self._logger.info(
            "bulk_load_start",
            table=cfg.table_name,
            rows=cfg.num_rows,
            batch_size=cfg.batch_size,
        )

        try:
            cursor = conn.cursor()
            try:
                cursor.execute(cfg.create_table_sql)
                conn.autocommit = False
                for i in range(cfg.num_rows):
                    cursor.execute(cfg.upsert_sql, (str(i), i))
                    rows += 1
                    if i % cfg.batch_size == 0:
                        conn.commit()
                        commits += 1
                conn.commit()
                commits += 1
                conn.autocommit = True
            finally:
                cursor.close()
        except Exception as e:
            self._logger.error(
                "bulk_load_failed",
                table=cfg.table_name,
                rows_written=rows,
                error=str(e),
            )
            raise SetupError(f"Bulk load into {cfg.table_name} failed after {rows} rows: {e}") from e

        report = BulkLoadReport(rows=rows, commits=commits)
        self._logger.info(
            "bulk_load_complete",
            table=cfg.table_name,
            rows=report.rows,
            commits=report.commits,
        )
        return report

    # =========================================================================
    # PHASE 2: POLLING
    # =========================================================================

    def poll_once(self, conn: Connection) -> List[ValidationMismatch]:
        """
        Read one row and check it against the first bulk-loaded row.

        Mismatches are logged as warnings and returned; they never raise.
        Driver errors propagate.
        """
        self._logger.debug("query_starting", table=self.config.table_name)

        mismatches: List[ValidationMismatch] = []
        cursor = conn.cursor()
        try:
            cursor.execute(self.config.select_sql)
            row = cursor.fetchone()
            if row is None:
                mismatches.append(
                    ValidationMismatch(
                        kind=MismatchKind.NO_ROWS,
                        message="Expected results for query, but found none",
                    )
                )
            else:
                key, value = row[0], row[1]
                if key != EXPECTED_KEY:
                    mismatches.append(
                        ValidationMismatch(
                            kind=MismatchKind.UNEXPECTED_STRING,
                            message="Found unexpected string column data",
                            expected=EXPECTED_KEY,
                            observed=key,
                        )
                    )
                if value != EXPECTED_VALUE:
                    mismatches.append(
                        ValidationMismatch(
                            kind=MismatchKind.UNEXPECTED_NUMBER,
                            message="Found unexpected numeric column data",
                            expected=EXPECTED_VALUE,
                            observed=value,
                        )
                    )
                if cursor.fetchone() is not None:
                    mismatches.append(
                        ValidationMismatch(
                            kind=MismatchKind.EXTRA_ROWS,
                            message="Found more than one row of data",
                        )
                    )
        finally:
            cursor.close()

        for mismatch in mismatches:
            self._logger.warning("validation_mismatch", **mismatch.to_dict())

        self._logger.debug("query_completed", mismatches=len(mismatches))
        return mismatches

    def poll_until_cancelled(self, conn: Connection) -> int:
        """
        Poll every query_period seconds until the token is cancelled.

        Only cancellation is a clean exit. Anything else raised while
        waiting is logged and propagated.

        Returns:
            Number of polls performed
        """
        polls = 0
        while not self.token.cancelled:
            self.poll_once(conn)
            polls += 1
            try:
                cancelled = self.token.wait(self.config.query_period)
            except Exception as e:
                self._logger.error("poll_wait_failed", polls=polls, error=str(e))
                raise
            if cancelled:
                break

        self._logger.info("polling_stopped", polls=polls, reason=self.token.reason)
        return polls

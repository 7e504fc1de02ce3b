"""
Bulk Import Action - COPY files into a database table

One run:
1. Validate the action config
2. Hold a driver registration for the run
3. Verify the target table exists
4. Build the copy statement
5. Open one connection (auto-commit off) and start one copy channel
6. Stream every file under the configured path through the channel,
   counting rejects and optionally committing after each file
7. Finish the channel, report inserted/rejected counts, commit
8. Close the connection and release the driver, whatever happened
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, ContextManager, List, Optional, Sequence

from .config import FailureCollector, LoadConfig, LoadLevel
from .copy_channel import BulkLoadChannel
from .db_utils import Driver, driver_session
from .errors import BulkLoadError, LoadExecutionError, TableNotFoundError
from .metrics import ROWS_INSERTED_GAUGE, ROWS_REJECTED_GAUGE, LoggingMetrics, MetricsSink
from .storage import FileHandle, LocalFileStorage, Storage

logger = logging.getLogger(__name__)


def build_copy_statement(config: LoadConfig) -> str:
    """
    Derive the COPY statement for a run

    basic:    COPY <table> FROM STDIN DELIMITER '<delimiter>'
    advanced: the configured statement, untouched
    """
    if config.load_level is LoadLevel.BASIC:
        return f"COPY {config.table_name} FROM STDIN DELIMITER '{config.delimiter}'"
    return config.copy_statement


class RunState(str, Enum):
    IDLE = 'IDLE'
    DRIVER_REGISTERED = 'DRIVER_REGISTERED'
    TABLE_VERIFIED = 'TABLE_VERIFIED'
    CONNECTION_OPEN = 'CONNECTION_OPEN'
    CHANNEL_STARTED = 'CHANNEL_STARTED'
    DRAINING = 'DRAINING'
    CHANNEL_FINISHED = 'CHANNEL_FINISHED'
    COMMITTED = 'COMMITTED'
    CLOSED = 'CLOSED'
    ABORTED = 'ABORTED'


@dataclass(frozen=True)
class RunResult:
    """Aggregate outcome of one run"""
    rows_inserted: int
    rows_rejected: int

    def to_dict(self):
        return {
            'rows_inserted': self.rows_inserted,
            'rows_rejected': self.rows_rejected,
        }


class RejectLedger:
    """Running total of rejected rows; read-only once closed"""

    def __init__(self):
        self._total = 0
        self._closed = False

    def add(self, rejects: Sequence) -> int:
        if self._closed:
            raise RuntimeError("Reject ledger is closed")
        self._total += len(rejects)
        return len(rejects)

    def close(self) -> None:
        self._closed = True

    @property
    def total(self) -> int:
        return self._total

    @property
    def closed(self) -> bool:
        return self._closed


class BulkImportAction:
    """
    Loads every file under a storage path into one table through a single
    COPY channel.
    """

    def __init__(
        self,
        config: LoadConfig,
        storage: Optional[Storage] = None,
        metrics: Optional[MetricsSink] = None,
        driver_session_factory: Callable[[str], ContextManager[Driver]] = driver_session,
    ):
        """
        Initialize the action

        Args:
            config: Action configuration
            storage: Where input files live (local filesystem by default)
            metrics: Sink for the run's gauges (logged by default)
            driver_session_factory: Provides the run-scoped driver registration
        """
        self.config = config
        self.storage = storage or LocalFileStorage()
        self.metrics = metrics or LoggingMetrics()
        self.driver_session_factory = driver_session_factory
        self.state = RunState.IDLE
        self.current_file: Optional[int] = None
        self.total_files: Optional[int] = None

    def configure(self, collector: FailureCollector) -> None:
        """Definition-time validation: records failures without raising"""
        self.config.validate(collector)

    def run(self) -> RunResult:
        """
        Execute the bulk import

        Returns:
            RunResult with inserted and rejected row counts

        Raises:
            ConfigValidationError, ConnectivityError, TableNotFoundError,
            LoadExecutionError (a missing storage path is listed inside the
            load, so PathNotFoundError arrives as its __cause__)
        """
        collector = FailureCollector()
        self.config.validate(collector)
        collector.get_or_throw()

        self.state = RunState.IDLE
        try:
            with self.driver_session_factory(self.config.driver) as driver:
                self.state = RunState.DRIVER_REGISTERED
                self._verify_table(driver)

                statement = build_copy_statement(self.config)
                logger.debug(f"Copy statement is: {statement}")

                result = self._load(driver, statement)
        except Exception:
            if self.state is not RunState.IDLE:
                self.state = RunState.ABORTED
            raise

        self.state = RunState.CLOSED
        return result

    def _verify_table(self, driver: Driver) -> None:
        exists = driver.table_exists(
            self.config.table_name,
            self.config.connection,
            self.config.user,
            self.config.password,
        )
        if not exists:
            raise TableNotFoundError(self.config.table_name, self.config.connection)
        self.state = RunState.TABLE_VERIFIED

    def _load(self, driver: Driver, statement: str) -> RunResult:
        connection = driver.connect(self.config.connection, self.config.user, self.config.password)
        self.state = RunState.CONNECTION_OPEN
        channel: Optional[BulkLoadChannel] = None
        load_error: Optional[LoadExecutionError] = None

        try:
            try:
                channel = driver.open_channel(connection, statement)
                channel.start()
                self.state = RunState.CHANNEL_STARTED

                ledger = RejectLedger()
                self._drain(channel, connection, ledger)

                rows_inserted = channel.finish()
                self.state = RunState.CHANNEL_FINISHED
                ledger.close()

                result = RunResult(rows_inserted=rows_inserted, rows_rejected=ledger.total)
                self._report(result)

                connection.commit()
                self.state = RunState.COMMITTED
            except Exception as e:
                self._abort(channel, connection)
                load_error = LoadExecutionError(statement, e)
                raise load_error from e
        finally:
            if load_error is None:
                connection.close()
            else:
                self._close_after_failure(connection)

        logger.info(
            f"Loaded {result.rows_inserted} rows into {self.config.table_name} "
            f"({result.rows_rejected} rejected)"
        )
        return result

    def _drain(self, channel: BulkLoadChannel, connection, ledger: RejectLedger) -> None:
        """Stream each file through the channel in enumeration order"""
        handles: List[FileHandle] = self.storage.list_entries(self.config.path)
        self.total_files = len(handles)

        if not handles:
            logger.warning(f"No files available to load into {self.config.table_name}")
            return

        for idx, handle in enumerate(handles, 1):
            self.state = RunState.DRAINING
            self.current_file = idx
            logger.info(f"[{idx}/{len(handles)}] Loading {handle.name}")

            with handle.open() as stream:
                channel.add_stream(stream)
                rejects = channel.execute()

            rejected = ledger.add(rejects)
            if rejected:
                logger.warning(f"{handle.name}: {rejected} rows rejected")

            if self.config.auto_commit:
                connection.commit()
                logger.debug(f"Committed {handle.name}")

    def _report(self, result: RunResult) -> None:
        self.metrics.gauge(ROWS_REJECTED_GAUGE, result.rows_rejected)
        self.metrics.gauge(ROWS_INSERTED_GAUGE, result.rows_inserted)

    def _abort(self, channel: Optional[BulkLoadChannel], connection) -> None:
        """Best-effort teardown after a load failure; the original error still propagates"""
        if channel is not None and self.state is not RunState.CONNECTION_OPEN:
            try:
                channel.abort()
            except Exception as e:
                logger.warning(f"Failed to abort copy channel: {e}")
        try:
            connection.rollback()
        except Exception as e:
            logger.warning(f"Failed to roll back load transaction: {e}")

    def _close_after_failure(self, connection) -> None:
        try:
            connection.close()
        except Exception as e:
            logger.warning(f"Failed to close connection after load failure: {e}")


def run_bulk_import(
    config: LoadConfig,
    storage: Optional[Storage] = None,
    metrics: Optional[MetricsSink] = None,
) -> RunResult:
    """
    Convenience function to run one bulk import

    Args:
        config: Action configuration
        storage: Input file storage (local filesystem by default)
        metrics: Gauge sink (logged by default)

    Returns:
        RunResult of the run
    """
    action = BulkImportAction(config, storage=storage, metrics=metrics)
    try:
        return action.run()
    except BulkLoadError as e:
        logger.error(f"Bulk import into {config.table_name} failed: {e}")
        raise

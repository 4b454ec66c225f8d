"""Replication of exported CSV tables into the destination, one table at a time.

Per table: parse -> normalize headers -> prepare schema -> load. A failure in
one table is captured in its LoadResult and the run moves on to the next.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Iterable, Mapping

from tablesync.errors import SchemaFatalError, TableSyncError
from tablesync.ingestion.column_names import normalize_headers, normalize_table_name
from tablesync.ingestion.csv_parser import parse_csv
from tablesync.ingestion.loader import DEFAULT_BATCH_DELAY, DEFAULT_BATCH_SIZE, BulkLoader
from tablesync.ingestion.results import (
    BatchError,
    ErrorKind,
    ImportStrategy,
    LoadResult,
    TableState,
)
from tablesync.ingestion.schema import DEFAULT_VERIFY_POLICY, ReplaceStrategy, SchemaManager
from tablesync.retry import BackoffPolicy
from tablesync.service import DatabaseService

if TYPE_CHECKING:
    from tablesync.config import ReplicationConfig

logger = logging.getLogger(__name__)

StateListener = Callable[[str, TableState], None]


@dataclass
class ReplicationReport:
    """Outcome of a multi-table run."""

    succeeded: list[LoadResult] = field(default_factory=list)
    failed: list[LoadResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @property
    def results(self) -> list[LoadResult]:
        return self.succeeded + self.failed

    @property
    def total_inserted(self) -> int:
        return sum(result.inserted for result in self.succeeded)

    @property
    def duration(self) -> float:
        end = self.finished_at or datetime.now()
        return (end - self.started_at).total_seconds()

    def log_summary(self) -> None:
        logger.info(
            "Replication completed: %d succeeded, %d failed, %d records in %.0fs",
            len(self.succeeded),
            len(self.failed),
            self.total_inserted,
            self.duration,
        )
        for result in self.succeeded:
            status = "Partial" if result.partial_success else "Full"
            logger.info(
                "  %s: %s - %d/%d records (%d%%)",
                status,
                result.table,
                result.inserted,
                result.total,
                round(result.success_rate * 100),
            )
            for error in result.errors[:3]:
                logger.info("    Batch %d: %s", error.index, error.message)
        for result in self.failed:
            logger.error("  Failed: %s", result.table)
            for error in result.errors:
                logger.error("    Batch %d: %s", error.index, error.message)


class Replicator:
    """Sequences parsing, schema preparation and loading for many tables.

    ``forced_raw_tables`` names tables that always skip value cleaning,
    whatever the global ``raw_mode`` says.
    """

    def __init__(
        self,
        service: DatabaseService,
        *,
        raw_mode: bool = False,
        forced_raw_tables: Iterable[str] = (),
        import_strategy: ImportStrategy = ImportStrategy.BATCHED,
        replace_strategy: ReplaceStrategy = ReplaceStrategy.PRESERVING,
        retry_policy: BackoffPolicy = BackoffPolicy(max_attempts=1, delay=5.0),
        verify_policy: BackoffPolicy = DEFAULT_VERIFY_POLICY,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        table_delay: float = 1.0,
        listener: StateListener | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.raw_mode = raw_mode
        self.forced_raw_tables = frozenset(forced_raw_tables)
        self.import_strategy = import_strategy
        self.replace_strategy = replace_strategy
        self.retry_policy = retry_policy
        self.table_delay = table_delay
        self.states: dict[str, TableState] = {}
        self._listener = listener
        self._sleep = sleep
        self._schema = SchemaManager(service, verify_policy)
        self._loader = BulkLoader(service, batch_size=batch_size, batch_delay=batch_delay, sleep=sleep)

    @classmethod
    def from_config(cls, service: DatabaseService, config: "ReplicationConfig", **kwargs) -> "Replicator":
        return cls(
            service,
            raw_mode=config.raw_mode,
            forced_raw_tables=config.forced_raw_tables,
            import_strategy=config.import_strategy,
            replace_strategy=config.replace_strategy,
            retry_policy=BackoffPolicy(max_attempts=config.retry_count, delay=config.retry_delay),
            verify_policy=BackoffPolicy(max_attempts=config.verify_attempts, delay=config.verify_delay),
            batch_size=config.batch_size,
            batch_delay=config.batch_delay,
            table_delay=config.table_delay,
            **kwargs,
        )

    def uses_raw_mode(self, table_name: str) -> bool:
        return (
            self.raw_mode
            or table_name in self.forced_raw_tables
            or normalize_table_name(table_name) in self.forced_raw_tables
        )

    def replicate_table(self, table_name: str, csv_text: str, raw_mode: bool | None = None) -> LoadResult:
        """Run one replication attempt for one table.

        Every failure, expected or not, is reported in the returned LoadResult
        so the remaining tables still run.
        """
        if raw_mode is None:
            raw_mode = self.uses_raw_mode(table_name)
        table = normalize_table_name(table_name)
        started = time.monotonic()

        self._transition(table_name, TableState.PARSING)
        parsed = parse_csv(csv_text)
        logger.info("Parsed %d records with %d columns for %s", len(parsed.records), len(parsed.headers), table)

        if not parsed.records:
            logger.info("No data to replicate for %s", table)
            result = LoadResult(
                table, strategy=self.import_strategy, raw_mode=raw_mode, parse_warnings=len(parsed.warnings)
            )
            self._transition(table_name, result.state)
            return result

        header_mapping = normalize_headers(parsed.headers)
        try:
            self._schema.prepare_table(table, header_mapping.columns, self.replace_strategy)
            self._transition(table_name, TableState.SCHEMA_READY)
            self._transition(table_name, TableState.LOADING)
            result = self._loader.load(
                table, header_mapping.columns, parsed.records, self.import_strategy, raw_mode
            )
        except SchemaFatalError as e:
            logger.error("Schema preparation failed for %s: %s", table, e)
            result = self._fatal_result(table, len(parsed.records), raw_mode, ErrorKind.SCHEMA_FATAL, e)
        except TableSyncError as e:
            logger.error("Replication failed for %s: %s", table, e)
            result = self._fatal_result(table, len(parsed.records), raw_mode, ErrorKind.BATCH_INSERT, e)
        except Exception as e:
            logger.exception("Unexpected error replicating %s", table)
            result = self._fatal_result(table, len(parsed.records), raw_mode, ErrorKind.BATCH_INSERT, e)

        result.parse_warnings = len(parsed.warnings)
        result.duration = time.monotonic() - started
        self._log_result(result)
        self._transition(table_name, result.state)
        return result

    def replicate_tables(self, tables: Mapping[str, str]) -> ReplicationReport:
        """Replicate every (table name -> CSV text) pair, sequentially."""
        report = ReplicationReport()
        logger.info(
            "Starting replication of %d tables (raw mode %s, %d attempts per table)",
            len(tables),
            "enabled" if self.raw_mode else "disabled",
            self.retry_policy.max_attempts,
        )

        for position, (table_name, csv_text) in enumerate(tables.items()):
            if position > 0 and self.table_delay > 0:
                self._sleep(self.table_delay)

            self._transition(table_name, TableState.PENDING)
            result = self.retry_policy.call(
                lambda: self._attempt(table_name, csv_text),
                retry_if=lambda r: not (r.success or r.partial_success),
                description=f"Replicating {table_name}",
            )
            if result.success or result.partial_success:
                report.succeeded.append(result)
            else:
                report.failed.append(result)

        report.finished_at = datetime.now()
        report.log_summary()
        return report

    def _attempt(self, table_name: str, csv_text: str) -> LoadResult:
        if self.states.get(table_name) is TableState.FAILED:
            self._transition(table_name, TableState.PENDING)
        return self.replicate_table(table_name, csv_text)

    def _fatal_result(
        self, table: str, total: int, raw_mode: bool, kind: ErrorKind, error: Exception
    ) -> LoadResult:
        return LoadResult(
            table,
            total=total,
            errors=[BatchError(kind, 0, str(error), fatal=True)],
            strategy=self.import_strategy,
            raw_mode=raw_mode,
        )

    def _transition(self, table_name: str, state: TableState) -> None:
        self.states[table_name] = state
        logger.debug("%s -> %s", table_name, state.value)
        if self._listener is not None:
            self._listener(table_name, state)

    def _log_result(self, result: LoadResult) -> None:
        summary = "%s: %d/%d records (%d%%)"
        args = (result.table, result.inserted, result.total, round(result.success_rate * 100))
        if result.success:
            logger.info("Replication completed successfully for " + summary, *args)
        elif result.partial_success:
            logger.warning("Replication partially successful for " + summary, *args)
            logger.warning("  %d batches failed", len(result.errors))
        else:
            logger.error("Replication failed for " + summary, *args)

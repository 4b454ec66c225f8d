"""Bulk loading of parsed records into a prepared destination table."""

import logging
import time
from typing import Callable, Sequence

from tablesync.errors import DestinationError, TableNotFoundError
from tablesync.ingestion.csv_parser import serialize_records
from tablesync.ingestion.results import BatchError, ErrorKind, ImportStrategy, LoadResult
from tablesync.ingestion.value_cleaner import ValueCleaner
from tablesync.service import DatabaseService
from tablesync.types import CleanRecord, RawRecord

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 25
DEFAULT_BATCH_DELAY = 0.1


def chunked(records: Sequence[RawRecord], size: int):
    """Yield consecutive slices of at most ``size`` records, in input order."""
    for start in range(0, len(records), size):
        yield records[start:start + size]


class BulkLoader:
    """Loads records with either one bulk COPY or many small independent inserts.

    Small batches bound the blast radius of a rejected insert: one bad row
    costs its batch, not the table.
    """

    def __init__(
        self,
        service: DatabaseService,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        cleaner_factory: Callable[[], ValueCleaner] = ValueCleaner,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._service = service
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._cleaner_factory = cleaner_factory
        self._sleep = sleep

    def load(
        self,
        table: str,
        columns: list[str],
        records: Sequence[RawRecord],
        strategy: ImportStrategy = ImportStrategy.BATCHED,
        raw_mode: bool = False,
    ) -> LoadResult:
        result = LoadResult(table, total=len(records), strategy=strategy, raw_mode=raw_mode)
        cleaner = None if raw_mode else self._cleaner_factory()
        started = time.monotonic()

        logger.info(
            "Loading %d records into %s (%s, raw mode %s)",
            len(records),
            table,
            strategy.value,
            "enabled" if raw_mode else "disabled",
        )
        if strategy is ImportStrategy.STREAMING:
            self._load_streaming(result, columns, records, cleaner)
        else:
            self._load_batched(result, columns, records, cleaner)

        if cleaner is not None:
            result.cleaning_warnings = len(cleaner.warnings)
        result.duration = time.monotonic() - started
        return result

    def _load_streaming(
        self,
        result: LoadResult,
        columns: list[str],
        records: Sequence[RawRecord],
        cleaner: ValueCleaner | None,
    ) -> None:
        rows = [self._prepare(columns, record, cleaner) for record in records]
        csv_text = serialize_records(columns, rows)
        try:
            with self._service.transaction():
                self._service.copy_from_csv(result.table, columns, csv_text)
            with self._service.transaction():
                copied = self._service.count_rows(result.table)
        except DestinationError as e:
            logger.error("COPY into %s failed: %s", result.table, e)
            result.errors.append(
                BatchError(ErrorKind.STREAMING_COPY, 1, str(e), fatal=True, sample=_sample(columns, rows))
            )
            return

        if copied != len(rows):
            message = f"Copied row count {copied} does not match source record count {len(rows)}"
            logger.error("COPY into %s: %s", result.table, message)
            result.errors.append(
                BatchError(ErrorKind.STREAMING_COPY_MISMATCH, 1, message, fatal=True)
            )
            return

        result.inserted = copied
        logger.info("COPY into %s completed: %d records", result.table, copied)

    def _load_batched(
        self,
        result: LoadResult,
        columns: list[str],
        records: Sequence[RawRecord],
        cleaner: ValueCleaner | None,
    ) -> None:
        batch_count = (len(records) + self._batch_size - 1) // self._batch_size

        for index, batch in enumerate(chunked(records, self._batch_size), start=1):
            if index > 1 and self._batch_delay > 0:
                self._sleep(self._batch_delay)

            rows = [self._prepare(columns, record, cleaner) for record in batch]
            try:
                with self._service.transaction():
                    self._service.batch_insert(result.table, columns, rows)
            except TableNotFoundError as e:
                logger.error("Batch %d/%d: table %s does not exist. Aborting.", index, batch_count, result.table)
                result.errors.append(BatchError(ErrorKind.BATCH_INSERT, index, str(e), fatal=True))
                break
            except DestinationError as e:
                logger.warning(
                    "Batch %d/%d failed, continuing with next batch: %s", index, batch_count, e
                )
                result.errors.append(
                    BatchError(
                        ErrorKind.BATCH_INSERT, index, str(e), fatal=False, sample=_sample(columns, rows)
                    )
                )
                continue

            result.inserted += len(rows)
            logger.info(
                "Batch %d/%d: inserted %d records (total: %d)", index, batch_count, len(rows), result.inserted
            )

    @staticmethod
    def _prepare(columns: list[str], record: RawRecord, cleaner: ValueCleaner | None) -> CleanRecord:
        if cleaner is None:
            return tuple(record)
        return cleaner.clean_record(columns, record)


def _sample(columns: list[str], rows: list[CleanRecord]) -> dict | None:
    return dict(zip(columns, rows[0])) if rows else None

"""Structured outcomes of loading one table."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ImportStrategy(Enum):
    STREAMING = "streaming"  # one bulk COPY of the whole table
    BATCHED = "batched"  # independent fixed-size inserts


class ErrorKind(Enum):
    SCHEMA_FATAL = "schema_fatal"
    BATCH_INSERT = "batch_insert"
    STREAMING_COPY = "streaming_copy"
    STREAMING_COPY_MISMATCH = "streaming_copy_mismatch"


class TableState(Enum):
    PENDING = "pending"
    PARSING = "parsing"
    SCHEMA_READY = "schema_ready"
    LOADING = "loading"
    SUCCEEDED = "succeeded"
    PARTIALLY_SUCCEEDED = "partially_succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class BatchError:
    """One classified load failure with a sample of the offending data.

    ``index`` is the 1-based batch number; 0 means the failure happened
    before any batch was attempted.
    """

    kind: ErrorKind
    index: int
    message: str
    fatal: bool
    sample: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "batch": self.index,
            "error": self.message,
            "fatal": self.fatal,
            "sample": self.sample,
        }


@dataclass
class LoadResult:
    """Per-table outcome: counts, classified errors and success flags."""

    table: str
    total: int = 0
    inserted: int = 0
    errors: list[BatchError] = field(default_factory=list)
    strategy: ImportStrategy = ImportStrategy.BATCHED
    raw_mode: bool = False
    parse_warnings: int = 0
    cleaning_warnings: int = 0
    duration: float = 0.0

    @property
    def failed(self) -> int:
        return self.total - self.inserted

    @property
    def success_rate(self) -> float:
        return self.inserted / self.total if self.total else 0.0

    @property
    def has_fatal_error(self) -> bool:
        return any(error.fatal for error in self.errors)

    @property
    def success(self) -> bool:
        """Every record landed; an export with no data rows is trivially replicated.

        Loads with rejected batches report partial_success instead.
        """
        if self.errors:
            return False
        return self.inserted > 0 or self.total == 0

    @property
    def partial_success(self) -> bool:
        return self.inserted > 0 and bool(self.errors)

    @property
    def state(self) -> TableState:
        if self.partial_success:
            return TableState.PARTIALLY_SUCCEEDED
        if self.success:
            return TableState.SUCCEEDED
        return TableState.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "records": self.total,
            "inserted": self.inserted,
            "failed": self.failed,
            "success_rate": round(self.success_rate * 100),
            "success": self.success,
            "partial_success": self.partial_success,
            "strategy": self.strategy.value,
            "raw_mode": self.raw_mode,
            "parse_warnings": self.parse_warnings,
            "cleaning_warnings": self.cleaning_warnings,
            "duration": round(self.duration, 3),
            "errors": [error.to_dict() for error in self.errors],
        }

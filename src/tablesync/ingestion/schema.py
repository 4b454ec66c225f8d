"""Destination table creation and schema evolution.

Every data column is TEXT; type decisions are left to the value cleaner and
downstream consumers. Each replicated table also carries a surrogate key and
created/updated timestamps.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from tablesync.errors import DestinationError, SchemaFatalError
from tablesync.ingestion.column_names import MAX_IDENTIFIER_LENGTH
from tablesync.retry import BackoffPolicy
from tablesync.service import DatabaseService

logger = logging.getLogger(__name__)

DEFAULT_VERIFY_POLICY = BackoffPolicy(max_attempts=5, delay=2.0)


class ReplaceStrategy(Enum):
    DESTRUCTIVE = "destructive"  # drop and recreate
    PRESERVING = "preserving"  # add missing columns, truncate rows


@dataclass
class SchemaChange:
    """What prepare_table() did to the destination table."""

    table: str
    created: bool = False
    dropped: bool = False
    truncated: bool = False
    added_columns: list[str] = field(default_factory=list)


def generate_create_table_sql(service: DatabaseService, table: str, columns: list[str]) -> str:
    """CREATE TABLE plus created_at index for a table of TEXT columns."""
    quote = service.quote_identifier
    column_defs = [service.surrogate_key_sql]
    column_defs += [f"{quote(column)} TEXT" for column in columns]
    column_defs += [
        "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
        "updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
    ]
    suffix = "_created_at_idx"
    index_name = table[: MAX_IDENTIFIER_LENGTH - len(suffix)] + suffix
    body = ",\n    ".join(column_defs)
    return (
        f"CREATE TABLE {quote(table)} (\n    {body}\n);\n"
        f"CREATE INDEX IF NOT EXISTS {quote(index_name)} ON {quote(table)} (created_at);"
    )


class SchemaManager:
    """Makes a destination table ready to receive a given header set."""

    def __init__(
        self,
        service: DatabaseService,
        verify_policy: BackoffPolicy = DEFAULT_VERIFY_POLICY,
    ):
        self._service = service
        self._verify_policy = verify_policy

    def prepare_table(
        self,
        table: str,
        columns: list[str],
        strategy: ReplaceStrategy = ReplaceStrategy.PRESERVING,
    ) -> SchemaChange:
        """Create or evolve the table, then confirm it is queryable.

        Raises:
            SchemaFatalError: If DDL fails or the table never becomes visible.
        """
        change = SchemaChange(table)
        try:
            if strategy is ReplaceStrategy.DESTRUCTIVE:
                logger.info("Dropping table %s for a fresh schema (destructive mode)", table)
                self._service.drop_table(table, cascade=True)
                change.dropped = True
                self._create(table, columns, change)
            elif self._service.table_exists(table):
                self._evolve(table, columns, change)
            else:
                logger.info("Table %s does not exist, creating it", table)
                self._create(table, columns, change)
        except DestinationError as e:
            raise SchemaFatalError(f"Could not prepare table {table}: {e}") from e

        self.verify_table(table)
        return change

    def verify_table(self, table: str) -> None:
        """Poll until the table is visible, or raise SchemaFatalError."""
        try:
            visible = self._verify_policy.call(
                lambda: self._service.table_exists(table),
                retry_on=(DestinationError,),
                retry_if=lambda exists: not exists,
                description=f"Verifying table {table}",
            )
        except DestinationError as e:
            raise SchemaFatalError(f"Table verification failed for {table}: {e}") from e
        if not visible:
            raise SchemaFatalError(
                f"Table verification failed: relation {table!r} does not exist "
                f"after {self._verify_policy.max_attempts} attempts"
            )
        logger.info("Table %s exists and is accessible", table)

    def _create(self, table: str, columns: list[str], change: SchemaChange) -> None:
        ddl = generate_create_table_sql(self._service, table, columns)
        logger.debug("Creating %s:\n%s", table, ddl)
        self._service.execute_ddl(ddl)
        change.created = True
        logger.info("Created table %s with %d columns", table, len(columns))

    def _evolve(self, table: str, columns: list[str], change: SchemaChange) -> None:
        existing = set(self._service.get_columns(table))
        missing = [column for column in columns if column not in existing]
        quote = self._service.quote_identifier
        for column in missing:
            self._service.execute_ddl(f"ALTER TABLE {quote(table)} ADD COLUMN {quote(column)} TEXT")
        change.added_columns = missing
        if missing:
            logger.info("Added %d new columns to %s: %s", len(missing), table, ", ".join(missing))

        logger.info("Truncating table %s (preserves views and indexes)", table)
        self._service.truncate_table(table)
        change.truncated = True

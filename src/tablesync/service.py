"""Abstract DatabaseService interface."""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator

from tablesync.types import Params, ParamsList, Row


class DatabaseService(ABC):
    """Database-agnostic interface for all destination operations.

    Design principles:
    - Stateless: no mutable state beyond the connection pool
    - Thread-safe: each transaction() acquires its own connection
    - DB-agnostic: callers program against this ABC, never a concrete backend
    - Typed failures: driver errors surface as DestinationError or
      TableNotFoundError, never as driver exceptions
    """

    #: DDL for the surrogate integer primary key column named ``id``.
    surrogate_key_sql: str = "id INTEGER PRIMARY KEY"

    @abstractmethod
    def connect(self) -> None:
        """Initialize the connection pool."""

    @abstractmethod
    def close(self) -> None:
        """Close all connections and release resources."""

    @abstractmethod
    def execute(self, sql: str, params: Params | None = None) -> list[Row]:
        """Execute a single SQL statement and return rows as dicts."""

    @abstractmethod
    def execute_many(self, sql: str, params_list: ParamsList) -> None:
        """Execute a SQL statement for each parameter set."""

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Context manager: acquires a connection, commits on success, rolls back on error."""

    @abstractmethod
    def execute_ddl(self, sql: str) -> None:
        """Execute DDL statements (CREATE TABLE, CREATE INDEX, etc.)."""

    def quote_identifier(self, name: str) -> str:
        """Quote a table or column name for use in SQL text."""
        return '"' + name.replace('"', '""') + '"'

    @abstractmethod
    def batch_insert(self, table: str, columns: list[str], rows: list[tuple]) -> None:
        """Insert multiple rows into a table."""

    @abstractmethod
    def table_exists(self, table: str) -> bool:
        """Return whether the table is present in the current schema."""

    @abstractmethod
    def get_columns(self, table: str) -> list[str]:
        """Return the table's column names in ordinal order."""

    @abstractmethod
    def drop_table(self, table: str, cascade: bool = True) -> None:
        """Drop the table if it exists, cascading to dependents where supported."""

    @abstractmethod
    def truncate_table(self, table: str) -> None:
        """Remove every row while keeping the table and its dependents."""

    @abstractmethod
    def copy_from_csv(self, table: str, columns: list[str], csv_text: str) -> None:
        """Bulk-load CSV text (with a header line) into the given columns."""

    def count_rows(self, table: str) -> int:
        """Return the number of rows in the table. Requires an active transaction."""
        rows = self.execute(f"SELECT COUNT(*) AS cnt FROM {self.quote_identifier(table)}")
        return int(rows[0]["cnt"])

"""SQLite implementation of DatabaseService."""

import csv
import io
import sqlite3
import threading
from contextlib import contextmanager
from queue import Empty, Queue
from typing import Iterator

from tablesync.errors import DestinationError, TableNotFoundError
from tablesync.service import DatabaseService
from tablesync.types import Params, ParamsList, Row

_SQLITE_INT_MIN = -(2**63)
_SQLITE_INT_MAX = 2**63 - 1


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as e:
        message = str(e)
        if "no such table" in message:
            raise TableNotFoundError(message) from e
        raise DestinationError(message) from e
    except (ValueError, OverflowError) as e:
        # Raised while binding parameters, before the statement reaches SQLite.
        raise DestinationError(str(e)) from e


def _bindable(value):
    # SQLite integers are 64-bit; wider ints are bound as their decimal text.
    if isinstance(value, int) and not _SQLITE_INT_MIN <= value <= _SQLITE_INT_MAX:
        return str(value)
    return value


class SQLiteDatabaseService(DatabaseService):
    """SQLite backend using stdlib sqlite3.

    Thread-safe via a connection pool (Queue). Each transaction() call
    acquires a dedicated connection and returns it on exit. The bulk-copy
    channel is emulated by re-reading the CSV and inserting its rows.
    """

    surrogate_key_sql = "id INTEGER PRIMARY KEY AUTOINCREMENT"

    def __init__(self, db_path: str, pool_size: int = 4):
        self._db_path = db_path
        self._pool_size = pool_size
        self._pool: Queue[sqlite3.Connection] = Queue(maxsize=pool_size)
        self._local = threading.local()

    def connect(self) -> None:
        for _ in range(self._pool_size):
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            self._pool.put(conn)

    def close(self) -> None:
        while not self._pool.empty():
            try:
                conn = self._pool.get_nowait()
                conn.close()
            except Empty:
                break

    def _acquire(self) -> sqlite3.Connection:
        return self._pool.get(timeout=30)

    def _release(self, conn: sqlite3.Connection) -> None:
        self._pool.put(conn)

    def _get_conn(self) -> sqlite3.Connection:
        """Get the connection for the current transaction."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            return conn
        raise RuntimeError(
            "No active transaction. Wrap calls in a `with service.transaction():` block."
        )

    def _fetch(self, sql: str, params: Params | None = None) -> list[Row]:
        """Run a read-only query on its own pooled connection."""
        conn = self._acquire()
        try:
            with _translate_errors():
                cursor = conn.execute(sql, params or ())
                columns = [desc[0] for desc in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
        finally:
            self._release(conn)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        conn = self._acquire()
        self._local.conn = conn
        try:
            yield
            with _translate_errors():
                conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._local.conn = None
            self._release(conn)

    def execute(self, sql: str, params: Params | None = None) -> list[Row]:
        conn = self._get_conn()
        with _translate_errors():
            cursor = conn.execute(sql, params or ())
            if cursor.description is None:
                return []
            columns = [desc[0] for desc in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def execute_many(self, sql: str, params_list: ParamsList) -> None:
        conn = self._get_conn()
        with _translate_errors():
            conn.executemany(sql, params_list)

    def execute_ddl(self, sql: str) -> None:
        conn = self._acquire()
        try:
            with _translate_errors():
                conn.executescript(sql)
                conn.commit()
        finally:
            self._release(conn)

    def batch_insert(self, table: str, columns: list[str], rows: list[tuple]) -> None:
        if not rows:
            return
        cols = ", ".join(self.quote_identifier(c) for c in columns)
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {self.quote_identifier(table)} ({cols}) VALUES ({placeholders})"
        self.execute_many(sql, [tuple(_bindable(v) for v in row) for row in rows])

    def table_exists(self, table: str) -> bool:
        rows = self._fetch(
            "SELECT COUNT(*) AS cnt FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table,),
        )
        return rows[0]["cnt"] > 0

    def get_columns(self, table: str) -> list[str]:
        rows = self._fetch(f"PRAGMA table_info({self.quote_identifier(table)})")
        return [row["name"] for row in rows]

    def drop_table(self, table: str, cascade: bool = True) -> None:
        # SQLite has no CASCADE; dependent views are left dangling.
        self.execute_ddl(f"DROP TABLE IF EXISTS {self.quote_identifier(table)}")

    def truncate_table(self, table: str) -> None:
        self.execute_ddl(f"DELETE FROM {self.quote_identifier(table)}")

    def copy_from_csv(self, table: str, columns: list[str], csv_text: str) -> None:
        reader = csv.reader(io.StringIO(csv_text, newline=""))
        next(reader, None)  # header
        rows = [tuple(value if value != "" else None for value in row) for row in reader if row]
        self.batch_insert(table, columns, rows)

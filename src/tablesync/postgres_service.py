"""PostgreSQL implementation of DatabaseService."""

import io
import threading
from contextlib import contextmanager
from queue import Empty, Queue
from typing import Iterator

import psycopg2
import psycopg2.errors
import psycopg2.extras
from psycopg2 import sql

from tablesync.errors import DestinationError, TableNotFoundError
from tablesync.service import DatabaseService
from tablesync.types import Params, ParamsList, Row


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except psycopg2.errors.UndefinedTable as e:
        raise TableNotFoundError(str(e).strip()) from e
    except psycopg2.Error as e:
        raise DestinationError(str(e).strip()) from e
    except ValueError as e:
        # Parameter adaptation failures (e.g. NUL in a string) are not psycopg2.Errors.
        raise DestinationError(str(e)) from e


class PostgresDatabaseService(DatabaseService):
    """PostgreSQL backend using psycopg2.

    Thread-safe via a connection pool (Queue). Each transaction() call
    acquires a dedicated connection and returns it on exit. The bulk-copy
    channel is COPY ... FROM STDIN through copy_expert.
    """

    surrogate_key_sql = "id SERIAL PRIMARY KEY"

    def __init__(self, dsn: str, pool_size: int = 4):
        self._dsn = dsn
        self._pool_size = pool_size
        self._pool: Queue = Queue(maxsize=pool_size)
        self._local = threading.local()

    def connect(self) -> None:
        for _ in range(self._pool_size):
            with _translate_errors():
                conn = psycopg2.connect(self._dsn)
            conn.autocommit = False
            self._pool.put(conn)

    def close(self) -> None:
        while not self._pool.empty():
            try:
                conn = self._pool.get_nowait()
                conn.close()
            except Empty:
                break

    def _acquire(self):
        return self._pool.get(timeout=30)

    def _release(self, conn) -> None:
        self._pool.put(conn)

    def _get_conn(self):
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            return conn
        raise RuntimeError(
            "No active transaction. Wrap calls in a `with service.transaction():` block."
        )

    def _fetch(self, query: str, params: Params | None = None) -> list[Row]:
        """Run a read-only query on its own pooled connection."""
        conn = self._acquire()
        try:
            with _translate_errors():
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    cur.execute(query, params or ())
                    rows = [dict(row) for row in cur.fetchall()]
                conn.commit()
            return rows
        except DestinationError:
            conn.rollback()
            raise
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

    def execute(self, query: str, params: Params | None = None) -> list[Row]:
        conn = self._get_conn()
        with _translate_errors():
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params or ())
                if cur.description is None:
                    return []
                return [dict(row) for row in cur.fetchall()]

    def execute_many(self, query: str, params_list: ParamsList) -> None:
        conn = self._get_conn()
        with _translate_errors():
            with conn.cursor() as cur:
                cur.executemany(query, params_list)

    def execute_ddl(self, query: str) -> None:
        conn = self._acquire()
        try:
            with _translate_errors():
                with conn.cursor() as cur:
                    for statement in query.split(";"):
                        statement = statement.strip()
                        if statement:
                            cur.execute(statement)
                conn.commit()
        except DestinationError:
            conn.rollback()
            raise
        finally:
            self._release(conn)

    def batch_insert(self, table: str, columns: list[str], rows: list[tuple]) -> None:
        if not rows:
            return
        cols = ", ".join(self.quote_identifier(c) for c in columns)
        placeholders = ", ".join("%s" for _ in columns)
        query = f"INSERT INTO {self.quote_identifier(table)} ({cols}) VALUES ({placeholders})"
        self.execute_many(query, rows)

    def table_exists(self, table: str) -> bool:
        rows = self._fetch(
            """
            SELECT EXISTS (
                SELECT FROM information_schema.tables
                WHERE table_schema = current_schema()
                AND table_name = %s
            ) AS present
            """,
            (table,),
        )
        return bool(rows[0]["present"])

    def get_columns(self, table: str) -> list[str]:
        rows = self._fetch(
            """
            SELECT column_name
            FROM information_schema.columns
            WHERE table_schema = current_schema()
            AND table_name = %s
            ORDER BY ordinal_position
            """,
            (table,),
        )
        return [row["column_name"] for row in rows]

    def drop_table(self, table: str, cascade: bool = True) -> None:
        suffix = " CASCADE" if cascade else ""
        self.execute_ddl(f"DROP TABLE IF EXISTS {self.quote_identifier(table)}{suffix}")

    def truncate_table(self, table: str) -> None:
        self.execute_ddl(f"TRUNCATE TABLE {self.quote_identifier(table)}")

    def copy_from_csv(self, table: str, columns: list[str], csv_text: str) -> None:
        conn = self._get_conn()
        statement = sql.SQL("COPY {} ({}) FROM STDIN WITH (FORMAT csv, HEADER true)").format(
            sql.Identifier(table),
            sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        )
        with _translate_errors():
            with conn.cursor() as cur:
                cur.copy_expert(statement.as_string(conn), io.StringIO(csv_text))

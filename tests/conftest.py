"""Shared test fixtures."""

import pytest

from tablesync import create_service
from tablesync.errors import DestinationError
from tablesync.sqlite_service import SQLiteDatabaseService


class RejectingService(SQLiteDatabaseService):
    """SQLite service that rejects any insert batch containing a marked value."""

    def __init__(self, db_path: str, reject_marker: str = "REJECT"):
        super().__init__(db_path)
        self.reject_marker = reject_marker
        self.batches: list[list[tuple]] = []

    def batch_insert(self, table: str, columns: list[str], rows: list[tuple]) -> None:
        self.batches.append(rows)
        if any(self.reject_marker in row for row in rows):
            raise DestinationError(f"value too long for column in {table}")
        super().batch_insert(table, columns, rows)


@pytest.fixture
def db_service(tmp_path):
    """Provide a fresh SQLite DatabaseService for each test."""
    db_path = tmp_path / "test.db"
    service = create_service(f"sqlite:///{db_path}")
    service.connect()
    yield service
    service.close()


@pytest.fixture
def rejecting_service(tmp_path):
    service = RejectingService(str(tmp_path / "test.db"))
    service.connect()
    yield service
    service.close()


@pytest.fixture
def fast_replicator_kwargs():
    """Replicator settings with every delay disabled."""
    return {
        "batch_delay": 0,
        "table_delay": 0,
        "sleep": lambda seconds: None,
    }

"""Tests for multi-table replication."""

from tablesync.config import ReplicationConfig
from tablesync.ingestion.replicator import Replicator
from tablesync.ingestion.results import ErrorKind, ImportStrategy, TableState
from tablesync.ingestion.schema import ReplaceStrategy
from tablesync.retry import BackoffPolicy
from tablesync.sqlite_service import SQLiteDatabaseService

from conftest import RejectingService

INVOICES_CSV = (
    "Invoice ID,Customer Name,Invoice Date,Total\n"
    "1,Acme,03 Aug 2024,\"SAR 3,661.60\"\n"
    "2,Globex,2024-08-04,\"1.234,56\"\n"
)

CUSTOMERS_CSV = "Customer Name,City\nAcme,Riyadh\nGlobex,Dubai\n"


def _policy(attempts):
    return BackoffPolicy(max_attempts=attempts, delay=0)


class GhostTableService(RejectingService):
    """Never reports the named tables as existing."""

    def __init__(self, db_path: str, ghosts=("invoices",)):
        super().__init__(db_path)
        self.ghosts = set(ghosts)

    def table_exists(self, table: str) -> bool:
        if table in self.ghosts:
            return False
        return super().table_exists(table)


class AdapterErrorService(SQLiteDatabaseService):
    """Fails inserts into one table with a non-driver exception."""

    def __init__(self, db_path: str, broken_table: str = "invoices"):
        super().__init__(db_path)
        self.broken_table = broken_table

    def batch_insert(self, table: str, columns: list[str], rows: list[tuple]) -> None:
        if table == self.broken_table:
            raise ValueError("A string literal cannot contain NUL (0x00) characters.")
        super().batch_insert(table, columns, rows)


def _ghost_service(tmp_path, ghosts=("invoices",)):
    service = GhostTableService(str(tmp_path / "ghost.db"), ghosts)
    service.connect()
    return service


class TestReplicateTable:
    def test_end_to_end(self, db_service, fast_replicator_kwargs):
        states = []
        replicator = Replicator(
            db_service,
            listener=lambda table, state: states.append(state),
            **fast_replicator_kwargs,
        )

        result = replicator.replicate_table("Invoices", INVOICES_CSV)

        assert result.table == "invoices"
        assert result.success
        assert result.inserted == 2
        assert states == [
            TableState.PARSING,
            TableState.SCHEMA_READY,
            TableState.LOADING,
            TableState.SUCCEEDED,
        ]
        with db_service.transaction():
            rows = db_service.execute(
                "SELECT invoice_id, customer_name, invoice_date, total FROM invoices ORDER BY id"
            )
        assert rows[0] == {
            "invoice_id": "1",
            "customer_name": "Acme",
            "invoice_date": "2024-08-03",
            "total": "3661.6",
        }
        assert rows[1]["total"] == "1234.56"

    def test_streaming_strategy(self, db_service, fast_replicator_kwargs):
        replicator = Replicator(db_service, import_strategy=ImportStrategy.STREAMING, **fast_replicator_kwargs)
        result = replicator.replicate_table("customers", CUSTOMERS_CSV)
        assert result.strategy is ImportStrategy.STREAMING
        assert result.inserted == 2

    def test_forced_raw_table_skips_cleaning(self, db_service, fast_replicator_kwargs):
        replicator = Replicator(db_service, forced_raw_tables={"invoices"}, **fast_replicator_kwargs)

        result = replicator.replicate_table("Invoices", INVOICES_CSV)

        assert result.raw_mode
        with db_service.transaction():
            rows = db_service.execute("SELECT invoice_date, total FROM invoices ORDER BY id")
        assert rows[0] == {"invoice_date": "03 Aug 2024", "total": "SAR 3,661.60"}

    def test_empty_export_succeeds_without_table(self, db_service, fast_replicator_kwargs):
        result = Replicator(db_service, **fast_replicator_kwargs).replicate_table("empty", "a,b\n")
        assert result.success
        assert result.total == 0
        assert not db_service.table_exists("empty")

    def test_parse_warnings_counted(self, db_service, fast_replicator_kwargs):
        csv_text = CUSTOMERS_CSV + "too,many,fields\n"
        result = Replicator(db_service, **fast_replicator_kwargs).replicate_table("customers", csv_text)
        assert result.parse_warnings == 1
        assert result.inserted == 2
        assert result.success

    def test_schema_evolves_between_runs(self, db_service, fast_replicator_kwargs):
        replicator = Replicator(db_service, **fast_replicator_kwargs)
        replicator.replicate_table("customers", CUSTOMERS_CSV)
        result = replicator.replicate_table("customers", "Customer Name,City,Country\nAcme,Riyadh,SA\n")
        assert result.inserted == 1
        assert "country" in db_service.get_columns("customers")
        with db_service.transaction():
            assert db_service.count_rows("customers") == 1

    def test_destructive_strategy(self, db_service, fast_replicator_kwargs):
        replicator = Replicator(
            db_service, replace_strategy=ReplaceStrategy.DESTRUCTIVE, **fast_replicator_kwargs
        )
        replicator.replicate_table("customers", CUSTOMERS_CSV)
        replicator.replicate_table("customers", "Name\nAcme\n")
        assert "city" not in db_service.get_columns("customers")


class TestReplicateTables:
    def test_schema_failure_after_retries(self, tmp_path, fast_replicator_kwargs):
        service = _ghost_service(tmp_path)
        states = []
        try:
            replicator = Replicator(
                service,
                retry_policy=_policy(3),
                verify_policy=_policy(2),
                listener=lambda table, state: states.append(state),
                **fast_replicator_kwargs,
            )
            report = replicator.replicate_tables({"invoices": INVOICES_CSV})
        finally:
            service.close()

        assert report.succeeded == []
        assert len(report.failed) == 1
        result = report.failed[0]
        assert len(result.errors) == 1
        assert result.errors[0].kind is ErrorKind.SCHEMA_FATAL
        assert result.errors[0].index == 0
        assert result.errors[0].fatal
        assert result.inserted == 0
        assert service.batches == []
        assert states.count(TableState.PARSING) == 3
        assert replicator.states["invoices"] is TableState.FAILED

    def test_failure_does_not_stop_other_tables(self, tmp_path, fast_replicator_kwargs):
        service = _ghost_service(tmp_path)
        try:
            replicator = Replicator(service, verify_policy=_policy(1), **fast_replicator_kwargs)
            report = replicator.replicate_tables({"invoices": INVOICES_CSV, "customers": CUSTOMERS_CSV})
        finally:
            service.close()

        assert [r.table for r in report.failed] == ["invoices"]
        assert [r.table for r in report.succeeded] == ["customers"]
        assert report.total_inserted == 2

    def test_unexpected_error_does_not_stop_other_tables(self, tmp_path, fast_replicator_kwargs):
        service = AdapterErrorService(str(tmp_path / "adapter.db"))
        service.connect()
        try:
            replicator = Replicator(service, **fast_replicator_kwargs)
            report = replicator.replicate_tables({"invoices": INVOICES_CSV, "customers": CUSTOMERS_CSV})
        finally:
            service.close()

        assert [r.table for r in report.failed] == ["invoices"]
        failed = report.failed[0]
        assert len(failed.errors) == 1
        assert failed.errors[0].fatal
        assert "NUL" in failed.errors[0].message
        assert [r.table for r in report.succeeded] == ["customers"]
        assert report.succeeded[0].inserted == 2

    def test_long_identifiers_stored_exactly(self, db_service, fast_replicator_kwargs):
        csv_text = "Invoice ID,Quantity,Phone\n3097791000000168099,5,0501234567\n"
        Replicator(db_service, **fast_replicator_kwargs).replicate_table("invoices", csv_text)
        with db_service.transaction():
            rows = db_service.execute("SELECT invoice_id, quantity, phone FROM invoices")
        assert rows == [{"invoice_id": "3097791000000168099", "quantity": "5", "phone": "0501234567"}]

    def test_partial_success_not_retried(self, rejecting_service, fast_replicator_kwargs):
        csv_text = "Name\n" + "\n".join(["REJECT"] + [f"n{i}" for i in range(4)]) + "\n"
        states = []
        replicator = Replicator(
            rejecting_service,
            retry_policy=_policy(3),
            batch_size=2,
            listener=lambda table, state: states.append(state),
            **fast_replicator_kwargs,
        )

        report = replicator.replicate_tables({"names": csv_text})

        assert states.count(TableState.PARSING) == 1
        result = report.succeeded[0]
        assert result.partial_success
        assert result.inserted == 3
        assert replicator.states["names"] is TableState.PARTIALLY_SUCCEEDED

    def test_delay_between_tables(self, db_service):
        sleeps = []
        replicator = Replicator(db_service, batch_delay=0, table_delay=1.0, sleep=sleeps.append)
        replicator.replicate_tables({"a": CUSTOMERS_CSV, "b": CUSTOMERS_CSV, "c": CUSTOMERS_CSV})
        assert sleeps == [1.0, 1.0]


class TestFromConfig:
    def test_settings_applied(self, db_service):
        config = ReplicationConfig(
            raw_mode=True,
            forced_raw_tables=frozenset({"bills"}),
            retry_count=4,
            import_strategy=ImportStrategy.STREAMING,
            replace_strategy=ReplaceStrategy.DESTRUCTIVE,
        )
        replicator = Replicator.from_config(db_service, config)
        assert replicator.raw_mode
        assert replicator.forced_raw_tables == {"bills"}
        assert replicator.retry_policy.max_attempts == 4
        assert replicator.import_strategy is ImportStrategy.STREAMING
        assert replicator.replace_strategy is ReplaceStrategy.DESTRUCTIVE

    def test_uses_raw_mode_matches_normalized_name(self, db_service):
        replicator = Replicator(db_service, forced_raw_tables={"sales_orders"})
        assert replicator.uses_raw_mode("Sales Orders")
        assert not replicator.uses_raw_mode("customers")

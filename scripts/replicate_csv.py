"""CLI entry point for CSV replication.

Usage:
    python -m scripts.replicate_csv --db-url sqlite:///data.db --table customers=exports/customers.csv
    python -m scripts.replicate_csv --db-url postgresql://... --dir exports --tables invoices bills
        --strategy streaming --replace destructive --raw-table invoices
"""

import argparse
import logging
import sys
from pathlib import Path

from tablesync import create_service
from tablesync.config import ReplicationConfig
from tablesync.errors import ConfigError
from tablesync.export_client import FileExportClient, fetch_all
from tablesync.ingestion.replicator import Replicator
from tablesync.ingestion.results import ImportStrategy
from tablesync.ingestion.schema import ReplaceStrategy

logger = logging.getLogger(__name__)


def _table_arg(value: str) -> tuple[str, str]:
    name, sep, path = value.partition("=")
    if not sep or not name or not path:
        raise argparse.ArgumentTypeError(f"expected NAME=PATH, got '{value}'")
    return name, path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Replicate exported CSV tables into a database")
    parser.add_argument(
        "--db-url", required=True, help="Database URL (sqlite:/// or postgresql://)"
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--table", type=_table_arg, action="append", help="Table to load as NAME=PATH (repeatable)"
    )
    source.add_argument("--dir", help="Directory holding <table>.csv exports")
    parser.add_argument(
        "--tables", nargs="+", help="Tables to load from --dir (default: every *.csv in it)"
    )
    parser.add_argument(
        "--strategy", choices=[s.value for s in ImportStrategy], help="Import strategy"
    )
    parser.add_argument(
        "--replace", choices=[s.value for s in ReplaceStrategy], help="Table replacement strategy"
    )
    parser.add_argument(
        "--raw", action="store_true", default=None, help="Skip value cleaning for all tables"
    )
    parser.add_argument(
        "--raw-table", action="append", default=[], help="Skip value cleaning for this table (repeatable)"
    )
    parser.add_argument("--batch-size", type=int, help="Records per insert batch")
    parser.add_argument("--retry-count", type=int, help="Attempts per table")
    return parser


def load_exports(args: argparse.Namespace) -> tuple[dict[str, str], dict[str, str]]:
    if args.table:
        paths = dict(args.table)
        return fetch_all(FileExportClient(paths=paths), list(paths))

    directory = Path(args.dir)
    names = args.tables or sorted(p.stem for p in directory.glob("*.csv"))
    return fetch_all(FileExportClient(directory), names)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = build_parser().parse_args(argv)

    try:
        config = ReplicationConfig.from_env().with_overrides(
            raw_mode=args.raw,
            batch_size=args.batch_size,
            retry_count=args.retry_count,
            import_strategy=ImportStrategy(args.strategy) if args.strategy else None,
            replace_strategy=ReplaceStrategy(args.replace) if args.replace else None,
        )
        if args.raw_table:
            config = config.with_overrides(
                forced_raw_tables=config.forced_raw_tables | frozenset(args.raw_table)
            )
    except ConfigError as e:
        logger.error("%s", e)
        return 2

    exports, failures = load_exports(args)
    if not exports:
        logger.error("No exports to replicate.")
        return 1

    service = create_service(args.db_url)
    service.connect()
    try:
        report = Replicator.from_config(service, config).replicate_tables(exports)
    finally:
        service.close()

    if failures:
        logger.error("%d exports could not be read: %s", len(failures), ", ".join(sorted(failures)))
    return 1 if report.failed or failures else 0


if __name__ == "__main__":
    sys.exit(main())

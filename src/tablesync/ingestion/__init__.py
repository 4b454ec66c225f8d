"""CSV ingestion: parsing, column naming, value cleaning, schema management and loading."""

from tablesync.ingestion.column_names import normalize_headers, normalize_table_name
from tablesync.ingestion.csv_parser import ParsedCsv, parse_csv, serialize_records
from tablesync.ingestion.loader import BulkLoader
from tablesync.ingestion.replicator import ReplicationReport, Replicator
from tablesync.ingestion.results import (
    BatchError,
    ErrorKind,
    ImportStrategy,
    LoadResult,
    TableState,
)
from tablesync.ingestion.schema import ReplaceStrategy, SchemaManager
from tablesync.ingestion.value_cleaner import SemanticType, ValueCleaner

__all__ = [
    "BatchError",
    "BulkLoader",
    "ErrorKind",
    "ImportStrategy",
    "LoadResult",
    "ParsedCsv",
    "ReplaceStrategy",
    "ReplicationReport",
    "Replicator",
    "SchemaManager",
    "SemanticType",
    "TableState",
    "ValueCleaner",
    "normalize_headers",
    "normalize_table_name",
    "parse_csv",
    "serialize_records",
]

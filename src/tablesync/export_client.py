"""Export clients that supply CSV text for replication.

Credential refresh is the caller's concern: the HTTP client takes an
already-valid access token.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Mapping

import requests

from tablesync.errors import SourceError
from tablesync.retry import BackoffPolicy

logger = logging.getLogger(__name__)


class CsvExportClient(ABC):
    """Abstract interface for fetching one table's exported CSV."""

    @abstractmethod
    def fetch_csv(self, table_name: str) -> str:
        """Return the table's CSV export as text.

        Raises:
            SourceError: If the export cannot be fetched.
        """


class FileExportClient(CsvExportClient):
    """Reads ``<table_name>.csv`` files from a directory, or explicitly mapped paths."""

    def __init__(self, directory: str | Path = ".", paths: Mapping[str, str | Path] | None = None):
        self._directory = Path(directory)
        self._paths = {name: Path(path) for name, path in (paths or {}).items()}

    def path_for(self, table_name: str) -> Path:
        return self._paths.get(table_name, self._directory / f"{table_name}.csv")

    def fetch_csv(self, table_name: str) -> str:
        path = self.path_for(table_name)
        try:
            # utf-8-sig drops the byte-order mark spreadsheet exports often carry.
            return path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as e:
            raise SourceError(f"Could not read export for {table_name} from {path}: {e}") from e


class HttpExportClient(CsvExportClient):
    """Fetches exports over HTTP with retry on transport errors."""

    def __init__(
        self,
        urls: Mapping[str, str],
        token: str | None = None,
        timeout: float = 300,
        retry_policy: BackoffPolicy = BackoffPolicy(max_attempts=3, delay=5.0),
    ):
        self._urls = dict(urls)
        self._token = token
        self._timeout = timeout
        self._retry_policy = retry_policy

    def fetch_csv(self, table_name: str) -> str:
        url = self._urls.get(table_name)
        if url is None:
            raise SourceError(f"No export URL configured for table {table_name}")

        headers = {"Accept": "text/csv"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        def fetch() -> str:
            resp = requests.get(url, headers=headers, timeout=self._timeout)
            resp.raise_for_status()
            # Exports are UTF-8 whatever charset the response advertises.
            return resp.content.decode("utf-8-sig")

        try:
            text = self._retry_policy.call(
                fetch,
                retry_on=(requests.RequestException,),
                description=f"Exporting {table_name}",
            )
        except (requests.RequestException, UnicodeDecodeError) as e:
            raise SourceError(f"Export of {table_name} failed: {e}") from e

        logger.info("Fetched export for %s (%.1f KB)", table_name, len(text) / 1024)
        return text


def fetch_all(
    client: CsvExportClient, table_names: Iterable[str]
) -> tuple[dict[str, str], dict[str, str]]:
    """Fetch every table, continuing past failures.

    Returns:
        (csv text by table name, error message by table name)
    """
    exports: dict[str, str] = {}
    failures: dict[str, str] = {}
    for table_name in table_names:
        try:
            exports[table_name] = client.fetch_csv(table_name)
        except SourceError as e:
            logger.error("Skipping %s: %s", table_name, e)
            failures[table_name] = str(e)
    return exports, failures

"""tablesync exception hierarchy.

Row-level problems (malformed CSV lines, uncleanable values) are recorded as
warnings and never raised. The exceptions below mark failures that stop one
operation: a bad configuration value, a failed export fetch, or a destination
statement the database rejected.
"""


class TableSyncError(Exception):
    """Base exception for all tablesync failures."""


class ConfigError(TableSyncError):
    """Raised for invalid runtime configuration."""


class SourceError(TableSyncError):
    """Raised when CSV text cannot be fetched from the export source."""


class DestinationError(TableSyncError):
    """Raised when the destination database rejects a statement."""


class TableNotFoundError(DestinationError):
    """Raised when a statement targets a table that does not exist."""


class SchemaFatalError(TableSyncError):
    """Raised when a destination table cannot be prepared for loading."""

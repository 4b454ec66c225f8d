"""Runtime configuration for replication runs.

This module owns all environment variable parsing and validation.
Other modules receive a typed config object instead of reading the environment.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Mapping

from tablesync.errors import ConfigError
from tablesync.ingestion.results import ImportStrategy
from tablesync.ingestion.schema import ReplaceStrategy

ENV_PREFIX = "TABLESYNC_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class ReplicationConfig:
    """Validated replication settings.

    Attributes:
        raw_mode: Skip value cleaning for every table.
        forced_raw_tables: Tables that always skip value cleaning.
        batch_size: Records per insert in the batched strategy.
        batch_delay: Seconds to pause between batches.
        table_delay: Seconds to pause between tables.
        retry_count: Attempts per table (1 = no retry).
        retry_delay: Seconds between attempts for one table.
        verify_attempts: Attempts to see a freshly prepared table.
        verify_delay: Seconds between verification attempts.
        import_strategy: Streaming COPY or batched inserts.
        replace_strategy: Destructive drop/recreate or preserving truncate/alter.
    """

    raw_mode: bool = False
    forced_raw_tables: frozenset[str] = field(default_factory=frozenset)
    batch_size: int = 25
    batch_delay: float = 0.1
    table_delay: float = 1.0
    retry_count: int = 1
    retry_delay: float = 5.0
    verify_attempts: int = 5
    verify_delay: float = 2.0
    import_strategy: ImportStrategy = ImportStrategy.BATCHED
    replace_strategy: ReplaceStrategy = ReplaceStrategy.PRESERVING

    def __post_init__(self) -> None:
        for name in ("batch_size", "retry_count", "verify_attempts"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be at least 1, got {getattr(self, name)}")
        for name in ("batch_delay", "table_delay", "retry_delay", "verify_delay"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative, got {getattr(self, name)}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ReplicationConfig":
        """Build config from environment variables.

        Raises:
            ConfigError: If a value cannot be parsed.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def get(name: str) -> str | None:
            return env.get(ENV_PREFIX + name)

        raw_mode_value = get("RAW_MODE")
        if raw_mode_value is None:
            raw_mode_value = env.get("RAW_TEXT_IMPORT")

        return cls(
            raw_mode=_parse_bool("RAW_MODE", raw_mode_value, defaults.raw_mode),
            forced_raw_tables=_parse_list(get("FORCED_RAW_TABLES")),
            batch_size=_parse_int("BATCH_SIZE", get("BATCH_SIZE"), defaults.batch_size),
            batch_delay=_parse_float("BATCH_DELAY", get("BATCH_DELAY"), defaults.batch_delay),
            table_delay=_parse_float("TABLE_DELAY", get("TABLE_DELAY"), defaults.table_delay),
            retry_count=_parse_int("RETRY_COUNT", get("RETRY_COUNT"), defaults.retry_count),
            retry_delay=_parse_float("RETRY_DELAY", get("RETRY_DELAY"), defaults.retry_delay),
            verify_attempts=_parse_int(
                "VERIFY_ATTEMPTS", get("VERIFY_ATTEMPTS"), defaults.verify_attempts
            ),
            verify_delay=_parse_float("VERIFY_DELAY", get("VERIFY_DELAY"), defaults.verify_delay),
            import_strategy=_parse_enum(
                "IMPORT_STRATEGY", ImportStrategy, get("IMPORT_STRATEGY"), defaults.import_strategy
            ),
            replace_strategy=_parse_enum(
                "REPLACE_STRATEGY", ReplaceStrategy, get("REPLACE_STRATEGY"), defaults.replace_strategy
            ),
        )

    def with_overrides(self, **changes) -> "ReplicationConfig":
        """Copy with every non-None keyword applied (for CLI flags)."""
        return replace(self, **{key: value for key, value in changes.items() if value is not None})


def _parse_bool(name: str, raw_value: str | None, default: bool) -> bool:
    if raw_value is None:
        return default
    value = raw_value.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(
        f"Invalid {ENV_PREFIX}{name} value: expected true/false, got '{raw_value}'."
    )


def _parse_int(name: str, raw_value: str | None, default: int) -> int:
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return int(raw_value)
    except ValueError as error:
        raise ConfigError(
            f"Invalid {ENV_PREFIX}{name} value: expected integer, got '{raw_value}'."
        ) from error


def _parse_float(name: str, raw_value: str | None, default: float) -> float:
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return float(raw_value)
    except ValueError as error:
        raise ConfigError(
            f"Invalid {ENV_PREFIX}{name} value: expected a number of seconds, got '{raw_value}'."
        ) from error


def _parse_enum(name: str, enum_type, raw_value: str | None, default):
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return enum_type(raw_value.strip().lower())
    except ValueError as error:
        choices = ", ".join(member.value for member in enum_type)
        raise ConfigError(
            f"Invalid {ENV_PREFIX}{name} value: expected one of {choices}, got '{raw_value}'."
        ) from error


def _parse_list(raw_value: str | None) -> frozenset[str]:
    if not raw_value:
        return frozenset()
    return frozenset(item.strip() for item in raw_value.split(",") if item.strip())

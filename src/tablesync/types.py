"""Shared type aliases for tablesync."""

from typing import Any

# A result row from DatabaseService.execute(), keyed by column name.
Row = dict[str, Any]
Params = tuple | list | dict
ParamsList = list[tuple] | list[list]

# One parsed CSV data row, aligned by position with the header list.
# Positional rather than keyed so duplicate header texts never merge values.
RawRecord = tuple[str | None, ...]

# A record after value cleaning, ready for insert: strings, floats or None.
CleanRecord = tuple[Any, ...]

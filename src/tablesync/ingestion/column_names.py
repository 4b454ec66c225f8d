"""Storage-safe identifiers for CSV headers and table names.

Column names are derived from (header text, position) so the mapping is
deterministic across runs and injective within one header set.
"""

import hashlib
import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

MAX_IDENTIFIER_LENGTH = 63  # PostgreSQL NAMEDATALEN - 1

# Columns every replicated table carries; source headers may not take these names.
SYSTEM_COLUMNS = ("id", "created_at", "updated_at")

_INVALID_CHARS = re.compile(r"[^a-z0-9_]")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")
_NON_ASCII = re.compile(r"[^\x00-\x7f]")


@dataclass
class HeaderMapping:
    """Normalized columns by position, plus the original -> final lookup."""

    columns: list[str] = field(default_factory=list)
    mapping: dict[str, str] = field(default_factory=dict)


def _short_hash(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()[:8]


def clean_identifier(text: str) -> str:
    """Lower-case, replace invalid characters, collapse and strip underscores, truncate.

    May return an empty string; callers supply the fallback.
    """
    cleaned = _INVALID_CHARS.sub("_", text.lower())
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned).strip("_")
    return cleaned[:MAX_IDENTIFIER_LENGTH]


def normalize_column(header: str | None, position: int) -> str:
    if header is None or not header.strip():
        return f"col_{position}_empty"
    if _NON_ASCII.search(header):
        # Hash instead of transliterating: stable across runs and never lossy.
        return f"col_{position}_{_short_hash(header)}"
    return clean_identifier(header) or f"col_{position}_cleaned"


def normalize_table_name(name: str) -> str:
    cleaned = clean_identifier(name or "")
    return cleaned or f"table_{_short_hash(name or '')}"


def _with_suffix(base: str, counter: int) -> str:
    suffix = f"_{counter}"
    return base[: MAX_IDENTIFIER_LENGTH - len(suffix)] + suffix


def normalize_headers(headers: list[str]) -> HeaderMapping:
    """Normalize a full header set, disambiguating duplicates with _1, _2, ...

    Duplicates are resolved in first-seen order. System column names count as
    already taken, so a header "ID" becomes "id_1".
    """
    result = HeaderMapping()
    seen = set(SYSTEM_COLUMNS)

    for position, header in enumerate(headers):
        base = normalize_column(header, position)
        if header is None or not header.strip() or _NON_ASCII.search(header):
            logger.info("Column %d: %r -> %r", position, header, base)

        final = base
        counter = 1
        while final in seen:
            final = _with_suffix(base, counter)
            counter += 1

        seen.add(final)
        result.columns.append(final)
        result.mapping.setdefault(header, final)

    logger.debug("Normalized columns: %s", ", ".join(result.columns))
    return result

"""CSV tokenization for exported tables.

The first record holds the headers; every following record becomes a
RawRecord. Tokenization is quote-aware across line breaks, so a quoted field
may contain commas, doubled quotes and literal newlines.
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from tablesync.types import RawRecord

logger = logging.getLogger(__name__)

_BOM = "\ufeff"


@dataclass(frozen=True)
class ParseWarning:
    """A data record that was dropped during parsing."""

    line: int
    expected: int
    actual: int
    reason: str = "column count mismatch"


@dataclass
class ParsedCsv:
    headers: list[str] = field(default_factory=list)
    records: list[RawRecord] = field(default_factory=list)
    warnings: list[ParseWarning] = field(default_factory=list)

    def as_dicts(self) -> list[dict[str, str | None]]:
        """Header -> value view of the records (later duplicate headers win)."""
        return [dict(zip(self.headers, record)) for record in self.records]


def _clean_header(value: str) -> str:
    return value.replace("\r", "").strip()


def _clean_value(value: str) -> str | None:
    value = value.replace("\r", "").strip()
    return value or None


def _is_blank(row: list[str]) -> bool:
    # A lone quoted empty field ("") is a real one-column record, not a blank line.
    return not row or (len(row) == 1 and row[0] != "" and not row[0].strip())


def _add_record(result: ParsedCsv, row: list[str]) -> bool:
    if len(row) != len(result.headers):
        return False
    result.records.append(tuple(_clean_value(v) for v in row))
    return True


def _drop_record(result: ParsedCsv, row: list[str], line: int) -> None:
    logger.warning(
        "Line %d: column mismatch - expected %d, got %d. Row dropped.",
        line,
        len(result.headers),
        len(row),
    )
    result.warnings.append(ParseWarning(line, len(result.headers), len(row)))


def _reparse_lines(result: ParsedCsv, lines: list[str], first_line: int) -> None:
    """Tokenize each physical line on its own, keeping the ones that fit."""
    for offset, line in enumerate(lines):
        row = next(csv.reader([line]), [])
        if _is_blank(row):
            continue
        if not _add_record(result, row):
            _drop_record(result, row, first_line + offset)


def parse_csv(text: str) -> ParsedCsv:
    """Parse CSV text into headers and position-aligned records.

    Records whose field count differs from the header count are dropped and
    reported in ``warnings``; they never abort the rest of the parse. When a
    mismatched record spans several physical lines (typically an unbalanced
    quote that ran on past its line), those lines are tokenized one by one so
    only the malformed line is lost.
    """
    result = ParsedCsv()
    if not text or not text.strip():
        return result

    if text.startswith(_BOM):
        text = text[len(_BOM):]

    lines = io.StringIO(text, newline="").readlines()
    reader = csv.reader(lines)
    last_line = 0
    while True:
        first_line = last_line + 1
        try:
            row = next(reader)
        except StopIteration:
            break
        except csv.Error as e:
            logger.warning("Skipping unreadable record at line %d: %s", reader.line_num, e)
            result.warnings.append(
                ParseWarning(reader.line_num, len(result.headers), 0, reason=str(e))
            )
            last_line = reader.line_num
            continue
        last_line = reader.line_num

        if _is_blank(row):
            continue

        if not result.headers:
            result.headers = [_clean_header(h) for h in row]
            continue

        if _add_record(result, row):
            continue
        if last_line > first_line:
            _reparse_lines(result, lines[first_line - 1:last_line], first_line)
        else:
            _drop_record(result, row, last_line)

    logger.debug(
        "Parsed %d records with %d columns (%d dropped)",
        len(result.records),
        len(result.headers),
        len(result.warnings),
    )
    return result


def serialize_records(columns: Sequence[str], records: Iterable[Sequence[object]]) -> str:
    """Serialize records back to CSV text with a header line.

    Fields holding commas, quotes or line breaks are quoted with embedded quotes
    doubled; None becomes an empty field. parse_csv() of the output returns the
    same records.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns)
    for record in records:
        writer.writerow(["" if value is None else value for value in record])
    return buffer.getvalue()

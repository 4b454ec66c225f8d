"""Value coercion for date/time and numeric columns.

Which columns are dates or numbers is decided by a declarative classification
table of (pattern, SemanticType) pairs matched against the normalized column
name. Cleaning never raises: a value that cannot be coerced becomes None and
is recorded as a CleaningWarning.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Sequence

from dateutil import parser as dateparser

from tablesync.types import CleanRecord

logger = logging.getLogger(__name__)


class SemanticType(Enum):
    DATETIME = "datetime"
    NUMERIC = "numeric"
    TEXT = "text"


ClassificationRule = tuple[re.Pattern[str], SemanticType]


def _rules(*pairs: tuple[str, SemanticType]) -> tuple[ClassificationRule, ...]:
    return tuple((re.compile(pattern), kind) for pattern, kind in pairs)


# Ordered; the first full match wins.
DEFAULT_RULES: tuple[ClassificationRule, ...] = _rules(
    (r".*_id", SemanticType.NUMERIC),
    (r".*_by", SemanticType.TEXT),
    (r".*_date", SemanticType.DATETIME),
    (r".*_time", SemanticType.DATETIME),
    (r"date", SemanticType.DATETIME),
    (r"time", SemanticType.DATETIME),
    (r"created.*", SemanticType.DATETIME),
    (r"modified.*", SemanticType.DATETIME),
    (r"updated.*", SemanticType.DATETIME),
    (r"transaction_date", SemanticType.DATETIME),
    (r".*_amount", SemanticType.NUMERIC),
    (r".*_bcy", SemanticType.NUMERIC),
    (r"total", SemanticType.NUMERIC),
    (r"sub_total", SemanticType.NUMERIC),
    (r"quantity", SemanticType.NUMERIC),
    (r"balance", SemanticType.NUMERIC),
    (r"age_in_days", SemanticType.NUMERIC),
    (r"price", SemanticType.NUMERIC),
    (r"cost", SemanticType.NUMERIC),
    (r"rate", SemanticType.NUMERIC),
    (r"discount", SemanticType.NUMERIC),
)

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

DATE_FORMAT = "%Y-%m-%d"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_DAY_MONTH_YEAR = re.compile(r"^(\d{1,2})\s+([A-Za-z]{3})\s+(\d{4})$")
_ISO_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2}$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

CURRENCY_CODES = (
    "SAR", "AED", "BHD", "KWD", "OMR", "QAR", "EGP", "USD", "EUR", "GBP",
    "INR", "JPY", "CNY", "CAD", "AUD", "CHF",
)

_CURRENCY_PREFIX = re.compile(r"^(?:(?:%s)\s*|[$€£¥]\s*)" % "|".join(CURRENCY_CODES))
_NUMBER_LIKE = re.compile(r"^[-+]?(?:\d[\d,.\s]*|\.\d+)$")
_LEADING_ZERO = re.compile(r"^[-+]?0\d")


def classify_column(column: str, rules: Sequence[ClassificationRule] = DEFAULT_RULES) -> SemanticType:
    for pattern, kind in rules:
        if pattern.fullmatch(column):
            return kind
    return SemanticType.TEXT


def parse_datetime_value(text: str) -> datetime:
    """Parse a date in one of the known export formats, falling back to dateutil.

    Raises ValueError (or OverflowError from dateutil) when nothing matches.
    """
    value = text.strip()

    match = _DAY_MONTH_YEAR.match(value)
    if match:
        day, month, year = match.groups()
        month_number = MONTHS.get(month.lower())
        if month_number is None:
            raise ValueError(f"unknown month abbreviation {month!r}")
        return datetime(int(year), month_number, int(day))

    if _ISO_DATETIME.match(value):
        return datetime.strptime(" ".join(value.split()), DATETIME_FORMAT)

    if _ISO_DATE.match(value):
        return datetime.strptime(value, DATE_FORMAT)

    return dateparser.parse(value)


def parse_number(text: str) -> int | float | None:
    """Parse a number that may carry a currency prefix and locale-specific grouping.

    When both ',' and '.' appear, the later one is the decimal point. A lone ','
    is a decimal point when at most two digits follow it, otherwise a
    thousands separator. Values without a decimal part come back as exact ints,
    so long identifiers keep every digit. Returns None for anything that is not
    number-like.
    """
    value = _CURRENCY_PREFIX.sub("", text.strip(), count=1)
    if not _NUMBER_LIKE.match(value):
        return None

    value = re.sub(r"\s", "", value)
    if "," in value and "." in value:
        if value.rfind(".") > value.rfind(","):
            value = value.replace(",", "")
        else:
            value = value.replace(".", "").replace(",", ".")
    elif "," in value:
        after_comma = value[value.index(",") + 1:]
        if after_comma.isdigit() and len(after_comma) <= 2:
            value = value.replace(",", ".")
        else:
            value = value.replace(",", "")
    elif value.count(".") > 1:
        value = value.replace(".", "")

    try:
        return float(value) if "." in value else int(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class CleaningWarning:
    column: str
    value: str
    reason: str


@dataclass
class ValueCleaner:
    """Coerces values by column semantics, collecting warnings instead of raising."""

    rules: Sequence[ClassificationRule] = DEFAULT_RULES
    warnings: list[CleaningWarning] = field(default_factory=list)

    def classify(self, column: str) -> SemanticType:
        return classify_column(column, self.rules)

    def clean_value(self, column: str, value: Any) -> Any:
        if not isinstance(value, str) or not value.strip():
            return value

        kind = self.classify(column)
        if kind is SemanticType.DATETIME:
            return self._clean_datetime(column, value)

        if kind is SemanticType.TEXT and _LEADING_ZERO.match(value.strip()):
            return value  # codes such as phone numbers keep their leading zeros

        number = parse_number(value)
        if number is not None:
            return number

        if kind is SemanticType.NUMERIC and value.strip() != "-":
            self._warn(column, value, "not a number")
            return None
        return value

    def clean_record(self, columns: Sequence[str], values: Sequence[Any]) -> CleanRecord:
        return tuple(self.clean_value(column, value) for column, value in zip(columns, values))

    def _clean_datetime(self, column: str, value: str) -> str | None:
        try:
            parsed = parse_datetime_value(value)
        except (ValueError, OverflowError) as e:
            self._warn(column, value, f"not a date ({e})")
            return None

        if "_time" in column or ":" in value:
            return parsed.strftime(DATETIME_FORMAT)
        return parsed.strftime(DATE_FORMAT)

    def _warn(self, column: str, value: str, reason: str) -> None:
        logger.warning("Could not clean %r in column %r: %s. Setting to NULL.", value, column, reason)
        self.warnings.append(CleaningWarning(column, value, reason))

import logging
import math
import re
import unicodedata
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional

from trainee_import.data.dto import CellValue, RawRow

logger = logging.getLogger(__name__)

# Days between the spreadsheet epoch (1899-12-30, 1900 date system) and 1970-01-01.
UNIX_EPOCH_SERIAL = 25569
SECONDS_PER_DAY = 86400
DATE_FORMAT = "%d/%m/%Y"

_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def excel_serial_to_date(serial: float) -> date:
    """
    Spreadsheet serial -> calendar date, 1900 date system.
    Fractional (time-of-day) parts are dropped; 44927 -> 2023-01-01, 1 -> 1899-12-31.
    """
    epoch_days = math.floor(serial - UNIX_EPOCH_SERIAL)
    unix_seconds = epoch_days * SECONDS_PER_DAY
    return (_UNIX_EPOCH + timedelta(seconds=unix_seconds)).date()


def format_serial_date(serial: float) -> str:
    return excel_serial_to_date(serial).strftime(DATE_FORMAT)


def column_key(header: Optional[str]) -> str:
    """Case, accent and punctuation insensitive key: 'Date of Birth' == 'DateOfBirth' == 'date_of_birth'."""
    if header is None:
        return ""
    normalized = unicodedata.normalize("NFKD", str(header))
    normalized = "".join(ch for ch in normalized if unicodedata.category(ch) != "Mn")
    normalized = normalized.lower()
    return re.sub(r"[\W_]+", "", normalized, flags=re.UNICODE)


class FieldNormalizer:
    """
    Applies targeted coercions to known date columns of a record set.
    Numeric cells become dd/mm/yyyy strings; string cells are kept verbatim.
    Never raises: anything that cannot be coerced stays raw and is left for the backend to reject.
    """

    def __init__(self, date_columns: Iterable[str]):
        self.date_columns = list(date_columns)
        self._keys = {column_key(c) for c in self.date_columns}

    def is_date_column(self, header: str) -> bool:
        return column_key(header) in self._keys

    def normalize_value(self, column: str, value: CellValue) -> CellValue:
        if not self.is_date_column(column):
            return value
        # bool is an int subclass but never a date serial
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return value
        try:
            return format_serial_date(value)
        except (ValueError, OverflowError) as exc:
            logger.debug(f"Leaving unconvertible date value in '{column}': {value!r} ({exc})")
            return value

    def normalize_rows(self, rows: List[RawRow]) -> List[RawRow]:
        """Normalizes in place and returns the same list; row numbers are untouched."""
        if not self._keys:
            return rows
        for row in rows:
            for column, value in row.values.items():
                row.values[column] = self.normalize_value(column, value)
        return rows

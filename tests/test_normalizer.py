import math

import pytest

from trainee_import.data.dto import RawRow
from trainee_import.data.normalizer import (
    FieldNormalizer,
    column_key,
    excel_serial_to_date,
    format_serial_date,
)


@pytest.mark.parametrize(
    "serial, expected",
    [(44927, "01/01/2023"), (1, "31/12/1899"), (25569, "01/01/1970"), (44927.75, "01/01/2023")],
)
def test_serial_dates(serial, expected):
    assert format_serial_date(serial) == expected


def test_serial_date_returns_calendar_date():
    assert excel_serial_to_date(36526).isoformat() == "2000-01-01"


def test_column_key_ignores_case_accents_and_punctuation():
    assert column_key("Date of Birth") == column_key("date_of_birth") == column_key("DateOfBirth")
    assert column_key("Éxp-Date") == "expdate"


def test_only_numeric_cells_in_date_columns_are_converted():
    normalizer = FieldNormalizer(["DateOfBirth"])
    assert normalizer.normalize_value("DateOfBirth", 44927) == "01/01/2023"
    assert normalizer.normalize_value("DateOfBirth", "15/03/1990") == "15/03/1990"
    assert normalizer.normalize_value("DateOfBirth", True) is True
    assert normalizer.normalize_value("DateOfBirth", None) is None
    assert normalizer.normalize_value("Score", 44927) == 44927


def test_unconvertible_values_stay_raw():
    normalizer = FieldNormalizer(["DateOfBirth"])
    assert math.isnan(normalizer.normalize_value("DateOfBirth", float("nan")))
    assert normalizer.normalize_value("DateOfBirth", 1e20) == 1e20


def test_normalize_rows_keeps_row_numbers():
    rows = [
        RawRow(row_number=1, values={"Name": "Alice", "date_of_birth": 44927}),
        RawRow(row_number=4, values={"Name": "Bob", "date_of_birth": "n/a"}),
    ]
    FieldNormalizer(["DateOfBirth"]).normalize_rows(rows)
    assert [r.row_number for r in rows] == [1, 4]
    assert rows[0].values["date_of_birth"] == "01/01/2023"
    assert rows[1].values["date_of_birth"] == "n/a"

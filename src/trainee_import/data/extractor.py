import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from trainee_import.config import SheetSettings, settings
from trainee_import.data.dto import CellValue, RawRow, SheetRows, Workbook
from trainee_import.exceptions import EmptySheet, MissingRequiredSheet

logger = logging.getLogger(__name__)


def extract_sheet(workbook: Workbook, sheet_name: str, required: bool = False) -> SheetRows:
    """
    Converts one sheet into row-numbered RawRows.
    The first row is the header; data rows are numbered from 1 in visual order.
    Fully blank rows are dropped but keep their number slot, so row N here is
    always spreadsheet row N + 1.
    """
    if not workbook.has_sheet(sheet_name):
        if required:
            raise MissingRequiredSheet(sheet_name)
        logger.info(f"Optional sheet '{sheet_name}' not present", extra={"sheet": sheet_name})
        return SheetRows(sheet_name=sheet_name, present=False)

    grid = workbook.grid(sheet_name)
    if not grid:
        if required:
            raise EmptySheet(sheet_name)
        return SheetRows(sheet_name=sheet_name)

    headers = build_headers(grid[0])
    rows: List[RawRow] = []
    for row_number, raw in enumerate(grid[1:], start=1):
        if _is_blank(raw):
            continue
        values: Dict[str, CellValue] = {}
        for idx, header in enumerate(headers):
            values[header] = raw[idx] if idx < len(raw) else None
        rows.append(RawRow(row_number=row_number, values=values))

    if not rows and required:
        raise EmptySheet(sheet_name)

    # Displayable columns follow the first data row's keys
    columns = list(rows[0].values.keys()) if rows else []
    logger.info(
        f"Extracted {len(rows)} rows from '{sheet_name}'",
        extra={"sheet": sheet_name, "columns": columns},
    )
    return SheetRows(sheet_name=sheet_name, columns=columns, rows=rows)


def extract_batch(workbook: Workbook, sheet_settings: Optional[SheetSettings] = None) -> Tuple[SheetRows, SheetRows]:
    sheet_settings = sheet_settings or settings.sheets
    trainees = extract_sheet(workbook, sheet_settings.trainee_sheet, required=True)
    certificates = extract_sheet(workbook, sheet_settings.certificate_sheet, required=False)
    return trainees, certificates


def build_headers(header_row: Sequence[Any]) -> List[str]:
    """Header cells -> unique column names. Trailing blank header cells are dropped."""
    cells = list(header_row)
    while cells and _safe_str(cells[-1]) is None:
        cells.pop()

    headers: List[str] = []
    seen: Dict[str, int] = {}
    for idx, cell in enumerate(cells, start=1):
        name = _safe_str(cell) or f"Column_{idx}"
        if name in seen:
            seen[name] += 1
            candidate = f"{name}_{seen[name]}"
            while candidate in seen:
                seen[name] += 1
                candidate = f"{name}_{seen[name]}"
            name = candidate
        seen.setdefault(name, 0)
        headers.append(name)
    return headers


def _is_blank(row: Sequence[Any]) -> bool:
    return all(cell is None or (isinstance(cell, str) and cell.strip() == "") for cell in row)


def _safe_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None

import io
import logging
import math
import mimetypes
import zipfile
from datetime import date, datetime, time
from pathlib import PurePath
from typing import Any, Dict, List, Optional
from xml.etree.ElementTree import ParseError

import xlrd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.utils.datetime import CALENDAR_MAC_1904, CALENDAR_WINDOWS_1900, to_excel
from xlrd.compdoc import CompDocError

from trainee_import.config import UploadSettings, settings
from trainee_import.data.dto import CellValue, SpreadsheetUpload, Workbook
from trainee_import.exceptions import CorruptWorkbook, FileTooLarge, UnsupportedFileType

logger = logging.getLogger(__name__)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLSM_MIME = "application/vnd.ms-excel.sheet.macroEnabled.12"
XLS_MIME = "application/vnd.ms-excel"
EXCEL_MIME_TYPES = {XLSX_MIME, XLSM_MIME, XLS_MIME}
GENERIC_MIME_TYPES = {"", "application/octet-stream", "application/zip", "application/x-zip-compressed"}
NON_EXCEL_SHEET_PREFIX = "application/vnd.oasis.opendocument"

ZIP_SIGNATURE = b"PK\x03\x04"
OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


def is_spreadsheet_mime(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    lowered = content_type.split(";", 1)[0].strip().lower()
    if lowered in EXCEL_MIME_TYPES:
        return True
    if lowered.startswith(NON_EXCEL_SHEET_PREFIX):
        return False
    return "sheet" in lowered or "excel" in lowered


def sniff_container(content: bytes) -> Optional[str]:
    if content.startswith(ZIP_SIGNATURE):
        return "zip"
    if content.startswith(OLE2_SIGNATURE):
        return "ole2"
    return None


def check_upload(upload: SpreadsheetUpload, upload_settings: Optional[UploadSettings] = None) -> str:
    """
    Validates the declared/inferred type and size of an upload before any decoding.
    Returns the container kind ("zip" | "ole2").
    """
    upload_settings = upload_settings or settings.uploads
    declared = (upload.content_type or "").split(";", 1)[0].strip().lower()
    suffix = PurePath(upload.file_name or "").suffix.lower()
    accepted_suffixes = {s.lower() for s in upload_settings.accepted_extensions}

    if is_spreadsheet_mime(declared):
        pass
    elif declared in GENERIC_MIME_TYPES:
        guessed, _ = mimetypes.guess_type(upload.file_name or "")
        inferable = suffix in accepted_suffixes or is_spreadsheet_mime(guessed)
        if not inferable and sniff_container(upload.content) is None:
            raise UnsupportedFileType(
                f"Only accept Excel (.xlsx, .xls) file. Got '{upload.file_name}'"
            )
    else:
        raise UnsupportedFileType(f"Only accept Excel (.xlsx, .xls) file. Got type '{declared}'")

    max_bytes = upload_settings.max_upload_mb * 1024 * 1024
    if max_bytes and upload.size > max_bytes:
        raise FileTooLarge(f"File too large; max {upload_settings.max_upload_mb}MB")

    container = sniff_container(upload.content)
    if container is None:
        raise CorruptWorkbook(f"'{upload.file_name}' is not a readable Excel workbook")
    return container


def read_workbook(upload: SpreadsheetUpload, upload_settings: Optional[UploadSettings] = None) -> Workbook:
    container = check_upload(upload, upload_settings)
    if container == "zip":
        workbook = _read_zip_workbook(upload)
    else:
        workbook = _read_ole2_workbook(upload)

    if workbook.date_system == 1904:
        logger.warning(
            "workbook uses the 1904 date system; numeric date cells are converted with the 1900 offset",
            extra={"file_name": upload.file_name},
        )
    logger.info(
        f"Decoded workbook {upload.file_name}: sheets={workbook.sheet_names}",
        extra={"file_name": upload.file_name, "size": upload.size},
    )
    return workbook


def _read_zip_workbook(upload: SpreadsheetUpload) -> Workbook:
    try:
        wb = load_workbook(io.BytesIO(upload.content), data_only=True, read_only=True)
    except (zipfile.BadZipFile, InvalidFileException, ParseError, KeyError, OSError, ValueError, TypeError) as exc:
        raise CorruptWorkbook(f"Cannot decode '{upload.file_name}': {exc}") from exc

    try:
        epoch = wb.epoch
        date_system = 1904 if epoch == CALENDAR_MAC_1904 else 1900
        sheets: Dict[str, List[List[CellValue]]] = {}
        for ws in wb.worksheets:
            sheets[ws.title] = [
                [_coerce_cell(value, epoch) for value in row]
                for row in ws.iter_rows(values_only=True)
            ]
    finally:
        wb.close()
    return Workbook(sheets=sheets, date_system=date_system)


def _read_ole2_workbook(upload: SpreadsheetUpload) -> Workbook:
    try:
        book = xlrd.open_workbook(file_contents=upload.content)
    except (xlrd.XLRDError, CompDocError, AssertionError, IndexError, ValueError) as exc:
        raise CorruptWorkbook(f"Cannot decode '{upload.file_name}': {exc}") from exc

    sheets: Dict[str, List[List[CellValue]]] = {}
    for ws in book.sheets():
        grid: List[List[CellValue]] = []
        for row_idx in range(ws.nrows):
            grid.append([_xls_cell(ws.cell(row_idx, col_idx)) for col_idx in range(ws.ncols)])
        sheets[ws.name] = grid
    return Workbook(sheets=sheets, date_system=1904 if book.datemode == 1 else 1900)


def _xls_cell(cell: Any) -> CellValue:
    ctype = cell.ctype
    if ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return None
    if ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    if ctype == xlrd.XL_CELL_ERROR:
        return xlrd.error_text_from_code.get(cell.value, "#ERR")
    if ctype in (xlrd.XL_CELL_NUMBER, xlrd.XL_CELL_DATE):
        return _compact_number(cell.value)
    return _coerce_cell(cell.value)


def _coerce_cell(value: Any, epoch: datetime = CALENDAR_WINDOWS_1900) -> CellValue:
    """
    Maps decoded cell values onto the raw variant. Date cells go back to the serial
    stored in the file, counted from the workbook's own epoch.
    """
    if value is None or isinstance(value, (bool, str)):
        return value if value != "" else None
    if isinstance(value, (datetime, date)):
        return _compact_number(to_excel(value, epoch))
    if isinstance(value, time):
        return float(to_excel(value))
    if isinstance(value, (int, float)):
        return _compact_number(value)
    return str(value)


def _compact_number(value: float) -> CellValue:
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return value

from trainee_import.data.extractor import extract_batch, extract_sheet
from trainee_import.data.normalizer import FieldNormalizer, excel_serial_to_date, format_serial_date
from trainee_import.data.workbook import read_workbook

__all__ = [
    "FieldNormalizer",
    "excel_serial_to_date",
    "extract_batch",
    "extract_sheet",
    "format_serial_date",
    "read_workbook",
]

from trainee_import.data.dto import ImportBatch, RawRow, SheetRows, SpreadsheetUpload
from trainee_import.services.session import ImportSession, PreviewTable, RecordSet, SessionState
from trainee_import.services.submitter import CancellationToken, ImportSubmitter

__all__ = [
    "CancellationToken",
    "ImportBatch",
    "ImportSession",
    "ImportSubmitter",
    "PreviewTable",
    "RawRow",
    "RecordSet",
    "SessionState",
    "SheetRows",
    "SpreadsheetUpload",
]

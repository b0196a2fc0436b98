from typing import Optional


class TraineeImportError(Exception):
    """Base exception for trainee import errors."""
    pass

class ConfigError(TraineeImportError):
    """Configuration loading specific errors."""
    pass


class WorkbookError(TraineeImportError):
    """Local parse errors. Recoverable by selecting a different file."""
    pass

class UnsupportedFileType(WorkbookError):
    pass

class FileTooLarge(WorkbookError):
    pass

class CorruptWorkbook(WorkbookError):
    pass

class MissingRequiredSheet(WorkbookError):
    def __init__(self, sheet_name: str):
        super().__init__(f"Cannot find sheet '{sheet_name}'")
        self.sheet_name = sheet_name

class EmptySheet(WorkbookError):
    def __init__(self, sheet_name: str):
        super().__init__(f"'{sheet_name}' sheet has no data")
        self.sheet_name = sheet_name


class SubmissionError(TraineeImportError):
    """The batch did not produce an import summary."""
    pass

class ImportTransportError(SubmissionError):
    """The request never reached the server or no response came back."""
    pass

class ImportRejected(SubmissionError):
    """The server understood the request but refused it wholesale."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

class ImportCancelled(SubmissionError):
    pass


class MalformedSummary(TraineeImportError):
    """Backend summary violates the import contract."""
    pass


class SessionStateError(TraineeImportError):
    """Operation not allowed in the current session state."""
    pass

class SubmissionInProgress(SessionStateError):
    pass

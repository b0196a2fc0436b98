from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

import pandas as pd

from trainee_import.config import Settings, settings as default_settings
from trainee_import.data.dto import ImportBatch, RawRow, ReconciledImport, SheetRows, SpreadsheetUpload
from trainee_import.data.extractor import extract_batch
from trainee_import.data.normalizer import FieldNormalizer
from trainee_import.data.workbook import read_workbook
from trainee_import.exceptions import (
    ImportCancelled,
    MalformedSummary,
    SessionStateError,
    SubmissionInProgress,
)
from trainee_import.services.reconciler import reconcile_batch
from trainee_import.services.submitter import CancellationToken, ImportSubmitter

logger = logging.getLogger(__name__)

EMPTY_CELL = "-"


class SessionState(str, Enum):
    IDLE = "idle"
    PREVIEWING = "previewing"
    SUBMITTING = "submitting"
    RECONCILED = "reconciled"


class RecordSet(str, Enum):
    TRAINEES = "trainees"
    CERTIFICATES = "certificates"

    @property
    def display_name(self) -> str:
        return "Trainee" if self is RecordSet.TRAINEES else "External Certificate"


@dataclass
class PreviewTable:
    record_set: RecordSet
    sheet_name: str
    columns: list[str]
    rows: list[RawRow]

    @property
    def count(self) -> int:
        return len(self.rows)

    @property
    def heading(self) -> str:
        return f"{self.record_set.display_name} Data ({self.count})"

    def to_frame(self) -> pd.DataFrame:
        records = [
            {col: _display(row.values.get(col)) for col in self.columns}
            for row in self.rows
        ]
        frame = pd.DataFrame(
            records,
            columns=self.columns,
            index=pd.Index([row.row_number for row in self.rows], name="Row"),
            dtype=object,
        )
        return frame


def _display(value):
    return EMPTY_CELL if value is None or value == "" else value


def prepare_batch(upload: SpreadsheetUpload, settings: Settings) -> ImportBatch:
    """Reader -> Extractor -> Normalizer. Builds a fresh batch; raises on the first failing step."""
    workbook = read_workbook(upload, settings.uploads)
    trainees, certificates = extract_batch(workbook, settings.sheets)
    FieldNormalizer(settings.sheets.trainee_date_columns).normalize_rows(trainees.rows)
    FieldNormalizer(settings.sheets.certificate_date_columns).normalize_rows(certificates.rows)
    return ImportBatch(
        upload=upload,
        trainees=trainees,
        certificates=certificates,
        date_system=workbook.date_system,
    )


class ImportSession:
    """
    Owns the single ImportBatch and is its only writer.
    Idle -> Previewing -> Submitting -> Reconciled; reset() returns to Idle from anywhere.
    A second submit while Submitting is refused without touching the network, and a
    response arriving after reset() is dropped instead of overwriting newer state.
    """

    def __init__(self, submitter: Optional[ImportSubmitter] = None, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.submitter = submitter or ImportSubmitter.from_settings(self.settings)
        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._batch: Optional[ImportBatch] = None
        self._result: Optional[ReconciledImport] = None
        self._error: Optional[str] = None
        self._cancel: Optional[CancellationToken] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def batch(self) -> Optional[ImportBatch]:
        return self._batch

    @property
    def upload(self) -> Optional[SpreadsheetUpload]:
        return self._batch.upload if self._batch else None

    @property
    def result(self) -> Optional[ReconciledImport]:
        return self._result

    @property
    def error(self) -> Optional[str]:
        return self._error

    def load(self, upload: SpreadsheetUpload) -> ImportBatch:
        with self._lock:
            if self._state in (SessionState.SUBMITTING, SessionState.RECONCILED):
                raise SessionStateError(f"Cannot load a file while {self._state.value}; reset first")
            batch = prepare_batch(upload, self.settings)
            self._batch = batch
            self._result = None
            self._error = None
            self._state = SessionState.PREVIEWING
            logger.info(
                f"Excel file loaded: trainees={len(batch.trainees)} certificates={len(batch.certificates)}",
                extra={"file_name": upload.file_name, "batch_id": batch.batch_id},
            )
            return batch

    def load_path(self, path: Path, content_type: Optional[str] = None) -> ImportBatch:
        return self.load(SpreadsheetUpload.from_path(path, content_type=content_type))

    def view(self, record_set: RecordSet = RecordSet.TRAINEES) -> PreviewTable:
        with self._lock:
            if self._batch is None:
                raise SessionStateError("Please upload an Excel file first.")
            rows = self._rows_for(self._batch, RecordSet(record_set))
            return PreviewTable(
                record_set=RecordSet(record_set),
                sheet_name=rows.sheet_name,
                columns=list(rows.columns),
                rows=list(rows.rows),
            )

    def counts(self) -> dict[RecordSet, int]:
        with self._lock:
            if self._batch is None:
                return {RecordSet.TRAINEES: 0, RecordSet.CERTIFICATES: 0}
            return {
                RecordSet.TRAINEES: len(self._batch.trainees),
                RecordSet.CERTIFICATES: len(self._batch.certificates),
            }

    def submit(self, token: Optional[str]) -> ReconciledImport:
        with self._lock:
            if self._state is SessionState.SUBMITTING:
                raise SubmissionInProgress("An import is already in progress for this file")
            if self._state is not SessionState.PREVIEWING or self._batch is None:
                raise SessionStateError("Please upload an Excel file first.")
            if self._batch.trainees.is_empty:
                raise SessionStateError("Trainee rows are required before importing")
            batch = self._batch
            cancel_token = CancellationToken()
            self._cancel = cancel_token
            self._error = None
            self._state = SessionState.SUBMITTING

        try:
            response = self.submitter.submit(batch.upload, token, cancel_token=cancel_token)
        except MalformedSummary as exc:
            self._close_with_error(cancel_token, exc)
            raise
        except Exception as exc:
            with self._lock:
                if self._cancel is cancel_token:
                    # File and preview stay valid for a retry
                    self._cancel = None
                    self._error = str(exc)
                    self._state = SessionState.PREVIEWING
            raise

        with self._lock:
            if self._cancel is not cancel_token or cancel_token.cancelled:
                logger.info("Discarding import response for a batch that was reset", extra={"batch_id": batch.batch_id})
                raise ImportCancelled("Import response discarded after reset")
            try:
                reconciled = reconcile_batch(response, batch)
            except MalformedSummary as exc:
                self._close_with_error(cancel_token, exc)
                raise
            self._cancel = None
            self._result = reconciled
            self._state = SessionState.RECONCILED
            logger.info(
                f"Import reconciled: trainee failures={reconciled.trainees.failure_count} "
                f"certificate failures={reconciled.certificates.failure_count}",
                extra={"batch_id": batch.batch_id},
            )
            return reconciled

    def reset(self) -> None:
        with self._lock:
            if self._cancel is not None:
                self._cancel.cancel()
            self._cancel = None
            self._batch = None
            self._result = None
            self._error = None
            self._state = SessionState.IDLE

    def _close_with_error(self, cancel_token: CancellationToken, exc: Exception) -> None:
        # The backend processed the file; the batch closes so it is not resent.
        with self._lock:
            if self._cancel is not cancel_token:
                return
            self._cancel = None
            self._result = None
            self._error = str(exc)
            self._state = SessionState.RECONCILED
            logger.error(f"Reconciliation error: {exc}")

    @staticmethod
    def _rows_for(batch: ImportBatch, record_set: RecordSet) -> SheetRows:
        if record_set is RecordSet.TRAINEES:
            return batch.trainees
        return batch.certificates

import logging
from typing import Dict, List, Optional

from trainee_import.data.dto import (
    ImportBatch,
    ReconciledImport,
    ReconciledRecordSet,
    ReconciledRow,
    SheetRows,
)
from trainee_import.data.models import ImportResponse, ImportSummary
from trainee_import.exceptions import MalformedSummary

logger = logging.getLogger(__name__)

TRAINEE_LABEL = "Trainee Import"
CERTIFICATE_LABEL = "External Certificate Import"


def validate_summary(summary: ImportSummary, label: str) -> Dict[int, str]:
    """
    Checks the backend summary contract and returns row_number -> reason.
    Raises MalformedSummary rather than rendering a miscounted result.
    """
    if min(summary.total_rows, summary.success_count, summary.failure_count) < 0:
        raise MalformedSummary(f"{label}: negative counts in summary")
    if not summary.counts_consistent:
        raise MalformedSummary(
            f"{label}: successCount ({summary.success_count}) + failureCount "
            f"({summary.failure_count}) != totalRows ({summary.total_rows})"
        )
    if len(summary.errors) > summary.failure_count:
        raise MalformedSummary(
            f"{label}: {len(summary.errors)} row errors listed but failureCount is {summary.failure_count}"
        )

    reasons: Dict[int, str] = {}
    for outcome in summary.errors:
        if outcome.row_number in reasons:
            raise MalformedSummary(f"{label}: row {outcome.row_number} reported more than once")
        if not 1 <= outcome.row_number <= summary.total_rows:
            raise MalformedSummary(
                f"{label}: row {outcome.row_number} outside 1..{summary.total_rows}"
            )
        reasons[outcome.row_number] = outcome.reason
    return reasons


def reconcile_record_set(summary: ImportSummary, rows: SheetRows, label: str) -> ReconciledRecordSet:
    reasons = validate_summary(summary, label)

    if summary.total_rows != len(rows.rows):
        # Backend re-parses the file and is authoritative on counts.
        logger.warning(
            f"{label}: backend counted {summary.total_rows} rows, preview had {len(rows.rows)}",
            extra={"sheet": rows.sheet_name},
        )

    reconciled: List[ReconciledRow] = []
    local_numbers = set()
    for row in rows.rows:
        local_numbers.add(row.row_number)
        reason = reasons.get(row.row_number)
        reconciled.append(
            ReconciledRow(
                row_number=row.row_number,
                values=dict(row.values),
                succeeded=row.row_number not in reasons,
                reason=reason,
            )
        )

    for row_number, reason in reasons.items():
        if row_number not in local_numbers:
            reconciled.append(
                ReconciledRow(
                    row_number=row_number,
                    values={},
                    succeeded=False,
                    reason=reason,
                    known_locally=False,
                )
            )
    reconciled.sort(key=lambda r: r.row_number)

    return ReconciledRecordSet(
        label=label,
        total_rows=summary.total_rows,
        success_count=summary.success_count,
        failure_count=summary.failure_count,
        columns=list(rows.columns),
        rows=reconciled,
    )


def reconcile_batch(response: ImportResponse, batch: ImportBatch) -> ReconciledImport:
    if response.data is None:
        raise MalformedSummary("Import response carries no summary data")
    trainees = reconcile_record_set(response.data.trainee_data, batch.trainees, TRAINEE_LABEL)
    certificates = reconcile_record_set(
        response.data.external_certificate_data, batch.certificates, CERTIFICATE_LABEL
    )
    return ReconciledImport(
        message=response.message,
        trainees=trainees,
        certificates=certificates,
        batch_id=batch.batch_id,
    )


def render_record_set(record_set: ReconciledRecordSet) -> List[str]:
    lines = [
        record_set.label,
        f"  Total Rows: {record_set.total_rows}",
        f"  Success: {record_set.success_count}",
        f"  Failures: {record_set.failure_count}",
    ]
    failed = record_set.failed_rows
    if failed:
        lines.append("  Failure Details:")
        for row in failed:
            lines.append(f"    Row {row.row_number}: {row.reason}")
            original = _format_values(row.values, record_set.columns)
            if original:
                lines.append(f"      {original}")
    return lines


def render_summary(reconciled: ReconciledImport, message: Optional[str] = None) -> str:
    lines = ["Import Summary"]
    headline = message if message is not None else reconciled.message
    if headline:
        lines.append(headline)
    lines.extend(render_record_set(reconciled.trainees))
    lines.extend(render_record_set(reconciled.certificates))
    return "\n".join(lines)


def _format_values(values: Dict[str, object], columns: List[str]) -> str:
    parts = []
    for column in columns or list(values.keys()):
        if column not in values:
            continue
        value = values[column]
        parts.append(f"{column}={'-' if value is None or value == '' else value}")
    return ", ".join(parts)

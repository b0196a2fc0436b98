from trainee_import.services.reconciler import reconcile_batch, reconcile_record_set, render_summary
from trainee_import.services.session import ImportSession, PreviewTable, RecordSet, SessionState, prepare_batch
from trainee_import.services.submitter import CancellationToken, ImportSubmitter

__all__ = [
    "CancellationToken",
    "ImportSession",
    "ImportSubmitter",
    "PreviewTable",
    "RecordSet",
    "SessionState",
    "prepare_batch",
    "reconcile_batch",
    "reconcile_record_set",
    "render_summary",
]

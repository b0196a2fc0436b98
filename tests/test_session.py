import pytest
import requests

from builders import FakeResponse, FakeSession, import_payload, make_upload, summary
from trainee_import.exceptions import (
    ImportCancelled,
    ImportRejected,
    ImportTransportError,
    MalformedSummary,
    MissingRequiredSheet,
    SessionStateError,
    SubmissionInProgress,
)
from trainee_import.services.session import ImportSession, RecordSet, SessionState
from trainee_import.services.submitter import ImportSubmitter


def _session(settings, session: FakeSession) -> ImportSession:
    submitter = ImportSubmitter(base_url="http://api.test", session_factory=lambda: session)
    return ImportSession(submitter=submitter, settings=settings)


def test_load_builds_preview(settings):
    fake = FakeSession()
    s = _session(settings, fake)
    s.load(make_upload())

    assert s.state is SessionState.PREVIEWING
    table = s.view(RecordSet.TRAINEES)
    assert table.heading == "Trainee Data (3)"
    assert table.columns == ["Name", "Email", "DateOfBirth"]
    frame = table.to_frame()
    assert frame.loc[1, "DateOfBirth"] == "01/01/2023"
    assert frame.loc[3, "DateOfBirth"] == "15/03/1990"
    assert s.counts() == {RecordSet.TRAINEES: 3, RecordSet.CERTIFICATES: 0}
    assert s.view(RecordSet.CERTIFICATES).heading == "External Certificate Data (0)"
    assert fake.calls == []


def test_empty_cells_render_as_dash(settings):
    s = _session(settings, FakeSession())
    s.load(make_upload({"Trainees": [["Name", "Email"], ["Alice", None]]}))
    assert s.view().to_frame().loc[1, "Email"] == "-"


def test_failed_load_keeps_previous_state(settings):
    s = _session(settings, FakeSession())
    with pytest.raises(MissingRequiredSheet):
        s.load(make_upload({"Sheet1": [["Name"], ["Alice"]]}))
    assert s.state is SessionState.IDLE
    assert s.batch is None


def test_submit_requires_a_loaded_file(settings):
    fake = FakeSession()
    s = _session(settings, fake)
    with pytest.raises(SessionStateError):
        s.submit("tok")
    assert fake.calls == []


def test_successful_submit_reconciles(settings):
    payload = import_payload(summary(3, [(2, "Invalid email")]))
    fake = FakeSession(FakeResponse(200, payload))
    s = _session(settings, fake)
    s.load(make_upload())

    result = s.submit("tok")
    assert s.state is SessionState.RECONCILED
    assert result.trainees.failure_count == 1
    assert result.trainees.failed_rows[0].values["Name"] == "Bob"
    assert s.result is result

    with pytest.raises(SessionStateError):
        s.submit("tok")
    assert len(fake.calls) == 1


def test_second_submit_while_in_flight_is_refused(settings):
    s = None
    seen = {}

    def reenter(fake):
        with pytest.raises(SubmissionInProgress):
            s.submit("tok")
        seen["state"] = s.state

    fake = FakeSession(FakeResponse(200, import_payload(summary(3))), on_post=reenter)
    s = _session(settings, fake)
    s.load(make_upload())
    s.submit("tok")

    assert seen["state"] is SessionState.SUBMITTING
    assert len(fake.calls) == 1


def test_reset_during_flight_discards_late_response(settings):
    s = None
    fake = FakeSession(FakeResponse(200, import_payload(summary(3))), on_post=lambda _: s.reset())
    s = _session(settings, fake)
    s.load(make_upload())

    with pytest.raises(ImportCancelled):
        s.submit("tok")
    assert s.state is SessionState.IDLE
    assert s.result is None
    assert s.batch is None


@pytest.mark.parametrize(
    "fake, expected",
    [
        (FakeSession(error=requests.Timeout("slow")), ImportTransportError),
        (FakeSession(FakeResponse(200, {"success": False, "message": "Bad template"})), ImportRejected),
    ],
)
def test_failed_submit_returns_to_preview_for_retry(settings, fake, expected):
    s = _session(settings, fake)
    s.load(make_upload())
    with pytest.raises(expected):
        s.submit("tok")
    assert s.state is SessionState.PREVIEWING
    assert s.error
    assert s.batch is not None


def test_malformed_summary_closes_batch(settings):
    bad = import_payload({"totalRows": 3, "successCount": 3, "failureCount": 1, "errors": []})
    fake = FakeSession(FakeResponse(200, bad))
    s = _session(settings, fake)
    s.load(make_upload())
    with pytest.raises(MalformedSummary):
        s.submit("tok")
    assert s.state is SessionState.RECONCILED
    assert s.result is None
    assert s.error


def test_reimport_after_reset_starts_clean(settings):
    fake = FakeSession(FakeResponse(200, import_payload(summary(3, [(1, "Bad")]))))
    s = _session(settings, fake)
    s.load(make_upload())
    s.submit("tok")

    with pytest.raises(SessionStateError):
        s.load(make_upload())

    s.reset()
    s.load(make_upload({"Trainees": [["Name"], ["Dana"]]}))
    assert s.state is SessionState.PREVIEWING
    assert s.result is None
    assert s.view().count == 1

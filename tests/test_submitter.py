import pytest
import requests

from builders import FakeResponse, FakeSession, import_payload, summary
from trainee_import.exceptions import (
    ConfigError,
    ImportCancelled,
    ImportRejected,
    ImportTransportError,
    MalformedSummary,
)
from trainee_import.services.submitter import CancellationToken, ImportSubmitter


def _submitter(session: FakeSession) -> ImportSubmitter:
    return ImportSubmitter(base_url="http://api.test/api/", timeout=5, session_factory=lambda: session)


def test_posts_original_file_as_multipart_with_bearer(upload):
    session = FakeSession(FakeResponse(200, import_payload(summary(3))))
    resp = _submitter(session).submit(upload, "tok-123")

    assert resp.success is True
    call = session.calls[0]
    assert call["url"] == "http://api.test/api/User/import-trainees"
    assert call["headers"]["Authorization"] == "Bearer tok-123"
    assert call["timeout"] == 5
    name, content, ctype = call["files"]["file"]
    assert name == upload.file_name
    assert content == upload.content
    assert "sheet" in ctype
    assert session.closed


def test_no_authorization_header_without_token(upload):
    session = FakeSession(FakeResponse(200, import_payload(summary(1))))
    _submitter(session).submit(upload, None)
    assert "Authorization" not in session.calls[0]["headers"]


def test_missing_base_url_is_config_error():
    with pytest.raises(ConfigError):
        ImportSubmitter(base_url="")


def test_connection_failure_is_transport_error(upload):
    session = FakeSession(error=requests.ConnectionError("refused"))
    with pytest.raises(ImportTransportError):
        _submitter(session).submit(upload, "tok")
    assert len(session.calls) == 1
    assert session.closed


def test_http_error_uses_server_message(upload):
    session = FakeSession(FakeResponse(401, {"message": "Token expired"}))
    with pytest.raises(ImportRejected) as exc:
        _submitter(session).submit(upload, "tok")
    assert exc.value.message == "Token expired"
    assert exc.value.status_code == 401


def test_http_error_without_body_has_generic_message(upload):
    session = FakeSession(FakeResponse(500, None))
    with pytest.raises(ImportRejected) as exc:
        _submitter(session).submit(upload, "tok")
    assert exc.value.message == "Import failed from server. (HTTP 500)"


def test_success_false_is_rejection(upload):
    session = FakeSession(FakeResponse(200, {"success": False, "message": "Invalid template"}))
    with pytest.raises(ImportRejected) as exc:
        _submitter(session).submit(upload, "tok")
    assert exc.value.message == "Invalid template"


@pytest.mark.parametrize(
    "payload",
    [
        None,
        ["not", "an", "object"],
        {"message": "missing success"},
        {"success": True, "message": "ok"},
        {"success": True, "data": {"traineeData": {"errors": [{"reason": "no row"}]}}},
    ],
)
def test_unusable_success_body_is_malformed(upload, payload):
    session = FakeSession(FakeResponse(200, payload))
    with pytest.raises(MalformedSummary):
        _submitter(session).submit(upload, "tok")


def test_missing_certificate_summary_defaults_to_empty(upload):
    session = FakeSession(FakeResponse(200, import_payload(summary(2))))
    resp = _submitter(session).submit(upload, "tok")
    assert resp.data.external_certificate_data.total_rows == 0


def test_cancelled_before_send_never_posts(upload):
    session = FakeSession(FakeResponse(200, import_payload(summary(1))))
    token = CancellationToken()
    token.cancel()
    with pytest.raises(ImportCancelled):
        _submitter(session).submit(upload, "tok", cancel_token=token)
    assert session.calls == []


def test_cancel_during_flight_discards_response(upload):
    token = CancellationToken()
    session = FakeSession(FakeResponse(200, import_payload(summary(1))), on_post=lambda s: token.cancel())
    with pytest.raises(ImportCancelled):
        _submitter(session).submit(upload, "tok", cancel_token=token)
    assert session.closed

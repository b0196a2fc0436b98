import logging
import threading
from typing import Callable, Optional

import requests
from pydantic import ValidationError

from trainee_import.data.dto import SpreadsheetUpload
from trainee_import.data.models import ImportResponse
from trainee_import.exceptions import (
    ConfigError,
    ImportCancelled,
    ImportRejected,
    ImportTransportError,
    MalformedSummary,
)

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_MESSAGE = "Import failed from server."


class CancellationToken:
    """
    Cancels one submission. Closing the bound HTTP session drops its pooled
    connections; whatever comes back afterwards is discarded by the caller.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._session: Optional[requests.Session] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def bind(self, session: requests.Session) -> None:
        with self._lock:
            self._session = session
            if self._event.is_set():
                session.close()

    def cancel(self) -> None:
        with self._lock:
            self._event.set()
            if self._session is not None:
                self._session.close()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise ImportCancelled("Submission cancelled")


class ImportSubmitter:
    """
    Uploads the original workbook to the batch-import endpoint as multipart field `file`.
    The backend re-parses the file; nothing from the local preview is sent.
    No retries: transport failures and rejections surface immediately.
    """

    def __init__(
        self,
        base_url: str,
        import_path: str = "/User/import-trainees",
        timeout: float = 120.0,
        session_factory: Optional[Callable[[], requests.Session]] = None,
    ):
        if not base_url:
            raise ConfigError("API base_url must be configured for imports.")
        self.base_url = base_url.rstrip("/")
        self.import_path = "/" + import_path.lstrip("/")
        self.timeout = timeout
        self.session_factory = session_factory or requests.Session

    @classmethod
    def from_settings(cls, settings) -> "ImportSubmitter":
        return cls(
            base_url=settings.api.base_url,
            import_path=settings.api.import_path,
            timeout=settings.api.timeout_seconds,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}{self.import_path}"

    def submit(
        self,
        upload: SpreadsheetUpload,
        token: Optional[str],
        cancel_token: Optional[CancellationToken] = None,
    ) -> ImportResponse:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        files = {
            "file": (
                upload.file_name,
                upload.content,
                upload.content_type or "application/octet-stream",
            )
        }

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        session = self.session_factory()
        if cancel_token is not None:
            cancel_token.bind(session)

        logger.info(
            f"Submitting {upload.file_name} to {self.endpoint}",
            extra={"file_name": upload.file_name, "size": upload.size},
        )
        try:
            resp = session.post(self.endpoint, files=files, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            if cancel_token is not None and cancel_token.cancelled:
                raise ImportCancelled("Submission cancelled") from exc
            logger.error(f"Import request failed: {exc}", extra={"endpoint": self.endpoint})
            raise ImportTransportError(f"Error during import request: {exc}") from exc
        finally:
            session.close()

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        return self._parse_response(resp)

    def _parse_response(self, resp: requests.Response) -> ImportResponse:
        try:
            body = resp.json()
        except ValueError:
            body = None

        if not resp.ok:
            message = self._server_message(body) or f"{DEFAULT_REJECTION_MESSAGE} (HTTP {resp.status_code})"
            logger.warning(
                f"Import rejected: {message}",
                extra={"status": resp.status_code, "endpoint": self.endpoint},
            )
            raise ImportRejected(message, status_code=resp.status_code)

        if not isinstance(body, dict):
            raise MalformedSummary(f"Import response is not a JSON object (HTTP {resp.status_code})")

        try:
            parsed = ImportResponse.model_validate(body)
        except ValidationError as exc:
            raise MalformedSummary(f"Invalid import response: {exc}") from exc

        if not parsed.success:
            raise ImportRejected(parsed.message or DEFAULT_REJECTION_MESSAGE, status_code=resp.status_code)
        if parsed.data is None:
            raise MalformedSummary("Import response carries no summary data")

        logger.info(f"Import accepted: {parsed.message}", extra={"status": resp.status_code})
        return parsed

    @staticmethod
    def _server_message(body) -> Optional[str]:
        if not isinstance(body, dict):
            return None
        for key in ("message", "detail", "title", "error"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

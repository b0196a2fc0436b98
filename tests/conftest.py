from pathlib import Path

import pytest

from builders import TRAINEE_HEADERS, TRAINEE_ROWS, build_xlsx, make_upload
from trainee_import.config import Settings
from trainee_import.data.dto import SpreadsheetUpload


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def upload() -> SpreadsheetUpload:
    return make_upload()


@pytest.fixture
def workbook_file(tmp_path) -> Path:
    path = tmp_path / "trainees.xlsx"
    path.write_bytes(build_xlsx({"Trainees": [TRAINEE_HEADERS, *TRAINEE_ROWS]}))
    return path

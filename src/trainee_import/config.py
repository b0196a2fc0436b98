from pathlib import Path
from typing import Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from trainee_import.exceptions import ConfigError


class AppSettings(BaseSettings):
    name: str = "Trainee Import"
    version: str = "1.0.0"


class ApiSettings(BaseSettings):
    base_url: str = "http://localhost:5000/api"
    import_path: str = "/User/import-trainees"
    timeout_seconds: float = 120.0
    token: Optional[str] = None  # Bearer token; CLI --token wins


class SheetSettings(BaseSettings):
    trainee_sheet: str = "Trainees"
    certificate_sheet: str = "ExternalCertificate"
    trainee_date_columns: list[str] = ["DateOfBirth"]
    certificate_date_columns: list[str] = ["IssueDate", "ExpiryDate", "exp_date"]


class UploadSettings(BaseSettings):
    max_upload_mb: int = 15  # Hard cap checked before decoding
    accepted_extensions: list[str] = [".xlsx", ".xlsm", ".xls"]


class LoggingSettings(BaseSettings):
    format: str = "console"  # console | json
    level: str = "INFO"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TRAINEE_IMPORT_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )
    app: AppSettings = AppSettings()
    api: ApiSettings = ApiSettings()
    sheets: SheetSettings = SheetSettings()
    uploads: UploadSettings = UploadSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        # Load from default path if exists
        default_path = Path("config/settings.yaml")
        path = config_path or (default_path if default_path.exists() else None)

        if not path:
            return cls()
        if not Path(path).exists():
            raise ConfigError(f"config file not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid yaml: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigError(f"config root must be a mapping: {path}")
        return cls(**config_data)

settings = Settings.load()

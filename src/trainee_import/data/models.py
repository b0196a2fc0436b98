from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _ContractModel(BaseModel):
    # Backend speaks camelCase; accept both spellings on input.
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RowOutcome(_ContractModel):
    row_number: int = Field(alias="rowNumber")
    reason: str = ""


class ImportSummary(_ContractModel):
    total_rows: int = Field(default=0, alias="totalRows")
    success_count: int = Field(default=0, alias="successCount")
    failure_count: int = Field(default=0, alias="failureCount")
    errors: list[RowOutcome] = Field(default_factory=list)

    @property
    def counts_consistent(self) -> bool:
        return self.success_count + self.failure_count == self.total_rows


class ImportResultData(_ContractModel):
    trainee_data: ImportSummary = Field(alias="traineeData")
    external_certificate_data: ImportSummary = Field(
        default_factory=ImportSummary, alias="externalCertificateData"
    )


class ImportResponse(_ContractModel):
    success: bool
    message: str = ""
    data: Optional[ImportResultData] = None

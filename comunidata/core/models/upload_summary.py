"""
Result models returned by the CSV reader and the upload entry point.
"""

from pydantic import BaseModel, ConfigDict, Field

from .citizen_report import CitizenReport


FULLY_PROCESSED = "FullyProcessed"
NORMALIZED_ONLY = "NormalizedOnly"


class ParseResult(BaseModel):
    """Reports normalized from one stream plus the number of rows skipped."""

    reports: list[CitizenReport] = Field(default_factory=list)
    skipped_rows: int = Field(0, ge=0)


class UploadSummary(BaseModel):
    """
    Response of one upload.

    Serialized with the camelCase names consumed by the HTTP layer
    (``model_dump(by_alias=True)``).
    """

    model_config = ConfigDict(populate_by_name=True)

    message: str
    total_records: int = Field(..., ge=0, alias="totalRecords")
    normalized_records: int = Field(..., ge=0, alias="normalizedRecords")
    error_records: int = Field(0, ge=0, alias="errorRecords")
    batch_id: str = Field(..., alias="batchId")
    processing_status: str = Field(..., alias="processingStatus")
    skipped_rows: int = Field(0, ge=0, alias="skippedRows")

"""
BatchRun model: progress of one upload, derived from persisted report statuses.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import BatchState


class BatchRun(BaseModel):
    """
    Progress snapshot of an uploaded batch.

    Never stored: it is recomputed from the report store on every status
    query so it always reflects persisted state.

    Attributes:
        batch_id: Upload identifier
        total_records: Reports in the batch
        processed_records: Reports in a terminal status
        completed_records: Reports COMPLETED
        error_records: Reports in ERROR
        completion_percentage: completed / total * 100
        state: Overall batch state
        status_counts: Reports per status display name
    """

    model_config = ConfigDict(populate_by_name=True)

    batch_id: str = Field(..., alias="batchId")
    total_records: int = Field(..., ge=0, alias="totalRecords")
    processed_records: int = Field(..., ge=0, alias="processedRecords")
    completed_records: int = Field(..., ge=0, alias="completedRecords")
    error_records: int = Field(..., ge=0, alias="errorRecords")
    completion_percentage: float = Field(..., ge=0.0, le=100.0, alias="completionPercentage")
    state: BatchState
    status_counts: dict[str, int] = Field(default_factory=dict, alias="statusCounts")

    @field_validator("processed_records")
    @classmethod
    def check_processed_within_total(cls, v, info):
        """Validate that processed never exceeds total."""
        total = info.data.get("total_records")
        if total is not None and v > total:
            raise ValueError(f"processed_records ({v}) exceeds total_records ({total})")
        return v

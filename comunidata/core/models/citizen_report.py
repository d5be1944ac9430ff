"""
CitizenReport model: the durable, enriched unit of citizen-reported data.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator

from comunidata.core.exceptions import InvalidStatusTransitionError

from .enums import ProblemCategory, ProcessingStatus, UrgencyLevel, Zone
from .validation_verdict import ValidationVerdict


ILLEGITIMATE_REPORT_MESSAGE = "Report flagged as illegitimate by the validation service"


class CitizenReport(BaseModel):
    """
    One normalized citizen report and its enrichment state.

    Created by the CSV reader in PENDING state, then advanced in place by the
    validation and embedding stages through the transition methods below.
    Fields are never assigned directly by the stages, so the status machine
    and the "embedding only when completed" rule hold for every instance.

    Attributes:
        record_id: Identifier from the CSV row (not unique across a file)
        age: 0-120, or None when missing or invalid
        city: Word-capitalized city name
        comment: Cleaned comment text
        original_comment: Comment exactly as uploaded (audit)
        category: Problem category, possibly rewritten by validation
        original_category: Raw category cell before validation (audit)
        urgency: Urgency level
        report_date: Calendar date of the report
        government_attention: Whether the government already attended it
        zone: Rural or urban
        bias_detected: Set by the validation service
        bias_description: Explanation of the detected bias
        embedding: Vector from the embedding service (COMPLETED only)
        status: Processing status
        batch_id: Upload the report belongs to
        batch_index: Position of the row within the upload
        error_message: Why the report ended in ERROR
        imported_at: When the row was normalized
        processed_at: When the report reached a terminal status
    """

    record_id: str = ""
    age: int | None = Field(None, ge=0, le=120)
    city: str | None = None
    comment: str | None = None
    original_comment: str | None = None
    category: ProblemCategory | None = None
    original_category: str | None = None
    urgency: UrgencyLevel | None = None
    report_date: date | None = None
    government_attention: bool | None = None
    zone: Zone | None = None
    bias_detected: bool = False
    bias_description: str | None = None
    embedding: list[float] | None = None
    status: ProcessingStatus = ProcessingStatus.PENDING
    batch_id: str = Field(..., min_length=1)
    batch_index: int = Field(..., ge=0)
    error_message: str | None = None
    imported_at: datetime = Field(default_factory=datetime.utcnow)
    processed_at: datetime | None = None

    @model_validator(mode="after")
    def check_embedding_only_when_completed(self):
        """Validate that an embedding is present only on completed reports."""
        if self.embedding and self.status is not ProcessingStatus.COMPLETED:
            raise ValueError(
                f"embedding present but status is {self.status.value}"
            )
        return self

    @property
    def key(self) -> str:
        """Storage key, unique across uploads."""
        return f"{self.batch_id}:{self.batch_index}"

    def _move_to(self, target: ProcessingStatus) -> None:
        if not self.status.can_transition_to(target):
            raise InvalidStatusTransitionError(self.key, self.status.value, target.value)
        self.status = target
        if target.is_terminal:
            self.processed_at = datetime.utcnow()

    def start_validation(self) -> None:
        self._move_to(ProcessingStatus.VALIDATING)

    def apply_verdict(self, verdict: ValidationVerdict) -> None:
        """
        Write a validation verdict onto this report.

        Bias fields are always overwritten; the category only when the
        service named a recognized one. An illegitimate report ends in ERROR.
        """
        self.bias_detected = bool(verdict.bias_detected)
        self.bias_description = verdict.bias_description

        validated = ProblemCategory.from_string(verdict.validated_category)
        if validated is not None:
            self.category = validated

        if verdict.legitimate is False:
            self.fail(ILLEGITIMATE_REPORT_MESSAGE)
        else:
            self._move_to(ProcessingStatus.VALIDATED)

    def start_embedding(self) -> None:
        self._move_to(ProcessingStatus.EMBEDDING)

    def complete(self, embedding: list[float]) -> None:
        self._move_to(ProcessingStatus.COMPLETED)
        self.embedding = list(embedding)
        self.error_message = None

    def fail(self, message: str) -> None:
        """Move to ERROR with a human-readable reason; drops any embedding."""
        self._move_to(ProcessingStatus.ERROR)
        self.embedding = None
        self.error_message = message

    class Config:
        json_schema_extra = {
            "example": {
                "record_id": "17",
                "age": 34,
                "city": "Manizales",
                "comment": "The health center has no medicines.",
                "original_comment": "  The health center has no medicines!!! ###",
                "category": "Health",
                "original_category": "Salud",
                "urgency": "High",
                "report_date": "2023-08-11",
                "government_attention": False,
                "zone": "Urban",
                "bias_detected": False,
                "status": "Pending",
                "batch_id": "5f1c9a0e-3b7d-4f8e-9a51-1d2f3c4b5a69",
                "batch_index": 16,
            }
        }

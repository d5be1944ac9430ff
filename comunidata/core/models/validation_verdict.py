"""
ValidationVerdict model: one entry of the validation service's JSON array (ephemeral).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ValidationVerdict(BaseModel):
    """
    Per-report answer from the bias/category validation service.

    Attributes:
        id: record_id of the report the verdict is about
        bias_detected: Whether the comment shows bias
        bias_description: What the bias is, if any
        validated_category: Category the service considers correct
        legitimate: False when the report looks like spam or is illegitimate
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1)
    bias_detected: bool | None = Field(None, alias="biasDetected")
    bias_description: str | None = Field(None, alias="biasDescription")
    validated_category: str | None = Field(None, alias="validatedCategory")
    legitimate: bool | None = Field(None, alias="isLegitimate")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id_to_str(cls, v: Any) -> Any:
        """Models sometimes echo numeric identifiers as JSON numbers."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(int(v)) if float(v).is_integer() else str(v)
        return v

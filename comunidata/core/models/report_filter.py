"""
ReportFilter model: equality and range criteria understood by every report store.
"""

from datetime import date

from pydantic import BaseModel, Field, model_validator

from .citizen_report import CitizenReport
from .enums import ProblemCategory, ProcessingStatus, UrgencyLevel, Zone


class ReportFilter(BaseModel):
    """
    Conjunction of optional criteria; unset criteria match everything.

    List-valued criteria match when the report's value is any of the listed
    values (the original single-value queries are lists of one).
    """

    min_age: int | None = Field(None, ge=0, le=120)
    max_age: int | None = Field(None, ge=0, le=120)
    cities: list[str] | None = None
    categories: list[ProblemCategory] | None = None
    urgencies: list[UrgencyLevel] | None = None
    start_date: date | None = None
    end_date: date | None = None
    government_attention: bool | None = None
    zone: Zone | None = None
    bias_detected: bool | None = None
    statuses: list[ProcessingStatus] | None = None
    batch_id: str | None = None

    @model_validator(mode="after")
    def check_ranges(self):
        """Validate that range bounds are ordered."""
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError("min_age must not exceed max_age")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

    def matches(self, report: CitizenReport) -> bool:
        """Evaluate the filter against one report (in-memory stores)."""
        if self.min_age is not None and (report.age is None or report.age < self.min_age):
            return False
        if self.max_age is not None and (report.age is None or report.age > self.max_age):
            return False
        if self.cities is not None and report.city not in self.cities:
            return False
        if self.categories is not None and report.category not in self.categories:
            return False
        if self.urgencies is not None and report.urgency not in self.urgencies:
            return False
        if self.start_date is not None and (report.report_date is None or report.report_date < self.start_date):
            return False
        if self.end_date is not None and (report.report_date is None or report.report_date > self.end_date):
            return False
        if self.government_attention is not None and report.government_attention is not self.government_attention:
            return False
        if self.zone is not None and report.zone is not self.zone:
            return False
        if self.bias_detected is not None and report.bias_detected is not self.bias_detected:
            return False
        if self.statuses is not None and report.status not in self.statuses:
            return False
        if self.batch_id is not None and report.batch_id != self.batch_id:
            return False
        return True

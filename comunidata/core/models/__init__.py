"""
Core data models for the citizen-report ingestion pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .batch_run import BatchRun
from .citizen_report import ILLEGITIMATE_REPORT_MESSAGE, CitizenReport
from .enums import BatchState, ProblemCategory, ProcessingStatus, UrgencyLevel, Zone
from .raw_row import RawCsvRow
from .report_filter import ReportFilter
from .upload_summary import FULLY_PROCESSED, NORMALIZED_ONLY, ParseResult, UploadSummary
from .validation_verdict import ValidationVerdict

__all__ = [
    "CitizenReport",
    "RawCsvRow",
    "ValidationVerdict",
    "BatchRun",
    "ParseResult",
    "UploadSummary",
    "ReportFilter",
    "ProblemCategory",
    "UrgencyLevel",
    "Zone",
    "ProcessingStatus",
    "BatchState",
    "FULLY_PROCESSED",
    "NORMALIZED_ONLY",
    "ILLEGITIMATE_REPORT_MESSAGE",
]

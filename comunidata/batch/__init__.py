"""
Batch processing: CSV ingestion, bounded waves, orchestration and export.
"""

from .export import ReportCsvExporter
from .pipeline import ReportPipeline
from .readers import CsvReportReader
from .status import BatchStatusTracker, derive_batch_run
from .waves import WaveExecutor, WaveTimeoutError, partition

__all__ = [
    "ReportPipeline",
    "CsvReportReader",
    "BatchStatusTracker",
    "ReportCsvExporter",
    "WaveExecutor",
    "WaveTimeoutError",
    "derive_batch_run",
    "partition",
]

"""
Uploaded-file readers and field normalization.
"""

from .csv_reader import CsvReportReader
from . import normalization

__all__ = [
    "CsvReportReader",
    "normalization",
]

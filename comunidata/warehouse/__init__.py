"""
Report persistence.
"""

from .connection import DatabaseConnectionPool
from .report_store import InMemoryReportStore, PostgresReportStore, ReportStore

__all__ = [
    "DatabaseConnectionPool",
    "ReportStore",
    "InMemoryReportStore",
    "PostgresReportStore",
]

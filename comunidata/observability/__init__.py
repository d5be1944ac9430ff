"""
Logging and metrics for the comunidata pipeline.
"""

from . import metrics
from .logger import BatchLoggerAdapter, get_logger, log_operation, setup_logger

__all__ = [
    "metrics",
    "get_logger",
    "setup_logger",
    "log_operation",
    "BatchLoggerAdapter",
]

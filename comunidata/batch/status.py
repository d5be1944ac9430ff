"""
Batch progress derived from persisted report statuses.
"""

from typing import Mapping

from comunidata.core.exceptions import BatchNotFoundError
from comunidata.core.models import BatchRun, BatchState, ProcessingStatus
from comunidata.warehouse import ReportStore


def derive_batch_run(batch_id: str, counts: Mapping[ProcessingStatus, int]) -> BatchRun:
    """
    Build a progress snapshot from per-status counts.

    The batch is Completed when every report is Completed, InProgress while
    any report is still in a non-terminal status, and CompletedWithErrors
    otherwise.
    """
    total = sum(counts.values())
    completed = counts.get(ProcessingStatus.COMPLETED, 0)
    errors = counts.get(ProcessingStatus.ERROR, 0)
    processed = completed + errors

    if total and completed == total:
        state = BatchState.COMPLETED
    elif processed < total:
        state = BatchState.IN_PROGRESS
    else:
        state = BatchState.COMPLETED_WITH_ERRORS

    return BatchRun(
        batch_id=batch_id,
        total_records=total,
        processed_records=processed,
        completed_records=completed,
        error_records=errors,
        completion_percentage=round(completed * 100.0 / total, 2) if total else 0.0,
        state=state,
        status_counts={status.value: n for status, n in counts.items() if n},
    )


class BatchStatusTracker:
    """Answers progress queries by re-reading the store on every call."""

    def __init__(self, store: ReportStore):
        self.store = store

    def get_status(self, batch_id: str) -> BatchRun:
        """
        Raises:
            BatchNotFoundError: If the store holds no report for batch_id
        """
        counts = self.store.count_by_status(batch_id)
        if not sum(counts.values()):
            raise BatchNotFoundError(batch_id)
        return derive_batch_run(batch_id, counts)

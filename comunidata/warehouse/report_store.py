"""
Report store: the persistence collaborator of the pipeline.

Two implementations share one protocol: an in-process store for tests and
normalize-only runs, and a PostgreSQL store with idempotent upserts keyed
by ``CitizenReport.key``.
"""

import threading
from collections import Counter
from typing import Any, Iterable, Protocol

from comunidata.core.models import CitizenReport, ProcessingStatus, ReportFilter
from comunidata.observability import metrics
from comunidata.observability.logger import get_logger

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)


class ReportStore(Protocol):
    """Save, look up and filter citizen reports."""

    def save(self, report: CitizenReport) -> None:
        ...

    def save_all(self, reports: Iterable[CitizenReport]) -> int:
        ...

    def get(self, key: str) -> CitizenReport | None:
        ...

    def all(self) -> list[CitizenReport]:
        ...

    def find(self, report_filter: ReportFilter) -> list[CitizenReport]:
        ...

    def count_by_status(self, batch_id: str | None = None) -> dict[ProcessingStatus, int]:
        ...


def _ordered(reports: Iterable[CitizenReport]) -> list[CitizenReport]:
    return sorted(reports, key=lambda r: (r.batch_id, r.batch_index))


class InMemoryReportStore:
    """
    Dictionary-backed store.

    Reports are copied on the way in and on the way out, so callers never
    share instances with the store (same contract as a database round trip).
    """

    def __init__(self):
        self._reports: dict[str, CitizenReport] = {}
        self._lock = threading.Lock()

    def save(self, report: CitizenReport) -> None:
        self.save_all([report])

    def save_all(self, reports: Iterable[CitizenReport]) -> int:
        copies = [r.model_copy(deep=True) for r in reports]
        with self._lock:
            for report in copies:
                self._reports[report.key] = report
        metrics.store_writes_total.labels(store="memory").inc(len(copies))
        return len(copies)

    def get(self, key: str) -> CitizenReport | None:
        with self._lock:
            report = self._reports.get(key)
        return report.model_copy(deep=True) if report else None

    def all(self) -> list[CitizenReport]:
        return self.find(ReportFilter())

    def find(self, report_filter: ReportFilter) -> list[CitizenReport]:
        with self._lock:
            matching = [r.model_copy(deep=True) for r in self._reports.values() if report_filter.matches(r)]
        return _ordered(matching)

    def count_by_status(self, batch_id: str | None = None) -> dict[ProcessingStatus, int]:
        with self._lock:
            counts = Counter(
                r.status for r in self._reports.values() if batch_id is None or r.batch_id == batch_id
            )
        return dict(counts)

    def __len__(self) -> int:
        return len(self._reports)


_COLUMNS = (
    "report_key",
    "record_id",
    "age",
    "city",
    "comment",
    "original_comment",
    "category",
    "original_category",
    "urgency",
    "report_date",
    "government_attention",
    "zone",
    "bias_detected",
    "bias_description",
    "embedding",
    "status",
    "batch_id",
    "batch_index",
    "error_message",
    "imported_at",
    "processed_at",
)

_UPSERT = f"""
    INSERT INTO citizen_report ({", ".join(_COLUMNS)})
    VALUES ({", ".join(["%s"] * len(_COLUMNS))})
    ON CONFLICT (report_key) DO UPDATE SET
        {", ".join(f"{c} = EXCLUDED.{c}" for c in _COLUMNS if c != "report_key")}
"""

_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM citizen_report"


def _enum_value(member) -> str | None:
    return member.value if member is not None else None


class PostgresReportStore:
    """
    PostgreSQL-backed store (table ``citizen_report``, see docker/init-db.sql).

    Every write is INSERT ... ON CONFLICT UPDATE, so re-saving a report after
    a later stage simply overwrites its row.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize report store.

        Args:
            pool: Open database connection pool
        """
        self.pool = pool

    def save(self, report: CitizenReport) -> None:
        self.save_all([report])

    def save_all(self, reports: Iterable[CitizenReport]) -> int:
        rows = [self._to_row(r) for r in reports]
        if not rows:
            return 0
        self.pool.execute_batch(_UPSERT, rows)
        metrics.store_writes_total.labels(store="postgres").inc(len(rows))
        logger.debug(f"Upserted {len(rows)} reports")
        return len(rows)

    def get(self, key: str) -> CitizenReport | None:
        rows = self.pool.execute_query(f"{_SELECT} WHERE report_key = %s", (key,))
        return self._from_row(rows[0]) if rows else None

    def all(self) -> list[CitizenReport]:
        return self.find(ReportFilter())

    def find(self, report_filter: ReportFilter) -> list[CitizenReport]:
        """
        Translate a ReportFilter into a parameterized WHERE clause.

        Returns:
            Matching reports ordered by batch and position
        """
        clauses, params = self._where(report_filter)
        query = _SELECT
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY batch_id, batch_index"
        return [self._from_row(row) for row in self.pool.execute_query(query, params)]

    def count_by_status(self, batch_id: str | None = None) -> dict[ProcessingStatus, int]:
        query = "SELECT status, COUNT(*) AS n FROM citizen_report"
        params: list[Any] = []
        if batch_id is not None:
            query += " WHERE batch_id = %s"
            params.append(batch_id)
        query += " GROUP BY status"
        return {ProcessingStatus(row["status"]): row["n"] for row in self.pool.execute_query(query, params)}

    @staticmethod
    def _where(f: ReportFilter) -> tuple[list[str], list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []

        def add(clause: str, value: Any) -> None:
            clauses.append(clause)
            params.append(value)

        if f.min_age is not None:
            add("age >= %s", f.min_age)
        if f.max_age is not None:
            add("age <= %s", f.max_age)
        if f.cities is not None:
            add("city = ANY(%s)", list(f.cities))
        if f.categories is not None:
            add("category = ANY(%s)", [c.value for c in f.categories])
        if f.urgencies is not None:
            add("urgency = ANY(%s)", [u.value for u in f.urgencies])
        if f.start_date is not None:
            add("report_date >= %s", f.start_date)
        if f.end_date is not None:
            add("report_date <= %s", f.end_date)
        if f.government_attention is not None:
            add("government_attention = %s", f.government_attention)
        if f.zone is not None:
            add("zone = %s", f.zone.value)
        if f.bias_detected is not None:
            add("bias_detected = %s", f.bias_detected)
        if f.statuses is not None:
            add("status = ANY(%s)", [s.value for s in f.statuses])
        if f.batch_id is not None:
            add("batch_id = %s", f.batch_id)
        return clauses, params

    @staticmethod
    def _to_row(report: CitizenReport) -> tuple:
        return (
            report.key,
            report.record_id,
            report.age,
            report.city,
            report.comment,
            report.original_comment,
            _enum_value(report.category),
            report.original_category,
            _enum_value(report.urgency),
            report.report_date,
            report.government_attention,
            _enum_value(report.zone),
            report.bias_detected,
            report.bias_description,
            report.embedding,
            report.status.value,
            report.batch_id,
            report.batch_index,
            report.error_message,
            report.imported_at,
            report.processed_at,
        )

    @staticmethod
    def _from_row(row: dict[str, Any]) -> CitizenReport:
        data = dict(row)
        data.pop("report_key", None)
        return CitizenReport.model_validate(data)

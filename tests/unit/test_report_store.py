"""
Unit tests for the in-memory report store.
"""

from datetime import date

import pytest

from comunidata.core.models import CitizenReport, ProblemCategory, ProcessingStatus, ReportFilter, UrgencyLevel, Zone
from comunidata.warehouse import InMemoryReportStore


pytestmark = pytest.mark.unit


def report(batch_index: int, batch_id: str = "b1", **fields) -> CitizenReport:
    return CitizenReport(record_id=str(batch_index), batch_id=batch_id, batch_index=batch_index, **fields)


class TestInMemoryReportStore:
    def test_save_and_get_by_key(self):
        store = InMemoryReportStore()
        store.save(report(0, city="Neiva"))

        loaded = store.get("b1:0")

        assert loaded.city == "Neiva"
        assert store.get("b1:9") is None

    def test_same_record_id_in_two_batches_kept_apart(self):
        store = InMemoryReportStore()
        store.save_all([report(0, batch_id="b1"), report(0, batch_id="b2")])
        assert len(store.all()) == 2

    def test_resave_overwrites(self):
        store = InMemoryReportStore()
        original = report(0)
        store.save(original)
        original.fail("boom")
        store.save(original)

        assert len(store) == 1
        assert store.get("b1:0").status is ProcessingStatus.ERROR

    def test_returned_reports_are_copies(self):
        store = InMemoryReportStore()
        store.save(report(0))

        store.get("b1:0").fail("changed outside")

        assert store.get("b1:0").status is ProcessingStatus.PENDING

    def test_find_with_combined_filters(self):
        store = InMemoryReportStore()
        store.save_all([
            report(0, city="Cali", category=ProblemCategory.HEALTH, zone=Zone.URBAN, age=30),
            report(1, city="Cali", category=ProblemCategory.SECURITY, zone=Zone.RURAL, age=50),
            report(2, city="Tunja", category=ProblemCategory.HEALTH, zone=Zone.RURAL,
                   urgency=UrgencyLevel.URGENT, report_date=date(2024, 2, 1)),
        ])

        assert [r.batch_index for r in store.find(ReportFilter(cities=["Cali"], categories=[ProblemCategory.HEALTH]))] == [0]
        assert [r.batch_index for r in store.find(ReportFilter(zone=Zone.RURAL, urgencies=[UrgencyLevel.URGENT]))] == [2]
        assert [r.batch_index for r in store.find(ReportFilter(min_age=40))] == [1]
        assert [r.batch_index for r in store.find(ReportFilter(start_date=date(2024, 1, 1)))] == [2]

    def test_results_ordered_by_batch_position(self):
        store = InMemoryReportStore()
        store.save_all([report(2), report(0), report(1)])
        assert [r.batch_index for r in store.all()] == [0, 1, 2]

    def test_count_by_status(self):
        store = InMemoryReportStore()
        failed = report(1)
        failed.fail("x")
        store.save_all([report(0), failed, report(0, batch_id="other")])

        assert store.count_by_status("b1") == {ProcessingStatus.PENDING: 1, ProcessingStatus.ERROR: 1}
        assert store.count_by_status() == {ProcessingStatus.PENDING: 2, ProcessingStatus.ERROR: 1}
        assert store.count_by_status("missing") == {}

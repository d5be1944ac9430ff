"""
CSV export of enriched reports.
"""

from typing import Iterable, TextIO

from comunidata.core.models import CitizenReport
from comunidata.observability.logger import get_logger

logger = get_logger(__name__)

EXPORT_HEADER = (
    "ID",
    "Age",
    "City",
    "Comment",
    "Category",
    "Urgency",
    "ReportDate",
    "GovernmentAttention",
    "Zone",
    "BiasDetected",
)

_NEEDS_QUOTES = (",", '"', "\n", "\r")


def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    text = getattr(value, "display_name", None) or str(value)
    return _quote(text) if any(c in text for c in _NEEDS_QUOTES) else text


class ReportCsvExporter:
    """
    Writes reports as comma-separated text.

    The comment column is always quoted with embedded quotes doubled; other
    columns are quoted only when they contain a delimiter, quote or newline.
    """

    def format_row(self, report: CitizenReport) -> str:
        return ",".join(
            [
                _cell(report.record_id),
                _cell(report.age),
                _cell(report.city),
                _quote(report.comment or ""),
                _cell(report.category),
                _cell(report.urgency),
                _cell(report.report_date.isoformat() if report.report_date else None),
                _cell(report.government_attention),
                _cell(report.zone),
                _cell(report.bias_detected),
            ]
        )

    def write(self, reports: Iterable[CitizenReport], out: TextIO) -> int:
        """
        Write the header and one line per report.

        Returns:
            Number of report rows written
        """
        out.write(",".join(EXPORT_HEADER) + "\n")
        count = 0
        for report in reports:
            out.write(self.format_row(report) + "\n")
            count += 1
        logger.info(f"Exported {count} reports")
        return count

    def to_string(self, reports: Iterable[CitizenReport]) -> str:
        lines = [",".join(EXPORT_HEADER)]
        lines.extend(self.format_row(r) for r in reports)
        return "\n".join(lines) + "\n"

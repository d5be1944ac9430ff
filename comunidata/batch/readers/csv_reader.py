"""
CSV reader turning an uploaded citizen-report file into normalized reports.
"""

import io
import re
from typing import BinaryIO, Iterable, TextIO

from comunidata.core.exceptions import IngestionError, MalformedRowError
from comunidata.core.models import CitizenReport, ParseResult, ProblemCategory, RawCsvRow, UrgencyLevel
from comunidata.observability import metrics
from comunidata.observability.logger import get_logger

from .normalization import (
    normalize_age,
    normalize_boolean,
    normalize_city,
    normalize_comment,
    normalize_date,
    normalize_zone,
)


logger = get_logger(__name__)

# A comma is a delimiter only when an even number of quotes follows it,
# i.e. when it is not inside a quoted field.
_DELIMITER = re.compile(r',(?=(?:[^"]*"[^"]*")*[^"]*$)')
_SURROUNDING_QUOTES = re.compile(r'^"|"$')


class CsvReportReader:
    """
    Parses one CSV stream into PENDING citizen reports.

    The first line is a header and is discarded. Each following line is one
    row of twelve positional columns; a row that cannot be split is logged
    and skipped without stopping the parse.
    """

    def __init__(self, encoding: str = "utf-8"):
        """
        Initialize CSV reader.

        Args:
            encoding: Encoding used when the stream yields bytes
        """
        self.encoding = encoding

    def parse(self, stream: TextIO | BinaryIO | None, batch_id: str) -> ParseResult:
        """
        Read and normalize every data row of a stream.

        Args:
            stream: Text or binary file-like object; None counts as empty
            batch_id: Upload identifier stamped on every report

        Returns:
            ParseResult with the reports (batch_index = position among
            accepted rows) and the number of skipped rows

        Raises:
            IngestionError: If the stream itself cannot be read or decoded
        """
        result = ParseResult()
        if stream is None:
            logger.warning("CSV stream is empty", extra={"batch_id": batch_id})
            return result

        try:
            lines = self._lines(stream)
            header = next(lines, None)
            if header is None:
                logger.warning("CSV stream is empty", extra={"batch_id": batch_id})
                return result

            for line_number, line in enumerate(lines, start=2):
                line = line.rstrip("\r\n")
                if not line.strip():
                    continue
                try:
                    row = self.parse_line(line, line_number)
                    report = self.normalize_row(row, batch_id, len(result.reports))
                except (MalformedRowError, ValueError) as e:
                    result.skipped_rows += 1
                    metrics.rows_skipped_total.inc()
                    logger.warning(
                        f"Skipping unparseable CSV row: {e}",
                        extra={"batch_id": batch_id, "line_number": line_number},
                    )
                    continue
                result.reports.append(report)
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read CSV stream: {e}", extra={"batch_id": batch_id})
            raise IngestionError(f"Failed to read CSV file: {e}") from e

        metrics.rows_normalized_total.inc(len(result.reports))
        logger.info(
            f"Parsed and normalized {len(result.reports)} reports",
            extra={"batch_id": batch_id, "skipped_rows": result.skipped_rows},
        )
        return result

    def _lines(self, stream: TextIO | BinaryIO) -> Iterable[str]:
        if isinstance(stream, io.TextIOBase):
            return iter(stream)
        sample = stream.read(0)
        if isinstance(sample, bytes):
            return iter(io.TextIOWrapper(stream, encoding=self.encoding))
        return iter(stream)

    @staticmethod
    def parse_line(line: str, line_number: int = 0) -> RawCsvRow:
        """
        Split one data line into positional cells.

        Raises:
            MalformedRowError: If the line has unbalanced quotes
        """
        if line.count('"') % 2:
            raise MalformedRowError(line_number, "unbalanced quotes")
        fields = [_SURROUNDING_QUOTES.sub("", field.strip()) for field in _DELIMITER.split(line)]
        return RawCsvRow.from_fields(fields)

    @staticmethod
    def normalize_row(row: RawCsvRow, batch_id: str, batch_index: int) -> CitizenReport:
        """Apply the field rules to one raw row."""
        return CitizenReport(
            record_id=(row.id or "").strip(),
            age=normalize_age(row.age),
            city=normalize_city(row.city),
            comment=normalize_comment(row.comment),
            original_comment=row.comment,
            category=ProblemCategory.from_string(row.category),
            original_category=row.category,
            urgency=UrgencyLevel.from_string(row.urgency),
            report_date=normalize_date(row.report_date),
            government_attention=normalize_boolean(row.government_attention),
            zone=normalize_zone(row.rural_zone),
            batch_id=batch_id,
            batch_index=batch_index,
        )

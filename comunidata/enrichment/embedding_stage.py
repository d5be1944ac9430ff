"""
Embedding stage: one vector per report, one provider call per report.
"""

from comunidata.core.exceptions import CircuitOpenError, EmbeddingResponseError
from comunidata.core.models import CitizenReport
from comunidata.core.resilience import CircuitBreaker, ResilientCall, RetryPolicy
from comunidata.observability import metrics
from comunidata.observability.logger import get_logger

from .providers import EmbeddingProvider

logger = get_logger(__name__)

STAGE = "embedding"

MISSING_COMMENT_MESSAGE = "No comment available to generate embedding"
UNAVAILABLE_MESSAGE = "Embedding service temporarily unavailable; the report can be retried later"
SERVICE_ERROR_MESSAGE = "Embedding generation failed"


def build_embedding_text(report: CitizenReport) -> str:
    """Comment followed by bracketed context tags for the fields present."""
    parts = [report.comment or ""]
    if report.category is not None:
        parts.append(f"[Category: {report.category.display_name}]")
    if report.city:
        parts.append(f"[City: {report.city}]")
    if report.urgency is not None:
        parts.append(f"[Urgency: {report.urgency.display_name}]")
    return " ".join(parts)


class ReportEmbeddingStage:
    """
    Attaches an embedding to a single report.

    A failure only ever touches the report being embedded.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        dimensions: int = 1536,
        retry_policy: RetryPolicy | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.provider = provider
        self.dimensions = dimensions
        self.breaker = breaker or CircuitBreaker(STAGE)
        self._call: ResilientCall[CitizenReport, list[float] | None] = ResilientCall(
            self._request_embedding,
            name=STAGE,
            retry_policy=retry_policy or RetryPolicy(),
            breaker=self.breaker,
            fallback=self._fail_report,
        )

    def embed(self, report: CitizenReport) -> CitizenReport:
        if not report.comment or not report.comment.strip():
            report.fail(MISSING_COMMENT_MESSAGE)
            logger.warning(
                "Report has no comment, skipping embedding",
                extra={"report_key": report.key},
            )
        else:
            report.start_embedding()
            with metrics.track_duration(metrics.stage_duration_seconds, stage=STAGE):
                vector = self._call(report)
            if vector is not None:
                report.complete(vector)

        metrics.records_processed_total.labels(stage=STAGE, status=report.status.value).inc()
        return report

    def _request_embedding(self, report: CitizenReport) -> list[float]:
        vector = self.provider.embed(build_embedding_text(report))
        if not vector:
            raise EmbeddingResponseError("Embedding service returned an empty vector")
        if len(vector) != self.dimensions:
            raise EmbeddingResponseError(
                f"Expected {self.dimensions} dimensions, got {len(vector)}"
            )
        return list(vector)

    @staticmethod
    def _fail_report(report: CitizenReport, error: Exception) -> None:
        if isinstance(error, CircuitOpenError):
            report.fail(UNAVAILABLE_MESSAGE)
        else:
            report.fail(f"{SERVICE_ERROR_MESSAGE}: {error}")
        return None

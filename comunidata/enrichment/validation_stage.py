"""
Validation stage: bias detection, category correction and legitimacy check
for one group of reports per provider call.
"""

from typing import Sequence

from comunidata.core.exceptions import CircuitOpenError, ValidationResponseError
from comunidata.core.models import CitizenReport, ValidationVerdict
from comunidata.core.resilience import CircuitBreaker, ResilientCall, RetryPolicy
from comunidata.observability import metrics
from comunidata.observability.logger import get_logger

from .prompts import build_validation_prompt, parse_verdicts
from .providers import ValidationProvider

logger = get_logger(__name__)

STAGE = "validation"

UNAVAILABLE_MESSAGE = "Validation service temporarily unavailable; the group can be retried later"
PARSE_FAILURE_MESSAGE = "Could not parse validation service response"
SERVICE_ERROR_MESSAGE = "Validation service error"


class ReportValidationStage:
    """
    Sends a group of reports to the validation provider as one prompt and
    merges the verdicts back by record identifier.

    The reports passed in are mutated and returned. A group whose call
    cannot succeed (transport failure after retries, open breaker, or an
    unparseable answer) ends with every report in ERROR; a report the
    answer does not mention is left in VALIDATING.
    """

    def __init__(
        self,
        provider: ValidationProvider,
        retry_policy: RetryPolicy | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.provider = provider
        self.breaker = breaker or CircuitBreaker(STAGE)
        self._call: ResilientCall[Sequence[CitizenReport], list[ValidationVerdict] | None] = ResilientCall(
            self._request_verdicts,
            name=STAGE,
            retry_policy=retry_policy or RetryPolicy(),
            breaker=self.breaker,
            fallback=self._fail_group,
        )

    def validate_batch(self, reports: list[CitizenReport]) -> list[CitizenReport]:
        if not reports:
            return reports

        for report in reports:
            report.start_validation()

        with metrics.track_duration(metrics.stage_duration_seconds, stage=STAGE):
            verdicts = self._call(reports)

        if verdicts is not None:
            self._merge(reports, verdicts)

        for report in reports:
            metrics.records_processed_total.labels(stage=STAGE, status=report.status.value).inc()
        return reports

    def _request_verdicts(self, reports: Sequence[CitizenReport]) -> list[ValidationVerdict]:
        response = self.provider.complete(build_validation_prompt(reports))
        return parse_verdicts(response)

    @staticmethod
    def _merge(reports: Sequence[CitizenReport], verdicts: list[ValidationVerdict]) -> None:
        by_id: dict[str, ValidationVerdict] = {}
        for verdict in verdicts:
            by_id.setdefault(verdict.id, verdict)

        unmatched = 0
        for report in reports:
            verdict = by_id.get(report.record_id)
            if verdict is None:
                unmatched += 1
                continue
            report.apply_verdict(verdict)

        if unmatched:
            logger.warning(
                f"{unmatched} reports missing from validation response; left for a later retry",
                extra={"batch_id": reports[0].batch_id, "group_size": len(reports)},
            )

    @staticmethod
    def _fail_group(reports: Sequence[CitizenReport], error: Exception) -> None:
        if isinstance(error, CircuitOpenError):
            message = UNAVAILABLE_MESSAGE
        elif isinstance(error, ValidationResponseError):
            message = f"{PARSE_FAILURE_MESSAGE}: {error}"
        else:
            message = f"{SERVICE_ERROR_MESSAGE}: {error}"

        for report in reports:
            if not report.status.is_terminal:
                report.fail(message)
        return None

"""
Exception hierarchy for the citizen-report ingestion pipeline.

Row-level and provider-level errors are contained by the component that
raises them; only IngestionError aborts an upload.
"""


class ComunidataError(Exception):
    """Base class for all pipeline errors."""


class MalformedRowError(ComunidataError):
    """Raised when a single CSV data line cannot be split into fields."""

    def __init__(self, line_number: int, message: str):
        self.line_number = line_number
        self.message = message
        super().__init__(f"line {line_number}: {message}")


class IngestionError(ComunidataError):
    """Raised when the uploaded stream itself cannot be read."""


class ProviderResponseError(ComunidataError):
    """
    A provider answered, but the answer is structurally unusable.

    Not retried and not counted as a circuit-breaker failure: the service is
    reachable, retrying the same payload will not change the structure.
    """


class ValidationResponseError(ProviderResponseError):
    """The validation service response could not be parsed into verdicts."""


class EmbeddingResponseError(ProviderResponseError):
    """The embedding service returned an empty or wrongly sized vector."""


class CircuitOpenError(ComunidataError):
    """Raised instead of calling a provider while its breaker is open."""

    def __init__(self, breaker_name: str):
        self.breaker_name = breaker_name
        super().__init__(f"Circuit breaker '{breaker_name}' is open")


class NotFoundError(ComunidataError):
    """Lookup of an unknown identifier."""


class BatchNotFoundError(NotFoundError):
    """No reports exist for the requested batch identifier."""

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class ReportNotFoundError(NotFoundError):
    """No report exists for the requested storage key."""

    def __init__(self, report_key: str):
        self.report_key = report_key
        super().__init__(f"Report not found: {report_key}")


class InvalidStatusTransitionError(ComunidataError):
    """A stage attempted to move a report backwards or out of Error."""

    def __init__(self, report_key: str, current: str, requested: str):
        self.report_key = report_key
        self.current = current
        self.requested = requested
        super().__init__(
            f"Report {report_key}: cannot move from {current} to {requested}"
        )

"""
Batch processing pipeline orchestration.

Coordinates the flow: read → normalize → persist → validate → embed → persist
"""

import uuid
from typing import BinaryIO, Callable, Iterable, TextIO

from comunidata.core.config import ProcessingConfig
from comunidata.core.exceptions import IngestionError, ReportNotFoundError
from comunidata.core.models import (
    FULLY_PROCESSED,
    NORMALIZED_ONLY,
    BatchRun,
    CitizenReport,
    ProcessingStatus,
    ReportFilter,
    UploadSummary,
)
from comunidata.enrichment import ReportEmbeddingStage, ReportValidationStage
from comunidata.observability import metrics
from comunidata.observability.logger import BatchLoggerAdapter, get_logger, log_operation
from comunidata.warehouse import ReportStore

from .export import ReportCsvExporter
from .readers import CsvReportReader
from .status import BatchStatusTracker
from .waves import WaveExecutor, WaveTimeoutError, partition


logger = get_logger(__name__)

_NEEDS_VALIDATION = (ProcessingStatus.PENDING, ProcessingStatus.VALIDATING)
_NEEDS_EMBEDDING = (ProcessingStatus.VALIDATED, ProcessingStatus.EMBEDDING)


class ReportPipeline:
    """
    Orchestrates one uploaded file through the pipeline.

    Flow:
    1. Parse and normalize the CSV into PENDING reports
    2. Persist every normalized report
    3. (process immediately) validate groups of ``batch_size`` reports, at
       most ``max_parallel`` groups at a time
    4. Embed every validated report, one per call, same concurrency cap
    5. Persist the enriched and the errored reports

    Worker tasks operate on copies of the reports. When a task times out the
    orchestrator marks its own copy ERROR, so a result arriving later from
    the abandoned call is never merged or persisted.
    """

    def __init__(
        self,
        store: ReportStore,
        validation_stage: ReportValidationStage | None = None,
        embedding_stage: ReportEmbeddingStage | None = None,
        config: ProcessingConfig | None = None,
        reader: CsvReportReader | None = None,
        exporter: ReportCsvExporter | None = None,
        batch_id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        """
        Initialize batch pipeline.

        Args:
            store: Report store shared by every stage
            validation_stage: Required for immediate or resumed processing
            embedding_stage: Required for immediate or resumed processing
            config: Batching and concurrency settings
            reader: CSV reader (defaults to UTF-8)
            exporter: CSV exporter
            batch_id_factory: Produces a fresh run identifier per upload
        """
        self.store = store
        self.validation_stage = validation_stage
        self.embedding_stage = embedding_stage
        self.config = config or ProcessingConfig()
        self.reader = reader or CsvReportReader()
        self.exporter = exporter or ReportCsvExporter()
        self.batch_id_factory = batch_id_factory
        self.tracker = BatchStatusTracker(store)
        self.executor = WaveExecutor(max_workers=self.config.max_parallel)

    def process_upload(self, stream: TextIO | BinaryIO | None, process_immediately: bool = False) -> UploadSummary:
        """
        Ingest one CSV stream.

        Args:
            stream: Uploaded file contents
            process_immediately: Run validation and embedding now instead of
                only normalizing

        Returns:
            UploadSummary with counts and FullyProcessed/NormalizedOnly status

        Raises:
            IngestionError: If the stream cannot be read
        """
        batch_id = self.batch_id_factory()
        log = BatchLoggerAdapter(logger, batch_id)

        try:
            with log_operation("Normalize upload", logger=log):
                parsed = self.reader.parse(stream, batch_id)
        except IngestionError:
            metrics.uploads_total.labels(processing_status="failed").inc()
            raise

        reports = parsed.reports
        self.store.save_all(reports)

        if process_immediately:
            self._enrich(batch_id, reports)
            processing_status = FULLY_PROCESSED
            message = "File normalized and processed with AI validation and embeddings"
        else:
            processing_status = NORMALIZED_ONLY
            message = "File normalized; AI processing pending"

        error_records = sum(1 for r in reports if r.status is ProcessingStatus.ERROR)
        metrics.uploads_total.labels(processing_status=processing_status).inc()
        log.info(
            message,
            extra={
                "total_records": len(reports),
                "error_records": error_records,
                "skipped_rows": parsed.skipped_rows,
            },
        )

        return UploadSummary(
            message=message,
            total_records=len(reports),
            normalized_records=len(reports),
            error_records=error_records,
            batch_id=batch_id,
            processing_status=processing_status,
            skipped_rows=parsed.skipped_rows,
        )

    def resume(self, batch_id: str) -> BatchRun:
        """
        Re-drive the unfinished reports of a stored batch.

        Reports still Pending or Validating are validated again; Validated
        or Embedding ones are embedded. Terminal reports are left alone.

        Raises:
            BatchNotFoundError: If the batch is unknown
        """
        self.tracker.get_status(batch_id)
        reports = self.store.find(ReportFilter(batch_id=batch_id))
        self._enrich(batch_id, reports)
        return self.tracker.get_status(batch_id)

    def get_batch_status(self, batch_id: str) -> BatchRun:
        return self.tracker.get_status(batch_id)

    def get_report(self, key: str) -> CitizenReport:
        report = self.store.get(key)
        if report is None:
            raise ReportNotFoundError(key)
        return report

    def list_completed(self) -> list[CitizenReport]:
        return self.store.find(ReportFilter(statuses=[ProcessingStatus.COMPLETED]))

    def export_csv(self, keys: Iterable[str] | None = None) -> str:
        """
        Export reports as CSV text.

        Args:
            keys: Storage keys to export; by default every Completed report
                without detected bias

        Raises:
            ReportNotFoundError: If a requested key is unknown
        """
        if keys is None:
            reports = self.store.find(
                ReportFilter(statuses=[ProcessingStatus.COMPLETED], bias_detected=False)
            )
        else:
            reports = [self.get_report(key) for key in keys]
        return self.exporter.to_string(reports)

    def close(self) -> None:
        self.executor.shutdown()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # ------------------------------------------------------------------

    def _enrich(self, batch_id: str, reports: list[CitizenReport]) -> None:
        if self.validation_stage is None or self.embedding_stage is None:
            raise RuntimeError("Validation and embedding stages are required for AI processing")

        log = BatchLoggerAdapter(logger, batch_id)
        position = {r.key: i for i, r in enumerate(reports)}

        def merge(results: Iterable[CitizenReport]) -> None:
            for result in results:
                reports[position[result.key]] = result

        to_validate = [r for r in reports if r.status in _NEEDS_VALIDATION]
        if to_validate:
            groups = partition(to_validate, self.config.batch_size)
            with log_operation("Validation stage", logger=log, groups=len(groups), records=len(to_validate)):
                results = self.executor.run(
                    groups,
                    self._validate_group,
                    timeout=self.config.group_timeout_seconds,
                    on_failure=self._fail_group,
                    stage="validation",
                )
            for group in results:
                merge(group)
            self.store.save_all(reports)

        to_embed = [r for r in reports if r.status in _NEEDS_EMBEDDING]
        if to_embed:
            with log_operation("Embedding stage", logger=log, records=len(to_embed)):
                results = self.executor.run(
                    to_embed,
                    self._embed_report,
                    timeout=self.config.record_timeout_seconds,
                    on_failure=self._fail_report,
                    stage="embedding",
                )
            merge(results)
            self.store.save_all(reports)

    def _validate_group(self, group: list[CitizenReport]) -> list[CitizenReport]:
        return self.validation_stage.validate_batch([r.model_copy(deep=True) for r in group])

    def _embed_report(self, report: CitizenReport) -> CitizenReport:
        return self.embedding_stage.embed(report.model_copy(deep=True))

    @staticmethod
    def _fail_group(group: list[CitizenReport], error: Exception) -> list[CitizenReport]:
        if isinstance(error, WaveTimeoutError):
            message = f"Validation timed out after {error.timeout:g} seconds"
        else:
            message = f"Validation failed: {error}"
        for report in group:
            if not report.status.is_terminal:
                report.fail(message)
        return group

    @staticmethod
    def _fail_report(report: CitizenReport, error: Exception) -> CitizenReport:
        if isinstance(error, WaveTimeoutError):
            message = f"Embedding timed out after {error.timeout:g} seconds"
        else:
            message = f"Embedding failed: {error}"
        if not report.status.is_terminal:
            report.fail(message)
        return report

"""
Command-line interface for batch ingestion.

Usage:
    comunidata-batch upload --input <file_path> [--process-now]
    comunidata-batch status --batch-id <batch_id>
    comunidata-batch resume --batch-id <batch_id>
    comunidata-batch export --output <file_path> [--key <key> ...]
    comunidata-batch reports --batch-id <batch_id> [--status Error ...]
"""

import argparse
import json
import sys
from pathlib import Path

from comunidata.batch import ReportPipeline
from comunidata.core.config import PipelineConfig, load_pipeline_config
from comunidata.core.exceptions import IngestionError, NotFoundError
from comunidata.core.models import ProcessingStatus, ReportFilter
from comunidata.core.resilience import CircuitBreaker, RetryPolicy
from comunidata.enrichment import (
    ChatCompletionValidationProvider,
    OpenAIEmbeddingProvider,
    ReportEmbeddingStage,
    ReportValidationStage,
)
from comunidata.observability.logger import get_logger
from comunidata.observability.metrics import generate_metrics, start_metrics_server
from comunidata.warehouse import DatabaseConnectionPool, PostgresReportStore, ReportStore


logger = get_logger(__name__)


def open_store(args) -> tuple[ReportStore, DatabaseConnectionPool]:
    """
    Open the PostgreSQL report store named by the connection arguments.

    Returns:
        (store, pool); the caller closes the pool
    """
    pool = DatabaseConnectionPool(
        host=args.db_host,
        port=args.db_port,
        database=args.db_name,
        user=args.db_user,
        password=args.db_password,
    )
    pool.open()
    return PostgresReportStore(pool), pool


def build_stages(config: PipelineConfig) -> tuple[ReportValidationStage, ReportEmbeddingStage]:
    """Wire both AI stages with their own retry policy and circuit breaker."""
    validation_stage = ReportValidationStage(
        ChatCompletionValidationProvider(config.validation_provider),
        retry_policy=RetryPolicy.from_config(config.retry),
        breaker=CircuitBreaker.from_config("validation", config.circuit_breaker),
    )
    embedding_stage = ReportEmbeddingStage(
        OpenAIEmbeddingProvider(config.embedding_provider),
        dimensions=config.embedding_provider.dimensions,
        retry_policy=RetryPolicy.from_config(config.retry),
        breaker=CircuitBreaker.from_config("embedding", config.circuit_breaker),
    )
    return validation_stage, embedding_stage


def upload_command(args, pipeline: ReportPipeline) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        logger.error(f"Input file not found: {args.input}")
        return 1

    with open(input_path, "rb") as f:
        summary = pipeline.process_upload(f, process_immediately=args.process_now)

    print(json.dumps(summary.model_dump(by_alias=True), indent=2))
    return 0


def status_command(args, pipeline: ReportPipeline) -> int:
    run = pipeline.get_batch_status(args.batch_id)
    print(json.dumps(run.model_dump(mode="json", by_alias=True), indent=2))
    return 0


def resume_command(args, pipeline: ReportPipeline) -> int:
    run = pipeline.resume(args.batch_id)
    print(json.dumps(run.model_dump(mode="json", by_alias=True), indent=2))
    return 0


def export_command(args, pipeline: ReportPipeline) -> int:
    text = pipeline.export_csv(args.key or None)
    Path(args.output).write_text(text, encoding="utf-8")
    logger.info(f"Export written to {args.output}")
    return 0


def reports_command(args, pipeline: ReportPipeline) -> int:
    statuses = [ProcessingStatus(s) for s in args.status] if args.status else None
    reports = pipeline.store.find(ReportFilter(batch_id=args.batch_id, statuses=statuses))
    payload = [r.model_dump(mode="json", exclude={"embedding"}) | {"key": r.key} for r in reports]
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


COMMANDS = {
    "upload": upload_command,
    "status": status_command,
    "resume": resume_command,
    "export": export_command,
    "reports": reports_command,
}


def _needs_stages(args) -> bool:
    return args.command == "resume" or (args.command == "upload" and args.process_now)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Citizen-report ingestion pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Normalize a file and store it for later processing
  comunidata-batch upload --input data/reports.csv

  # Normalize, validate and embed in one go
  comunidata-batch upload --input data/reports.csv --process-now

  # Check progress of a batch
  comunidata-batch status --batch-id 5f1c9a0e-3b7d-4f8e-9a51-1d2f3c4b5a69

  # Export completed, unbiased reports
  comunidata-batch export --output exports/reports.csv
        """
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to pipeline YAML configuration (default: config/pipeline.yaml)"
    )
    parser.add_argument("--db-host", default=None, help="Database host (default: env DB_HOST)")
    parser.add_argument("--db-port", type=int, default=None, help="Database port (default: env DB_PORT)")
    parser.add_argument("--db-name", default=None, help="Database name (default: env DB_NAME)")
    parser.add_argument("--db-user", default=None, help="Database user (default: env DB_USER)")
    parser.add_argument("--db-password", default=None, help="Database password (default: env DB_PASSWORD)")
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port while the command runs"
    )
    parser.add_argument(
        "--metrics-output",
        default=None,
        help="Write Prometheus metrics to this file when the command finishes"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    upload_parser = subparsers.add_parser("upload", help="Ingest a CSV file")
    upload_parser.add_argument("--input", required=True, help="Path to input CSV file")
    upload_parser.add_argument(
        "--process-now",
        action="store_true",
        help="Run AI validation and embedding immediately"
    )

    status_parser = subparsers.add_parser("status", help="Show batch progress")
    status_parser.add_argument("--batch-id", required=True)

    resume_parser = subparsers.add_parser("resume", help="Process the unfinished reports of a batch")
    resume_parser.add_argument("--batch-id", required=True)

    export_parser = subparsers.add_parser("export", help="Export reports as CSV")
    export_parser.add_argument("--output", required=True, help="Destination CSV path")
    export_parser.add_argument(
        "--key",
        action="append",
        help="Report key to export (repeatable; default: completed reports without bias)"
    )

    reports_parser = subparsers.add_parser("reports", help="List the reports of a batch")
    reports_parser.add_argument("--batch-id", required=True)
    reports_parser.add_argument(
        "--status",
        action="append",
        choices=[s.value for s in ProcessingStatus],
        help="Only reports in this status (repeatable)"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_pipeline_config(args.config)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if args.metrics_port:
        start_metrics_server(args.metrics_port)

    store, pool = open_store(args)
    try:
        validation_stage = embedding_stage = None
        if _needs_stages(args):
            validation_stage, embedding_stage = build_stages(config)

        with ReportPipeline(
            store,
            validation_stage=validation_stage,
            embedding_stage=embedding_stage,
            config=config.processing,
        ) as pipeline:
            return COMMANDS[args.command](args, pipeline)
    except IngestionError as e:
        logger.error(f"Upload failed: {e}")
        return 1
    except NotFoundError as e:
        logger.error(str(e))
        return 1
    finally:
        pool.close()
        if args.metrics_output:
            Path(args.metrics_output).write_bytes(generate_metrics())


if __name__ == "__main__":
    sys.exit(main())

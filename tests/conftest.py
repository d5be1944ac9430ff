"""
Pytest configuration and fixtures for comunidata tests

This module provides shared fixtures for unit, integration, and E2E tests:
fake AI providers, in-memory and PostgreSQL report stores, CSV builders.
"""
import io
import json
import os
import re
import threading
import time
from typing import Callable, Generator, Iterable

import psycopg
import pytest

from comunidata.batch import ReportPipeline
from comunidata.core.config import ProcessingConfig
from comunidata.core.resilience import CircuitBreaker, RetryPolicy
from comunidata.enrichment import ReportEmbeddingStage, ReportValidationStage
from comunidata.warehouse import InMemoryReportStore


CSV_HEADER = "ID,Name,Age,Gender,City,Comment,Category,Urgency,Date,InternetAccess,GovernmentAttention,RuralZone"

TEST_EMBEDDING_DIMENSIONS = 8


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# FAKE PROVIDERS
# =======================

_PROMPT_ID = re.compile(r"^\d+\. ID: (.*)$", re.MULTILINE)


class _ConcurrencyProbe:
    """Counts calls and the peak number of simultaneous calls."""

    def __init__(self):
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def enter(self):
        with self._lock:
            self.calls += 1
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

    def exit(self):
        with self._lock:
            self.in_flight -= 1


class FakeValidationProvider(_ConcurrencyProbe):
    """
    Answers validation prompts like a well-behaved model.

    Every record id found in the prompt gets a legitimate, unbiased verdict
    unless listed in ``illegitimate``/``biased``/``omit``. ``unparseable``
    decides, from the ids of a prompt, whether to answer with prose instead
    of JSON. ``errors`` are raised one per call before answering normally.
    """

    def __init__(
        self,
        illegitimate: Iterable[str] = (),
        biased: Iterable[str] = (),
        omit: Iterable[str] = (),
        categories: dict[str, str] | None = None,
        unparseable: Callable[[list[str]], bool] | None = None,
        errors: Iterable[Exception] = (),
        delay: float = 0.0,
    ):
        super().__init__()
        self.illegitimate = set(illegitimate)
        self.biased = set(biased)
        self.omit = set(omit)
        self.categories = categories or {}
        self.unparseable = unparseable
        self.errors = list(errors)
        self.delay = delay
        self.prompts: list[str] = []

    def complete(self, prompt: str) -> str:
        self.enter()
        try:
            self.prompts.append(prompt)
            if self.delay:
                time.sleep(self.delay)
            if self.errors:
                raise self.errors.pop(0)

            ids = _PROMPT_ID.findall(prompt)
            if self.unparseable and self.unparseable(ids):
                return "I'm sorry, I cannot classify these reports right now."

            verdicts = [
                {
                    "id": record_id,
                    "biasDetected": record_id in self.biased,
                    "biasDescription": "Political propaganda" if record_id in self.biased else None,
                    "validatedCategory": self.categories.get(record_id, "Health"),
                    "isLegitimate": record_id not in self.illegitimate,
                }
                for record_id in ids
                if record_id not in self.omit
            ]
            return "Here is the analysis:\n" + json.dumps(verdicts) + "\nLet me know if you need more."
        finally:
            self.exit()


class FakeEmbeddingProvider(_ConcurrencyProbe):
    """Deterministic vectors; ``fail_when(text)`` raises a transport error."""

    def __init__(
        self,
        dimensions: int = TEST_EMBEDDING_DIMENSIONS,
        fail_when: Callable[[str], bool] | None = None,
        delay: float = 0.0,
    ):
        super().__init__()
        self.dimensions = dimensions
        self.fail_when = fail_when
        self.delay = delay
        self.texts: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.enter()
        try:
            self.texts.append(text)
            if self.delay:
                time.sleep(self.delay)
            if self.fail_when and self.fail_when(text):
                raise ConnectionError("embedding service unreachable")
            return [float((len(text) + i) % 10) / 10 for i in range(self.dimensions)]
        finally:
            self.exit()


@pytest.fixture
def no_wait_retry() -> RetryPolicy:
    """Three attempts without sleeping between them"""
    return RetryPolicy(max_attempts=3, base_delay=0.0, jitter=False, sleep=lambda _: None)


@pytest.fixture
def validation_provider() -> FakeValidationProvider:
    return FakeValidationProvider()


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def fake_validation_provider_cls():
    return FakeValidationProvider


@pytest.fixture
def fake_embedding_provider_cls():
    return FakeEmbeddingProvider


@pytest.fixture
def make_pipeline(no_wait_retry) -> Generator[Callable[..., ReportPipeline], None, None]:
    """
    Factory building an in-memory pipeline around the given providers

    Each call gets fresh breakers; pipelines are closed after the test.
    """
    created: list[ReportPipeline] = []

    def factory(
        validation_provider=None,
        embedding_provider=None,
        store=None,
        batch_size: int = 50,
        max_parallel: int = 3,
        group_timeout: float = 600.0,
        record_timeout: float = 600.0,
    ) -> ReportPipeline:
        pipeline = ReportPipeline(
            store if store is not None else InMemoryReportStore(),
            validation_stage=ReportValidationStage(
                validation_provider or FakeValidationProvider(),
                retry_policy=no_wait_retry,
                breaker=CircuitBreaker("validation"),
            ),
            embedding_stage=ReportEmbeddingStage(
                embedding_provider or FakeEmbeddingProvider(),
                dimensions=TEST_EMBEDDING_DIMENSIONS,
                retry_policy=no_wait_retry,
                breaker=CircuitBreaker("embedding", sliding_window_size=1000, minimum_calls=1000),
            ),
            config=ProcessingConfig(
                batch_size=batch_size,
                max_parallel=max_parallel,
                group_timeout_seconds=group_timeout,
                record_timeout_seconds=record_timeout,
            ),
        )
        created.append(pipeline)
        return pipeline

    yield factory

    for pipeline in created:
        pipeline.close()


# =======================
# CSV FIXTURES
# =======================

def csv_row(
    record_id: str,
    comment: str = "The health center has no medicines",
    age: str = "34",
    city: str = "manizales",
    category: str = "Salud",
    urgency: str = "Alta",
    report_date: str = "2023-08-11",
    government_attention: str = "No",
    rural: str = "No",
) -> str:
    """One 12-column data line; the comment is always quoted"""
    quoted = '"' + comment.replace('"', "") + '"'
    return ",".join(
        [record_id, "Ana", age, "F", city, quoted, category, urgency, report_date, "Yes", government_attention, rural]
    )


@pytest.fixture
def make_csv() -> Callable[[Iterable[str]], io.StringIO]:
    """Build an in-memory CSV stream (header + the given lines)"""

    def factory(lines: Iterable[str]) -> io.StringIO:
        return io.StringIO("\n".join([CSV_HEADER, *lines]) + "\n")

    return factory


@pytest.fixture
def make_row():
    return csv_row


@pytest.fixture(scope="session")
def test_data_dir() -> str:
    """
    Get path to test data fixtures directory

    Returns:
        Path to tests/fixtures directory
    """
    return os.path.join(os.path.dirname(__file__), "fixtures")


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container():
    """
    Start PostgreSQL container for integration tests

    Skipped when Docker is not available.

    Yields:
        PostgresContainer instance with the report schema applied
    """
    from testcontainers.postgres import PostgresContainer

    try:
        container = PostgresContainer(
            image="postgres:16.2-alpine",
            username="test_comunidata",
            password="test_password",
            dbname="test_comunidata",
            driver=None,
        )
        container.start()
    except Exception as e:
        pytest.skip(f"Docker not available for integration tests: {e}")

    try:
        init_sql_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)),
            "docker",
            "init-db.sql"
        )
        with open(init_sql_path, "r") as f:
            init_sql = f.read()

        with psycopg.connect(container.get_connection_url()) as conn:
            with conn.cursor() as cur:
                cur.execute(init_sql)
            conn.commit()

        yield container
    finally:
        container.stop()


@pytest.fixture(scope="function")
def db_pool(postgres_container):
    """
    Open connection pool against the test container, with an empty report table

    Yields:
        DatabaseConnectionPool
    """
    from comunidata.warehouse import DatabaseConnectionPool

    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_comunidata",
        user="test_comunidata",
        password="test_password",
    )
    pool.open()
    with pool.get_connection() as conn:
        conn.execute("TRUNCATE TABLE citizen_report")
        conn.commit()

    yield pool

    pool.close()


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture(scope="session")
def test_env_vars():
    """
    Set test environment variables

    This fixture loads config/test.env and sets environment variables
    """
    from dotenv import load_dotenv

    env_path = os.path.join(
        os.path.dirname(os.path.dirname(__file__)),
        "config",
        "test.env"
    )

    if os.path.exists(env_path):
        load_dotenv(env_path, override=True)

"""
Pipeline configuration management.

Loads processing, resilience and provider settings from a YAML file and
applies a small set of environment overrides.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError


DEFAULT_CONFIG_PATH = "config/pipeline.yaml"


class ProcessingConfig(BaseModel):
    """Batching and bounded-concurrency knobs."""

    batch_size: int = Field(50, ge=1)
    max_parallel: int = Field(3, ge=1)
    group_timeout_seconds: float = Field(600.0, gt=0)
    record_timeout_seconds: float = Field(600.0, gt=0)


class RetryConfig(BaseModel):
    """Retry with exponential backoff."""

    max_attempts: int = Field(3, ge=1)
    base_delay: float = Field(1.0, ge=0)
    max_delay: float = Field(10.0, ge=0)
    exponential_base: float = Field(2.0, ge=1.0)
    jitter: bool = True


class CircuitBreakerConfig(BaseModel):
    """Count-based sliding-window circuit breaker."""

    failure_rate_threshold: float = Field(50.0, gt=0, le=100)
    sliding_window_size: int = Field(10, ge=1)
    minimum_calls: int = Field(5, ge=1)
    open_timeout_seconds: float = Field(30.0, ge=0)
    half_open_max_calls: int = Field(1, ge=1)


class ProviderConfig(BaseModel):
    """Connection settings of one external AI service."""

    base_url: str = "https://api.openai.com/v1"
    model: str
    api_key_env: str = "OPENAI_API_KEY"
    timeout_seconds: float = Field(60.0, gt=0)

    def api_key(self) -> str | None:
        return os.getenv(self.api_key_env)


class EmbeddingProviderConfig(ProviderConfig):
    model: str = "text-embedding-3-small"
    dimensions: int = Field(1536, ge=1)


class ValidationProviderConfig(ProviderConfig):
    model: str = "gpt-4o-mini"
    temperature: float = Field(0.0, ge=0.0, le=2.0)


class PipelineConfig(BaseModel):
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    validation_provider: ValidationProviderConfig = Field(default_factory=ValidationProviderConfig)
    embedding_provider: EmbeddingProviderConfig = Field(default_factory=EmbeddingProviderConfig)


class PipelineConfigLoader:
    """
    Loads pipeline settings from a YAML configuration file.

    Expected YAML format:
    ```yaml
    processing:
      batch_size: 50
      max_parallel: 3
      group_timeout_seconds: 600

    retry:
      max_attempts: 3
      base_delay: 1.0

    circuit_breaker:
      failure_rate_threshold: 50
      sliding_window_size: 10
      open_timeout_seconds: 30

    embedding_provider:
      model: text-embedding-3-small
      dimensions: 1536
    ```

    Every section is optional. Environment variables COMUNIDATA_BATCH_SIZE
    and COMUNIDATA_MAX_PARALLEL override the processing section.
    """

    def __init__(self, config_path: str | Path | None = None):
        """
        Initialize the config loader.

        Args:
            config_path: Path to the YAML file (defaults to env var
                COMUNIDATA_CONFIG or config/pipeline.yaml)
        """
        self.config_path = Path(config_path or os.getenv("COMUNIDATA_CONFIG", DEFAULT_CONFIG_PATH))

    def load(self) -> PipelineConfig:
        """
        Load the configuration.

        Returns:
            PipelineConfig; defaults when the file does not exist

        Raises:
            ValueError: If the YAML is malformed or a value is out of range
        """
        raw: dict[str, Any] = {}
        if self.config_path.exists():
            with open(self.config_path) as f:
                try:
                    raw = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ValueError(f"Invalid YAML in {self.config_path}: {e}") from e
            if not isinstance(raw, dict):
                raise ValueError(f"Configuration file {self.config_path} must contain a mapping")

        self._apply_env_overrides(raw)

        try:
            return PipelineConfig.model_validate(raw)
        except ValidationError as e:
            raise ValueError(f"Invalid pipeline configuration: {e}") from e

    @staticmethod
    def _apply_env_overrides(raw: dict[str, Any]) -> None:
        processing = raw.setdefault("processing", {}) or {}
        raw["processing"] = processing
        for env_name, key in (
            ("COMUNIDATA_BATCH_SIZE", "batch_size"),
            ("COMUNIDATA_MAX_PARALLEL", "max_parallel"),
        ):
            value = os.getenv(env_name)
            if value:
                processing[key] = value


def load_pipeline_config(config_path: str | Path | None = None) -> PipelineConfig:
    """Convenience wrapper around PipelineConfigLoader."""
    return PipelineConfigLoader(config_path).load()

"""
Pipeline configuration.
"""

from .pipeline_config import (
    CircuitBreakerConfig,
    EmbeddingProviderConfig,
    PipelineConfig,
    PipelineConfigLoader,
    ProcessingConfig,
    ProviderConfig,
    RetryConfig,
    ValidationProviderConfig,
    load_pipeline_config,
)

__all__ = [
    "PipelineConfig",
    "PipelineConfigLoader",
    "ProcessingConfig",
    "ProviderConfig",
    "RetryConfig",
    "CircuitBreakerConfig",
    "ValidationProviderConfig",
    "EmbeddingProviderConfig",
    "load_pipeline_config",
]

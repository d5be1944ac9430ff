"""
AI enrichment: validation and embedding stages and their providers.
"""

from .embedding_stage import ReportEmbeddingStage, build_embedding_text
from .prompts import build_validation_prompt, parse_verdicts
from .providers import (
    ChatCompletionValidationProvider,
    EmbeddingProvider,
    OpenAIEmbeddingProvider,
    ValidationProvider,
)
from .validation_stage import ReportValidationStage

__all__ = [
    "ReportValidationStage",
    "ReportEmbeddingStage",
    "ValidationProvider",
    "EmbeddingProvider",
    "ChatCompletionValidationProvider",
    "OpenAIEmbeddingProvider",
    "build_validation_prompt",
    "build_embedding_text",
    "parse_verdicts",
]

"""
External AI service collaborators.

The stages depend only on the two protocols; the HTTP clients speak the
OpenAI-compatible chat-completions and embeddings APIs.
"""

from typing import Any, Protocol

import httpx

from comunidata.core.config import EmbeddingProviderConfig, ProviderConfig, ValidationProviderConfig
from comunidata.core.exceptions import EmbeddingResponseError, ValidationResponseError
from comunidata.observability.logger import get_logger

logger = get_logger(__name__)


class ValidationProvider(Protocol):
    """Classifies a batch of reports described in one natural-language prompt."""

    def complete(self, prompt: str) -> str:
        """Return the model's raw text answer."""
        ...


class EmbeddingProvider(Protocol):
    """Turns one text into a fixed-length vector."""

    def embed(self, text: str) -> list[float]:
        ...


class _HttpProvider:
    def __init__(self, config: ProviderConfig, client: httpx.Client | None = None):
        api_key = config.api_key()
        if not api_key:
            raise ValueError(
                f"API key for {config.base_url} must be provided. "
                f"Set the {config.api_key_env} environment variable."
            )
        self.config = config
        self._owns_client = client is None
        self.client = client or httpx.Client(
            base_url=config.base_url.rstrip("/"),
            timeout=config.timeout_seconds,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = self.client.post(path, json=payload)
        response.raise_for_status()
        return response.json()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class ChatCompletionValidationProvider(_HttpProvider):
    """Validation provider backed by a chat-completions endpoint."""

    def __init__(self, config: ValidationProviderConfig, client: httpx.Client | None = None):
        super().__init__(config, client)
        self.config: ValidationProviderConfig = config

    def complete(self, prompt: str) -> str:
        data = self._post(
            "/chat/completions",
            {
                "model": self.config.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": self.config.temperature,
            },
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ValidationResponseError(f"Unexpected chat completion payload: {e!r}") from e
        if not isinstance(content, str):
            raise ValidationResponseError("Chat completion returned no text content")
        return content


class OpenAIEmbeddingProvider(_HttpProvider):
    """Embedding provider backed by an embeddings endpoint."""

    def __init__(self, config: EmbeddingProviderConfig, client: httpx.Client | None = None):
        super().__init__(config, client)
        self.config: EmbeddingProviderConfig = config

    def embed(self, text: str) -> list[float]:
        data = self._post(
            "/embeddings",
            {
                "model": self.config.model,
                "input": text,
                "dimensions": self.config.dimensions,
            },
        )
        try:
            return [float(v) for v in data["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingResponseError(f"Unexpected embeddings payload: {e!r}") from e

"""
Unit tests for the HTTP provider clients, using httpx.MockTransport.
"""

import json

import httpx
import pytest

from comunidata.core.config import EmbeddingProviderConfig, ValidationProviderConfig
from comunidata.core.exceptions import EmbeddingResponseError, ValidationResponseError
from comunidata.enrichment import ChatCompletionValidationProvider, OpenAIEmbeddingProvider


pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def api_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")


def client_for(handler) -> httpx.Client:
    return httpx.Client(base_url="https://ai.test/v1", transport=httpx.MockTransport(handler))


class TestChatCompletionValidationProvider:
    def test_posts_prompt_and_returns_content(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "[]"}}]})

        provider = ChatCompletionValidationProvider(ValidationProviderConfig(), client=client_for(handler))

        assert provider.complete("classify these") == "[]"
        assert seen["path"] == "/v1/chat/completions"
        assert seen["body"]["model"] == "gpt-4o-mini"
        assert seen["body"]["messages"] == [{"role": "user", "content": "classify these"}]

    def test_http_error_propagates(self):
        provider = ChatCompletionValidationProvider(
            ValidationProviderConfig(),
            client=client_for(lambda request: httpx.Response(503)),
        )
        with pytest.raises(httpx.HTTPStatusError):
            provider.complete("x")

    def test_malformed_payload_is_response_error(self):
        provider = ChatCompletionValidationProvider(
            ValidationProviderConfig(),
            client=client_for(lambda request: httpx.Response(200, json={"choices": []})),
        )
        with pytest.raises(ValidationResponseError):
            provider.complete("x")

    def test_missing_api_key_rejected(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY")
        with pytest.raises(ValueError) as exc_info:
            ChatCompletionValidationProvider(ValidationProviderConfig())
        assert "OPENAI_API_KEY" in str(exc_info.value)


class TestOpenAIEmbeddingProvider:
    def test_returns_vector(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2, 0.3]}]})

        provider = OpenAIEmbeddingProvider(EmbeddingProviderConfig(dimensions=3), client=client_for(handler))

        assert provider.embed("text") == [0.1, 0.2, 0.3]
        assert seen["body"] == {"model": "text-embedding-3-small", "input": "text", "dimensions": 3}

    def test_malformed_payload_is_response_error(self):
        provider = OpenAIEmbeddingProvider(
            EmbeddingProviderConfig(),
            client=client_for(lambda request: httpx.Response(200, json={"data": []})),
        )
        with pytest.raises(EmbeddingResponseError):
            provider.embed("text")

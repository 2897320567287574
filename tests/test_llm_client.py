"""Tests for provider adapters and the LLM client."""

import json
import threading
import time

import httpx
import pytest

from vocaltasks.config import Settings
from vocaltasks.services.errors import (
    EmptyResponseError,
    NoCredentialConfiguredError,
    ProviderUnavailableError,
)
from vocaltasks.services.llm_client import (
    DEFAULT_MODELS,
    GeminiProvider,
    LLMClient,
    LLMProvider,
    LLMResponse,
    OpenAIProvider,
    ProviderConfig,
    build_provider,
    estimate_cost,
    get_llm_client,
    reset_llm_client,
    strip_code_fence,
)


def gemini_body(text, prompt_tokens=12, output_tokens=8):
    return {
        "candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}],
        "usageMetadata": {"promptTokenCount": prompt_tokens, "candidatesTokenCount": output_tokens},
    }


def openai_body(content):
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 20, "completion_tokens": 10},
    }


def mock_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


class FakeProvider:
    """Stand-in adapter recording prompts."""

    def __init__(self, text='{"title": "T", "note": "N"}', error=None):
        self.text = text
        self.error = error
        self.prompts = []
        self.closed = False

    def complete(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return LLMResponse(
            text=self.text,
            provider=LLMProvider.GEMINI,
            model="gemini-2.5-flash",
            tokens_input=100,
            tokens_output=50,
            latency_ms=40,
            cost_usd=0.0001,
        )

    def close(self):
        self.closed = True


class TestStripCodeFence:
    """Tests for markdown fence removal."""

    def test_json_fence(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_inline_fence(self):
        assert strip_code_fence('```json {"a": 1}```') == '{"a": 1}'

    def test_surrounding_whitespace(self):
        assert strip_code_fence('  \n```json\n{"a": 1}\n```\n  ') == '{"a": 1}'

    def test_no_fence(self):
        assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'

    def test_multiline_body_kept(self):
        fenced = '```json\n{\n  "a": 1,\n  "b": 2\n}\n```'
        assert json.loads(strip_code_fence(fenced)) == {"a": 1, "b": 2}


class TestEstimateCost:
    """Tests for cost estimation."""

    def test_known_model(self):
        assert estimate_cost("gpt-4o-mini", 1_000_000, 1_000_000) == pytest.approx(0.75)

    def test_unknown_model_uses_conservative_rate(self):
        assert estimate_cost("mystery", 1_000_000, 0) == pytest.approx(1.0)


class TestProviderConfig:
    """Tests for provider selection."""

    def test_gemini_preferred(self):
        config = ProviderConfig.resolve(gemini_api_key="g-key", openai_api_key="o-key")
        assert config.provider == LLMProvider.GEMINI
        assert config.model == DEFAULT_MODELS[LLMProvider.GEMINI]
        assert config.is_configured

    def test_openai_when_only_openai(self):
        config = ProviderConfig.resolve(openai_api_key="o-key")
        assert config.provider == LLMProvider.OPENAI
        assert config.model == "gpt-4o-mini"

    def test_placeholder_gemini_key_is_ignored(self):
        config = ProviderConfig.resolve(
            gemini_api_key="your_api_key_here", openai_api_key="o-key"
        )
        assert config.provider == LLMProvider.OPENAI

    def test_nothing_configured(self):
        config = ProviderConfig.resolve()
        assert config.provider == LLMProvider.GEMINI
        assert not config.is_configured

    def test_only_placeholders(self):
        config = ProviderConfig.resolve(gemini_api_key="changeme", openai_api_key="dummy-key")
        assert not config.is_configured

    def test_model_override(self):
        config = ProviderConfig.resolve(openai_api_key="o-key", model="llama-3.1-70b")
        assert config.model == "llama-3.1-70b"
        assert config.api_key == "o-key"

    def test_base_url_trailing_slash(self):
        config = ProviderConfig.resolve(
            openai_api_key="o-key", openai_base_url="https://llm.example.test/v1/"
        )
        assert config.base_url == "https://llm.example.test/v1"

    def test_repr_hides_keys(self):
        config = ProviderConfig.resolve(gemini_api_key="super-secret")
        assert "super-secret" not in repr(config)

    def test_from_settings(self):
        settings = Settings(
            _env_file=None,
            gemini_api_key="",
            openai_api_key="o-key",
            openai_base_url="https://llm.example.test/v1",
            ai_model="mistral-small",
            llm_timeout_seconds=5,
        )
        config = ProviderConfig.from_settings(settings)

        assert config.provider == LLMProvider.OPENAI
        assert config.model == "mistral-small"
        assert config.openai_base_url == "https://llm.example.test/v1"
        assert config.timeout == 5


class TestGeminiProvider:
    """Tests for the Gemini adapter."""

    def test_request_shape(self):
        seen = {}

        def handler(request):
            seen["url"] = request.url
            seen["api_key"] = request.headers["x-goog-api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=gemini_body('{"title": "T"}'))

        provider = GeminiProvider(api_key="g-key", client=mock_client(handler))
        response = provider.complete("Bonjour")

        assert seen["url"].path == "/v1beta/models/gemini-2.5-flash:generateContent"
        assert seen["api_key"] == "g-key"
        assert "key" not in seen["url"].params
        assert seen["body"] == {"contents": [{"role": "user", "parts": [{"text": "Bonjour"}]}]}
        assert response.text == '{"title": "T"}'
        assert response.provider == LLMProvider.GEMINI
        assert response.tokens_input == 12
        assert response.tokens_output == 8

    def test_fenced_completion_is_unwrapped(self):
        def handler(request):
            return httpx.Response(200, json=gemini_body('```json\n{"title": "T"}\n```'))

        provider = GeminiProvider(api_key="g-key", client=mock_client(handler))
        assert provider.complete("x").text == '{"title": "T"}'

    def test_missing_usage_is_estimated(self):
        def handler(request):
            body = {"candidates": [{"content": {"parts": [{"text": "abcdefgh"}]}}]}
            return httpx.Response(200, json=body)

        provider = GeminiProvider(api_key="g-key", client=mock_client(handler))
        response = provider.complete("x" * 40)
        assert response.tokens_input == 10
        assert response.tokens_output == 2

    def test_no_candidates(self):
        def handler(request):
            return httpx.Response(200, json={"candidates": []})

        provider = GeminiProvider(api_key="g-key", client=mock_client(handler))
        with pytest.raises(EmptyResponseError):
            provider.complete("x")

    def test_whitespace_only_completion(self):
        def handler(request):
            return httpx.Response(200, json=gemini_body("  \n "))

        provider = GeminiProvider(api_key="g-key", client=mock_client(handler))
        with pytest.raises(EmptyResponseError):
            provider.complete("x")

    def test_http_error_status(self):
        def handler(request):
            return httpx.Response(503, json={"error": "overloaded"})

        provider = GeminiProvider(api_key="g-key", client=mock_client(handler))
        with pytest.raises(ProviderUnavailableError):
            provider.complete("x")

    def test_error_message_has_status_without_key(self):
        def handler(request):
            return httpx.Response(401, json={"error": "API key not valid"})

        provider = GeminiProvider(api_key="SECRET-KEY-123", client=mock_client(handler))
        with pytest.raises(ProviderUnavailableError) as exc_info:
            provider.complete("x")

        assert "401" in str(exc_info.value)
        assert "SECRET-KEY-123" not in str(exc_info.value)

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = GeminiProvider(api_key="g-key", client=mock_client(handler))
        with pytest.raises(ProviderUnavailableError):
            provider.complete("x")

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        provider = GeminiProvider(api_key="g-key", client=mock_client(handler))
        with pytest.raises(ProviderUnavailableError):
            provider.complete("x")

    def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        provider = GeminiProvider(api_key="g-key", client=mock_client(handler))
        with pytest.raises(ProviderUnavailableError):
            provider.complete("x")

    def test_json_array_body(self):
        def handler(request):
            return httpx.Response(200, json=[1, 2, 3])

        provider = GeminiProvider(api_key="g-key", client=mock_client(handler))
        with pytest.raises(ProviderUnavailableError):
            provider.complete("x")

    def test_injected_client_not_closed(self):
        client = mock_client(lambda request: httpx.Response(200, json=gemini_body("x")))
        provider = GeminiProvider(api_key="g-key", client=client)
        provider.close()
        assert not client.is_closed


class TestOpenAIProvider:
    """Tests for the OpenAI-compatible adapter."""

    def test_request_shape(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=openai_body('{"title": "T"}'))

        provider = OpenAIProvider(
            api_key="o-key",
            base_url="https://llm.example.test/v1/",
            client=mock_client(handler),
        )
        response = provider.complete("Bonjour")

        assert seen["url"] == "https://llm.example.test/v1/chat/completions"
        assert seen["auth"] == "Bearer o-key"
        assert seen["body"] == {
            "model": "gpt-4o-mini",
            "messages": [{"role": "user", "content": "Bonjour"}],
            "temperature": 0.1,
            "max_tokens": 200,
        }
        assert response.text == '{"title": "T"}'
        assert response.tokens_input == 20
        assert response.tokens_output == 10

    def test_null_content(self):
        def handler(request):
            return httpx.Response(200, json=openai_body(None))

        provider = OpenAIProvider(api_key="o-key", client=mock_client(handler))
        with pytest.raises(EmptyResponseError):
            provider.complete("x")

    def test_unauthorized(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "bad key"}})

        provider = OpenAIProvider(api_key="o-key", client=mock_client(handler))
        with pytest.raises(ProviderUnavailableError):
            provider.complete("x")


class TestBuildProvider:
    """Tests for adapter construction from a config."""

    def test_openai_adapter_from_config(self):
        config = ProviderConfig.resolve(
            openai_api_key="o-key",
            openai_base_url="https://llm.example.test/v1",
            model="local-model",
            timeout=7,
        )
        adapter = build_provider(config, mock_client(lambda r: None))

        assert isinstance(adapter, OpenAIProvider)
        assert adapter.api_key == "o-key"
        assert adapter.model == "local-model"
        assert adapter.base_url == "https://llm.example.test/v1"
        assert adapter.timeout == 7


class TestLLMClient:
    """Tests for LLMClient routing, laziness and stats."""

    def test_no_credential(self):
        calls = []
        client = LLMClient(ProviderConfig.resolve(), factory=lambda *a: calls.append(a))

        assert not client.is_available
        with pytest.raises(NoCredentialConfiguredError):
            client.complete("x")
        assert calls == []

    def test_adapter_built_lazily_once(self):
        built = []

        def factory(config, http_client):
            built.append(config.provider)
            return FakeProvider()

        client = LLMClient(ProviderConfig.resolve(gemini_api_key="g-key"), factory=factory)
        assert built == []

        client.complete("a")
        client.complete("b")
        assert built == [LLMProvider.GEMINI]
        assert client.get_provider() is client.get_provider()

    def test_concurrent_first_use_builds_one_adapter(self):
        built = []
        barrier = threading.Barrier(8)

        def factory(config, http_client):
            built.append(config.provider)
            time.sleep(0.05)
            return FakeProvider()

        client = LLMClient(ProviderConfig.resolve(gemini_api_key="g-key"), factory=factory)
        adapters = []

        def worker():
            barrier.wait()
            adapters.append(client.get_provider())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(built) == 1
        assert len({id(adapter) for adapter in adapters}) == 1

    def test_http_client_passed_to_factory(self):
        http_client = mock_client(lambda request: httpx.Response(200, json=gemini_body("ok")))
        client = LLMClient(ProviderConfig.resolve(gemini_api_key="g-key"), http_client=http_client)

        assert client.complete("x").text == "ok"

    def test_stats(self):
        fake = FakeProvider()
        client = LLMClient(
            ProviderConfig.resolve(gemini_api_key="g-key"), factory=lambda *a: fake
        )
        client.complete("a")
        client.complete("b")

        stats = client.get_stats()
        assert stats["requests"] == 2
        assert stats["tokens_input"] == 200
        assert stats["tokens_output"] == 100
        assert stats["avg_latency_ms"] == 40.0
        assert stats["errors"] == 0
        assert stats["provider"] == "gemini"

    def test_errors_counted_and_propagated(self):
        fake = FakeProvider(error=ProviderUnavailableError("down"))
        client = LLMClient(
            ProviderConfig.resolve(gemini_api_key="g-key"), factory=lambda *a: fake
        )

        with pytest.raises(ProviderUnavailableError):
            client.complete("x")
        assert client.get_stats()["errors"] == 1
        assert client.get_stats()["requests"] == 0

    def test_close_closes_adapters(self):
        fake = FakeProvider()
        client = LLMClient(
            ProviderConfig.resolve(gemini_api_key="g-key"), factory=lambda *a: fake
        )
        client.get_provider()
        client.close()
        assert fake.closed


class TestLLMClientSingleton:
    """Tests for the process-wide client."""

    def setup_method(self):
        reset_llm_client()

    def teardown_method(self):
        reset_llm_client()

    def test_singleton_built_from_settings(self, monkeypatch):
        from vocaltasks.config import settings

        monkeypatch.setattr(settings, "gemini_api_key", "")
        monkeypatch.setattr(settings, "openai_api_key", "o-key")
        monkeypatch.setattr(settings, "ai_model", "")

        client = get_llm_client()
        assert client is get_llm_client()
        assert client.primary_provider == LLMProvider.OPENAI
        assert client.is_available

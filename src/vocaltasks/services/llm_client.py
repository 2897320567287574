"""Provider adapters for generative-text backends, with lazy client construction."""

from __future__ import annotations

import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from vocaltasks.config import is_usable_api_key
from vocaltasks.services.errors import (
    EmptyResponseError,
    NoCredentialConfiguredError,
    ProviderUnavailableError,
)

if TYPE_CHECKING:
    from vocaltasks.config import Settings

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TIMEOUT_SECONDS = 30.0


class LLMProvider(str, Enum):
    """Supported LLM providers."""

    GEMINI = "gemini"
    OPENAI = "openai"


DEFAULT_MODELS: dict[LLMProvider, str] = {
    LLMProvider.GEMINI: "gemini-2.5-flash",
    LLMProvider.OPENAI: "gpt-4o-mini",
}

# Cost per 1M tokens (input/output)
PROVIDER_COSTS: dict[str, tuple[float, float]] = {
    "gemini-2.0-flash": (0.10, 0.40),
    "gemini-2.0-flash-lite": (0.075, 0.30),
    "gemini-2.5-flash-lite": (0.075, 0.30),
    "gemini-2.5-flash": (0.15, 0.60),
    "gemini-2.5-pro": (1.25, 5.00),
    "gpt-4o": (2.50, 10.00),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4-turbo": (10.00, 30.00),
}


def estimate_cost(model: str, tokens_input: int, tokens_output: int) -> float:
    """Estimate cost in USD for a request."""
    if model not in PROVIDER_COSTS:
        # Default to a conservative estimate for unknown models
        return (tokens_input * 1.0 + tokens_output * 3.0) / 1_000_000
    input_cost, output_cost = PROVIDER_COSTS[model]
    return (tokens_input * input_cost + tokens_output * output_cost) / 1_000_000


_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def strip_code_fence(text: str) -> str:
    """Remove a markdown code fence wrapping the whole completion, then trim."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = _FENCE_OPEN.sub("", stripped, count=1)
        stripped = _FENCE_CLOSE.sub("", stripped, count=1)
    return stripped.strip()


@dataclass(frozen=True)
class ProviderConfig:
    """Resolved provider selection: backend, model, credentials, endpoints.

    Computed once (usually from settings) and passed to whoever needs it.
    """

    provider: LLMProvider
    model: str
    gemini_api_key: str = field(default="", repr=False)
    openai_api_key: str = field(default="", repr=False)
    gemini_base_url: str = GEMINI_BASE_URL
    openai_base_url: str = OPENAI_BASE_URL
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def resolve(
        cls,
        *,
        gemini_api_key: str = "",
        openai_api_key: str = "",
        model: str | None = None,
        gemini_base_url: str | None = None,
        openai_base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> ProviderConfig:
        """Pick Gemini if its key is usable, else OpenAI if its key is usable, else Gemini."""
        if is_usable_api_key(gemini_api_key):
            provider = LLMProvider.GEMINI
        elif is_usable_api_key(openai_api_key):
            provider = LLMProvider.OPENAI
        else:
            provider = LLMProvider.GEMINI

        return cls(
            provider=provider,
            model=model or DEFAULT_MODELS[provider],
            gemini_api_key=gemini_api_key,
            openai_api_key=openai_api_key,
            gemini_base_url=(gemini_base_url or GEMINI_BASE_URL).rstrip("/"),
            openai_base_url=(openai_base_url or OPENAI_BASE_URL).rstrip("/"),
            timeout=timeout,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> ProviderConfig:
        return cls.resolve(
            gemini_api_key=settings.gemini_api_key,
            openai_api_key=settings.openai_api_key,
            model=settings.ai_model or None,
            gemini_base_url=settings.gemini_base_url,
            openai_base_url=settings.openai_base_url,
            timeout=settings.llm_timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        """True if any usable (non-placeholder) credential is present."""
        return is_usable_api_key(self.gemini_api_key) or is_usable_api_key(self.openai_api_key)

    @property
    def api_key(self) -> str:
        """Credential of the selected provider."""
        if self.provider == LLMProvider.GEMINI:
            return self.gemini_api_key
        return self.openai_api_key

    @property
    def base_url(self) -> str:
        if self.provider == LLMProvider.GEMINI:
            return self.gemini_base_url
        return self.openai_base_url


@dataclass
class LLMResponse:
    """Standardized response from any LLM provider."""

    text: str
    provider: LLMProvider
    model: str
    tokens_input: int = 0
    tokens_output: int = 0
    latency_ms: int = 0
    cost_usd: float = 0.0
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class LLMUsageStats:
    """Usage statistics for a provider."""

    total_requests: int = 0
    total_tokens_input: int = 0
    total_tokens_output: int = 0
    total_cost_usd: float = 0.0
    total_latency_ms: int = 0
    errors: int = 0
    last_request_at: datetime | None = None

    @property
    def avg_latency_ms(self) -> float:
        """Average latency per request."""
        if self.total_requests == 0:
            return 0.0
        return self.total_latency_ms / self.total_requests


class BaseLLMProvider(ABC):
    """Submit a prompt, get back the completion text."""

    provider: LLMProvider
    default_base_url: str

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        base_url: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.api_key = api_key
        self.model = model or DEFAULT_MODELS[self.provider]
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout = timeout
        if client is None:
            self._client = httpx.Client(timeout=timeout)
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            self._client.close()

    @abstractmethod
    def _send(self, prompt: str) -> httpx.Response:
        """Issue the HTTP request for ``prompt``."""
        ...

    @abstractmethod
    def _extract_text(self, data: dict[str, Any]) -> str: ...

    @abstractmethod
    def _extract_usage(self, data: dict[str, Any]) -> tuple[int | None, int | None]: ...

    def complete(self, prompt: str) -> LLMResponse:
        """Send the prompt and return the unfenced, trimmed completion.

        Raises:
            ProviderUnavailableError: Transport failure, timeout, non-2xx or non-JSON body.
            EmptyResponseError: The provider returned no text.
        """
        start_time = time.time()
        try:
            response = self._send(prompt)
            response.raise_for_status()
            data = response.json()
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        except httpx.HTTPStatusError as exc:
            # str(exc) embeds the request URL; report the status only
            raise ProviderUnavailableError(
                f"{self.provider.value} returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(
                f"{self.provider.value} request failed: {type(exc).__name__}: {exc}"
            ) from exc
        except ValueError as exc:
            raise ProviderUnavailableError(
                f"{self.provider.value} returned a non-JSON body: {exc}"
            ) from exc

        latency_ms = int((time.time() - start_time) * 1000)

        text = strip_code_fence(self._extract_text(data) or "")
        if not text:
            raise EmptyResponseError(f"Empty response from {self.provider.value}")

        tokens_input, tokens_output = self._extract_usage(data)
        tokens_input = tokens_input if tokens_input is not None else self._estimate_tokens(prompt)
        tokens_output = tokens_output if tokens_output is not None else self._estimate_tokens(text)

        return LLMResponse(
            text=text,
            provider=self.provider,
            model=self.model,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            latency_ms=latency_ms,
            cost_usd=estimate_cost(self.model, tokens_input, tokens_output),
            raw_response=data,
        )

    def _estimate_tokens(self, text: str) -> int:
        """Rough token estimate (4 chars per token)."""
        return max(1, len(text) // 4)


class GeminiProvider(BaseLLMProvider):
    """Google Gemini API provider."""

    provider = LLMProvider.GEMINI
    default_base_url = GEMINI_BASE_URL

    def _send(self, prompt: str) -> httpx.Response:
        return self._client.post(
            f"{self.base_url}/models/{self.model}:generateContent",
            headers={"x-goog-api-key": self.api_key},
            json={"contents": [{"role": "user", "parts": [{"text": prompt}]}]},
        )

    def _extract_text(self, data: dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        for part in parts:
            if part.get("text"):
                return part["text"]
        return ""

    def _extract_usage(self, data: dict[str, Any]) -> tuple[int | None, int | None]:
        usage = data.get("usageMetadata") or {}
        return usage.get("promptTokenCount"), usage.get("candidatesTokenCount")


class OpenAIProvider(BaseLLMProvider):
    """OpenAI-compatible chat completions provider."""

    provider = LLMProvider.OPENAI
    default_base_url = OPENAI_BASE_URL
    temperature = 0.1
    max_tokens = 200

    def _send(self, prompt: str) -> httpx.Response:
        return self._client.post(
            f"{self.base_url}/chat/completions",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": self.temperature,
                "max_tokens": self.max_tokens,
            },
        )

    def _extract_text(self, data: dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""

    def _extract_usage(self, data: dict[str, Any]) -> tuple[int | None, int | None]:
        usage = data.get("usage") or {}
        return usage.get("prompt_tokens"), usage.get("completion_tokens")


PROVIDER_CLASSES: dict[LLMProvider, type[BaseLLMProvider]] = {
    LLMProvider.GEMINI: GeminiProvider,
    LLMProvider.OPENAI: OpenAIProvider,
}

ProviderFactory = Callable[[ProviderConfig, httpx.Client | None], BaseLLMProvider]


def build_provider(config: ProviderConfig, client: httpx.Client | None = None) -> BaseLLMProvider:
    return PROVIDER_CLASSES[config.provider](
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        client=client,
        timeout=config.timeout,
    )


class LLMClient:
    """Sends prompts to the configured provider and tracks usage.

    The provider adapter is built on first use. Construction is guarded by a
    lock so concurrent first calls share a single instance.
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        http_client: httpx.Client | None = None,
        factory: ProviderFactory = build_provider,
    ) -> None:
        self._config = config
        self._http_client = http_client
        self._factory = factory
        self._provider: BaseLLMProvider | None = None
        self._stats = LLMUsageStats()
        self._lock = threading.Lock()

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def primary_provider(self) -> LLMProvider:
        """The provider selected by configuration."""
        return self._config.provider

    @property
    def is_available(self) -> bool:
        """True if a usable credential is configured."""
        return self._config.is_configured

    def get_provider(self) -> BaseLLMProvider:
        """Return the adapter, building it on first use."""
        impl = self._provider
        if impl is not None:
            return impl

        with self._lock:
            if self._provider is None:
                logger.debug(
                    "Creating %s adapter (model=%s)",
                    self._config.provider.value,
                    self._config.model,
                )
                self._provider = self._factory(self._config, self._http_client)
            return self._provider

    def complete(self, prompt: str) -> LLMResponse:
        """Send ``prompt`` to the selected provider.

        Raises:
            NoCredentialConfiguredError: If no usable credential is configured.
            ProviderUnavailableError: If the request failed.
            EmptyResponseError: If the provider returned no text.
        """
        if not self.is_available:
            raise NoCredentialConfiguredError("No LLM provider credential configured")

        impl = self.get_provider()
        try:
            response = impl.complete(prompt)
        except Exception:
            with self._lock:
                self._stats.errors += 1
            raise

        with self._lock:
            stats = self._stats
            stats.total_requests += 1
            stats.total_tokens_input += response.tokens_input
            stats.total_tokens_output += response.tokens_output
            stats.total_cost_usd += response.cost_usd
            stats.total_latency_ms += response.latency_ms
            stats.last_request_at = datetime.now()

        return response

    def get_stats(self) -> dict[str, Any]:
        """Get usage statistics for the selected provider."""
        with self._lock:
            s = self._stats
            return {
                "provider": self._config.provider.value,
                "model": self._config.model,
                "requests": s.total_requests,
                "tokens_input": s.total_tokens_input,
                "tokens_output": s.total_tokens_output,
                "cost_usd": round(s.total_cost_usd, 4),
                "avg_latency_ms": round(s.avg_latency_ms, 1),
                "errors": s.errors,
            }

    def close(self) -> None:
        """Close the provider client."""
        with self._lock:
            if self._provider is not None:
                self._provider.close()
            self._provider = None


# Module-level singleton
_client: LLMClient | None = None
_client_lock = threading.Lock()


def get_llm_client() -> LLMClient:
    """Get or create the process-wide LLM client built from settings."""
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                from vocaltasks.config import settings

                _client = LLMClient(ProviderConfig.from_settings(settings))
    return _client


def reset_llm_client() -> None:
    """Close and drop the singleton (useful for testing)."""
    global _client
    with _client_lock:
        if _client is not None:
            _client.close()
        _client = None

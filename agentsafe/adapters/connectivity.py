"""
Provider connectivity checks.

Validates provider credentials and reachability before a provider is
enabled. Each check makes one small request shaped for the provider's API
with a fixed 10 second timeout. This is a precondition check, not part of
the enforcement path.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import aiohttp

logger = logging.getLogger("agentsafe.adapters.connectivity")

CONNECTION_TIMEOUT_SECONDS = 10.0
TIMEOUT_MESSAGE = "Connection timeout (10s exceeded)"

GOOGLE_BASE_URL = "https://generativelanguage.googleapis.com/v1"
OPENAI_BASE_URL = "https://api.openai.com/v1"
ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
OLLAMA_BASE_URL = "http://localhost:11434"
ANTHROPIC_VERSION = "2023-06-01"


@dataclass(frozen=True)
class ConnectionResult:
    """
    Outcome of a connectivity check.

    Attributes:
        success: Whether the provider answered successfully.
        message: Summary for display.
        latency: Round trip in milliseconds, on success.
        error: Failure detail, on failure.
    """

    success: bool
    message: str
    latency: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.latency is not None:
            result["latency"] = self.latency
        if self.error is not None:
            result["error"] = self.error
        return result


class ConnectionTester:
    """
    Tests connectivity to LLM providers.

    Supported provider kinds: google, openai, anthropic, ollama, custom.

    Example:
        Checking an OpenAI key::

            tester = ConnectionTester()
            result = await tester.test_connection("openai", api_key="sk-...")
            print(result.message)
    """

    def __init__(
        self,
        timeout: float = CONNECTION_TIMEOUT_SECONDS,
        google_base_url: str = GOOGLE_BASE_URL,
        anthropic_base_url: str = ANTHROPIC_BASE_URL,
    ) -> None:
        """
        Initialize the tester.

        Args:
            timeout: Total timeout of one check in seconds.
            google_base_url: Gemini API base URL.
            anthropic_base_url: Anthropic API base URL.
        """
        self._timeout = timeout
        self._google_base_url = google_base_url.rstrip("/")
        self._anthropic_base_url = anthropic_base_url.rstrip("/")

    async def test_connection(
        self,
        provider: str,
        api_key: str | None = None,
        base_url: str | None = None,
        endpoint: str | None = None,
        selected_model: str | None = None,
    ) -> ConnectionResult:
        """
        Test one provider configuration.

        Missing credentials are reported without a network call.

        Args:
            provider: Provider kind.
            api_key: API key. Required for every kind except ollama.
            base_url: Base URL (openai, ollama, custom).
            endpoint: Path appended to base_url (custom).
            selected_model: Model to address.

        Returns:
            ConnectionResult describing the outcome.
        """
        if provider != "ollama" and not api_key:
            return ConnectionResult(
                success=False,
                message="API key is required",
                error="Please provide an API key",
            )

        if provider == "google":
            return await self._test_google(api_key or "", selected_model or "gemini-pro")
        if provider == "openai":
            return await self._test_openai(
                api_key or "",
                (base_url or OPENAI_BASE_URL).rstrip("/"),
                selected_model or "gpt-3.5-turbo",
            )
        if provider == "anthropic":
            return await self._test_anthropic(
                api_key or "", selected_model or "claude-3-opus-20240229"
            )
        if provider == "ollama":
            return await self._test_ollama((base_url or OLLAMA_BASE_URL).rstrip("/"))
        if provider == "custom":
            if not base_url:
                return ConnectionResult(
                    success=False,
                    message="Base URL is required for custom providers",
                    error="Please provide a base URL",
                )
            return await self._test_custom(api_key, base_url, endpoint, selected_model or "default")

        return ConnectionResult(
            success=False,
            message="Unknown provider type",
            error=f"Provider '{provider}' is not supported",
        )

    async def _post(
        self,
        label: str,
        success_message: str,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> ConnectionResult:
        failure = f"Failed to connect to {label}"
        started = time.monotonic()
        timeout = aiohttp.ClientTimeout(total=self._timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    url, json=payload, headers=headers, params=params
                ) as response:
                    latency = int((time.monotonic() - started) * 1000)
                    if response.status < 400:
                        return ConnectionResult(True, success_message, latency=latency)
                    error = await self._error_detail(response)
                    return ConnectionResult(False, failure, error=error)
        except asyncio.TimeoutError:
            return ConnectionResult(False, failure, error=TIMEOUT_MESSAGE)
        except aiohttp.ClientError as e:
            return ConnectionResult(False, failure, error=str(e) or "Unknown network error")

    @staticmethod
    async def _error_detail(response: aiohttp.ClientResponse) -> str:
        """Extract ``error.message`` from a JSON error body, else the status line."""
        fallback = f"HTTP {response.status}: {response.reason}"
        try:
            body = await response.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            return fallback
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = body["error"].get("message")
            if message:
                return str(message)
        return fallback

    async def _test_google(self, api_key: str, model: str) -> ConnectionResult:
        return await self._post(
            "Google Gemini",
            f"Successfully connected to Google Gemini ({model})",
            f"{self._google_base_url}/models/{model}:generateContent",
            {"contents": [{"parts": [{"text": "test"}]}]},
            params={"key": api_key},
        )

    async def _test_openai(self, api_key: str, base_url: str, model: str) -> ConnectionResult:
        return await self._post(
            "OpenAI API",
            f"Successfully connected to OpenAI-compatible API ({model})",
            f"{base_url}/chat/completions",
            {"model": model, "messages": [{"role": "user", "content": "test"}], "max_tokens": 5},
            headers={"Authorization": f"Bearer {api_key}"},
        )

    async def _test_anthropic(self, api_key: str, model: str) -> ConnectionResult:
        return await self._post(
            "Anthropic API",
            f"Successfully connected to Anthropic Claude ({model})",
            f"{self._anthropic_base_url}/messages",
            {"model": model, "max_tokens": 10, "messages": [{"role": "user", "content": "test"}]},
            headers={"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION},
        )

    async def _test_custom(
        self, api_key: str | None, base_url: str, endpoint: str | None, model: str
    ) -> ConnectionResult:
        base_url = base_url.rstrip("/")
        url = f"{base_url}{endpoint}" if endpoint else f"{base_url}/chat/completions"
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        return await self._post(
            "custom provider",
            "Successfully connected to custom provider",
            url,
            {"model": model, "messages": [{"role": "user", "content": "test"}], "max_tokens": 5},
            headers=headers,
        )

    async def _test_ollama(self, base_url: str) -> ConnectionResult:
        failure = "Failed to connect to Ollama"
        started = time.monotonic()
        timeout = aiohttp.ClientTimeout(total=self._timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(f"{base_url}/api/tags") as response:
                    latency = int((time.monotonic() - started) * 1000)
                    if response.status >= 400:
                        return ConnectionResult(
                            False, failure, error=f"HTTP {response.status}: {response.reason}"
                        )
                    data = await response.json(content_type=None)
        except asyncio.TimeoutError:
            return ConnectionResult(False, failure, error=TIMEOUT_MESSAGE)
        except (aiohttp.ClientError, ValueError):
            return ConnectionResult(False, failure, error="Is Ollama running on this machine?")

        models = data.get("models") if isinstance(data, dict) else None
        count = len(models) if isinstance(models, list) else 0
        return ConnectionResult(
            True, f"Successfully connected to Ollama ({count} models available)", latency=latency
        )

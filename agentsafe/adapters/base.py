"""
Model adapter boundary for Agent-SAFE Grid.

The gateway talks to upstream models through the ModelAdapter protocol.
An adapter returns the reply text and the token count the metering ledger
debits. Every adapter failure must surface as UpstreamError, so that it is
distinguishable from a policy block.
"""

import asyncio
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Sequence

from agentsafe.exceptions import UpstreamError, ValidationError
from agentsafe.models.messages import ChatMessage


class ProviderKind(Enum):
    """Upstream API families."""

    GOOGLE = "google"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"
    CUSTOM = "custom"


def estimate_tokens(text: str) -> int:
    """Estimate tokens for text without usage metadata: ceil(len / 4)."""
    return math.ceil(len(text) / 4)


@dataclass(frozen=True)
class ProviderConfig:
    """
    A configured upstream provider.

    Attributes:
        id: Identifier used to route chat turns.
        name: Display name.
        provider: API family.
        enabled: Disabled providers reject chat turns.
        api_key: Credential. Never logged or serialised.
        base_url: API base URL.
        endpoint: Path appended to base_url for custom providers.
        models: Models offered by the provider.
        selected_model: Model used for chat turns.
        priority: Routing preference, lower first.
        cost_per_1k: Price per thousand tokens.
    """

    id: str
    name: str = ""
    provider: ProviderKind = ProviderKind.CUSTOM
    enabled: bool = True
    api_key: str | None = field(default=None, repr=False)
    base_url: str | None = None
    endpoint: str | None = None
    models: tuple[str, ...] = ()
    selected_model: str | None = None
    priority: int = 1
    cost_per_1k: float = 0.0001

    def __post_init__(self) -> None:
        if self.cost_per_1k < 0:
            raise ValidationError(
                "cost_per_1k must be non-negative", details={"provider_id": self.id}
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary, without the API key."""
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider.value,
            "enabled": self.enabled,
            "has_api_key": bool(self.api_key),
            "base_url": self.base_url,
            "endpoint": self.endpoint,
            "models": list(self.models),
            "selected_model": self.selected_model,
            "priority": self.priority,
            "cost_per_1k": self.cost_per_1k,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProviderConfig":
        """
        Create a provider from configuration (camelCase or snake_case).

        Raises:
            ValidationError: If the provider kind is unknown.
        """
        kind = data.get("provider", "custom")
        try:
            provider = ProviderKind(kind)
        except ValueError as e:
            raise ValidationError(f"Unknown provider type: {kind}") from e
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            provider=provider,
            enabled=bool(data.get("enabled", True)),
            api_key=data.get("api_key", data.get("apiKey")),
            base_url=data.get("base_url", data.get("baseUrl")),
            endpoint=data.get("endpoint"),
            models=tuple(data.get("models", ())),
            selected_model=data.get("selected_model", data.get("selectedModel")),
            priority=int(data.get("priority", 1)),
            cost_per_1k=float(data.get("cost_per_1k", data.get("costPer1k", 0.0001))),
        )


DEFAULT_PROVIDERS = (
    ProviderConfig(
        id="gemini",
        name="Gemini 2.5 Flash",
        provider=ProviderKind.GOOGLE,
        models=("gemini-2.5-flash",),
        selected_model="gemini-2.5-flash",
        priority=1,
        cost_per_1k=0.0001,
    ),
    ProviderConfig(
        id="openai",
        name="GPT-4 Turbo",
        provider=ProviderKind.OPENAI,
        enabled=False,
        models=("gpt-4-turbo",),
        selected_model="gpt-4-turbo",
        priority=2,
        cost_per_1k=0.01,
    ),
    ProviderConfig(
        id="llama",
        name="Llama 3 70B",
        provider=ProviderKind.OLLAMA,
        enabled=False,
        models=("llama3",),
        selected_model="llama3",
        priority=3,
        cost_per_1k=0.0005,
    ),
    ProviderConfig(
        id="anthropic",
        name="Claude 3 Opus",
        provider=ProviderKind.ANTHROPIC,
        enabled=False,
        models=("claude-3-opus-20240229",),
        selected_model="claude-3-opus-20240229",
        priority=4,
        cost_per_1k=0.015,
    ),
)


@dataclass(frozen=True)
class ModelReply:
    """
    A model response.

    Attributes:
        text: Reply text.
        tokens: Token usage reported for the call.
    """

    text: str
    tokens: int


class ModelAdapter(Protocol):
    """
    Protocol for upstream model clients.

    Implementations raise UpstreamError for every failure.
    """

    async def send(
        self,
        provider_id: str,
        system_instruction: str,
        history: Sequence[ChatMessage],
        message: str,
    ) -> ModelReply:
        """Send one message with its history and return the reply."""
        ...


class EchoAdapter:
    """
    Adapter that echoes the prompt back.

    Used for local development and tests. Token usage is estimated from
    the prompt and the reply.
    """

    def __init__(self, prefix: str = "Echo: ") -> None:
        self._prefix = prefix

    async def send(
        self,
        provider_id: str,
        system_instruction: str,
        history: Sequence[ChatMessage],
        message: str,
    ) -> ModelReply:
        text = f"{self._prefix}{message}"
        return ModelReply(text=text, tokens=estimate_tokens(message) + estimate_tokens(text))


class StaticAdapter:
    """
    Adapter returning a fixed reply, optionally after a delay or failing.

    Attributes:
        calls: Messages received, in order.
    """

    def __init__(
        self,
        text: str = "OK",
        tokens: int = 0,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self._text = text
        self._tokens = tokens
        self._delay = delay
        self._error = error
        self.calls: list[str] = []

    async def send(
        self,
        provider_id: str,
        system_instruction: str,
        history: Sequence[ChatMessage],
        message: str,
    ) -> ModelReply:
        self.calls.append(message)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return ModelReply(text=self._text, tokens=self._tokens)


class RoutingAdapter:
    """Dispatches each call to the adapter registered for its provider id."""

    def __init__(
        self,
        adapters: dict[str, ModelAdapter] | None = None,
        default: ModelAdapter | None = None,
    ) -> None:
        self._adapters = dict(adapters or {})
        self._default = default

    def register(self, provider_id: str, adapter: ModelAdapter) -> None:
        self._adapters[provider_id] = adapter

    async def send(
        self,
        provider_id: str,
        system_instruction: str,
        history: Sequence[ChatMessage],
        message: str,
    ) -> ModelReply:
        adapter = self._adapters.get(provider_id, self._default)
        if adapter is None:
            raise UpstreamError(
                f"No model adapter for provider: {provider_id}", provider_id=provider_id
            )
        return await adapter.send(provider_id, system_instruction, history, message)

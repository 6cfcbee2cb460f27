"""Model identifier resolution, curated model listings and the provider client pool.

Model identifiers name a provider and a model in one string. OpenAI models are
used bare (``gpt-4o-mini``); every other provider is addressed with a
``provider:model`` prefix (``anthropic:claude-sonnet-4-5``,
``ollama:llama3.1:8b``). Only the first ``:`` separates the two halves, and the
provider half is matched case-insensitively.

Model listing returns a static, versioned list per provider and never calls a
provider API, so the same call always yields the same answer regardless of
credentials or network reachability.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum

from .types import ChatClient, ErrorKind, PipelineError

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    OLLAMA = "ollama"

    @classmethod
    def parse(cls, name: str | ProviderKind) -> ProviderKind:
        if isinstance(name, ProviderKind):
            return name
        normalized = str(name).strip().lower()
        for kind in cls:
            if kind.value == normalized:
                return kind
        raise PipelineError(
            f"Unknown provider: '{name}'. Supported providers are: {SUPPORTED_PROVIDERS}",
            step="resolve_model",
            kind=ErrorKind.UNKNOWN_PROVIDER,
        )


SUPPORTED_PROVIDERS = ", ".join(kind.value for kind in ProviderKind)

CURATED_MODELS_VERSION = "2025-10"

CURATED_MODELS: dict[ProviderKind, tuple[str, ...]] = {
    ProviderKind.OPENAI: (
        "gpt-4o-mini",
        "gpt-4o",
        "gpt-4.1",
        "gpt-4.1-mini",
        "gpt-4.1-nano",
        "gpt-5",
        "gpt-5-mini",
        "o3-mini",
        "o4-mini",
    ),
    ProviderKind.ANTHROPIC: (
        "claude-sonnet-4-5",
        "claude-opus-4-1",
        "claude-haiku-4-5",
        "claude-3-7-sonnet-latest",
        "claude-3-5-haiku-latest",
    ),
    ProviderKind.GEMINI: (
        "gemini-2.5-pro",
        "gemini-2.5-flash",
        "gemini-2.5-flash-lite",
        "gemini-2.0-flash",
    ),
    ProviderKind.OLLAMA: (
        "llama3.1",
        "llama3.2",
        "qwen2.5-coder",
        "mistral",
        "gemma2",
    ),
}


@dataclass(frozen=True)
class ResolvedModel:
    provider: ProviderKind
    model: str

    @property
    def model_id(self) -> str:
        return qualify_model(self.provider, self.model)


def qualify_model(provider: ProviderKind, model: str) -> str:
    if provider is ProviderKind.OPENAI:
        return model
    return f"{provider.value}:{model}"


ClientFactory = Callable[[ProviderKind], ChatClient]


class ModelProviderRegistry:
    """Resolve model identifiers and hand out one shared chat client per provider.

    Clients are built on first use by ``client_factory`` and then reused; the
    pool is the only mutable state and is guarded by a lock, so concurrent
    pipeline invocations can share one registry.
    """

    def __init__(
        self,
        client_factory: ClientFactory | None = None,
        *,
        clients: Mapping[ProviderKind, ChatClient] | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._clients: dict[ProviderKind, ChatClient] = dict(clients or {})
        self._lock = threading.Lock()

    def resolve(self, model_id: str) -> ResolvedModel:
        text = (model_id or "").strip()
        if not text:
            raise PipelineError(
                "Model identifier must be a non-empty string",
                step="resolve_model",
                kind=ErrorKind.INVALID_REQUEST,
            )
        prefix, separator, remainder = text.partition(":")
        if not separator:
            return ResolvedModel(provider=ProviderKind.OPENAI, model=text)

        provider = ProviderKind.parse(prefix)
        model = remainder.strip()
        if not model:
            raise PipelineError(
                f"Model identifier '{model_id}' is missing a model name after the provider prefix",
                step="resolve_model",
                kind=ErrorKind.INVALID_REQUEST,
            )
        return ResolvedModel(provider=provider, model=model)

    def list_models(self, provider: str | ProviderKind | None = None) -> list[str]:
        """Return curated model identifiers for one provider, or for all when ``provider`` is None."""
        kinds = list(ProviderKind) if provider is None else [ProviderKind.parse(provider)]
        models: list[str] = []
        for kind in kinds:
            models.extend(qualify_model(kind, name) for name in CURATED_MODELS[kind])
        return models

    def client_for(self, provider: ProviderKind) -> ChatClient:
        client = self._clients.get(provider)
        if client is not None:
            return client
        with self._lock:
            client = self._clients.get(provider)
            if client is None:
                if self._client_factory is None:
                    raise PipelineError(
                        f"No chat client configured for provider '{provider.value}'",
                        step="resolve_model",
                        kind=ErrorKind.GENERATION_FAILED,
                    )
                logger.debug("Creating chat client for provider %s", provider.value)
                client = self._client_factory(provider)
                self._clients[provider] = client
        return client

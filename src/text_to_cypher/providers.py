"""Chat-completion adapters for the supported LLM providers.

Each adapter turns an ordered list of ``ChatMessage`` into one provider call
and returns the completion text. None of them retries: a failed call is
logged with whatever detail the SDK exposes and re-raised as a
``PipelineError`` of kind ``GENERATION_FAILED``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .conversation import ChatMessage, ChatRole
from .registry import ProviderKind
from .types import ChatClient, ErrorKind, PipelineError

try:  # pragma: no cover - optional dependency at runtime
    import openai  # type: ignore
except ImportError:  # pragma: no cover - handled lazily
    openai = None  # type: ignore

try:  # pragma: no cover - optional dependency at runtime
    import anthropic  # type: ignore
except ImportError:  # pragma: no cover - handled lazily
    anthropic = None  # type: ignore

try:  # pragma: no cover - optional dependency at runtime
    from google import genai  # type: ignore
    from google.genai import types as genai_types  # type: ignore
except ImportError:  # pragma: no cover - handled lazily
    genai = None  # type: ignore
    genai_types = None  # type: ignore

try:  # pragma: no cover - optional dependency at runtime
    import ollama  # type: ignore
except ImportError:  # pragma: no cover - handled lazily
    ollama = None  # type: ignore

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_HOST = "http://localhost:11434"


@dataclass(frozen=True)
class ProviderConfig:
    """Runtime settings shared by every provider adapter."""

    api_key: str | None = None
    timeout_seconds: float = 60.0
    temperature: float = 0.0
    max_tokens: int = 1024
    ollama_host: str = DEFAULT_OLLAMA_HOST


def _error_details(exc: BaseException) -> list[str]:
    parts: list[str] = []
    for attr, label in (("details", "Details"), ("code", "Code"), ("status_code", "Status"), ("reason", "Reason")):
        value = getattr(exc, attr, None)
        if value:
            parts.append(f"{label}: {value}")
    return parts


def _provider_failure(provider: str, model: str, exc: Exception, messages: Sequence[ChatMessage]) -> PipelineError:
    logger.warning(
        "%s API call failed: %s",
        provider,
        {
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
            "model": model,
            "message_count": len(messages),
            "prompt_length": sum(len(message.content) for message in messages),
        },
    )
    error_parts = [
        f"{provider} API call failed",
        f"Exception: {type(exc).__name__}",
        f"Message: {exc}",
        *_error_details(exc),
    ]
    return PipelineError(" | ".join(error_parts), step="complete", kind=ErrorKind.GENERATION_FAILED)


def _require_text(provider: str, text: object) -> str:
    if not isinstance(text, str) or not text.strip():
        raise PipelineError(
            f"{provider} response did not include text", step="complete", kind=ErrorKind.GENERATION_FAILED
        )
    return text


def _split_system(messages: Sequence[ChatMessage]) -> tuple[str, list[ChatMessage]]:
    system = [message.content for message in messages if message.role is ChatRole.SYSTEM]
    rest = [message for message in messages if message.role is not ChatRole.SYSTEM]
    return "\n\n".join(system), rest


class _ProviderBase:
    name = "provider"

    def __init__(self, config: ProviderConfig | None = None, client: object | None = None) -> None:
        self.config = config or ProviderConfig()
        self._client = client if client is not None else self._build_client()

    def _build_client(self) -> object:  # pragma: no cover - overridden
        raise NotImplementedError

    def complete(self, model: str, messages: Sequence[ChatMessage]) -> str:
        try:
            text = self._call_model(model, messages)
        except PipelineError:
            raise
        except Exception as exc:
            raise _provider_failure(self.name, model, exc, messages) from exc
        return _require_text(self.name, text)

    def _call_model(self, model: str, messages: Sequence[ChatMessage]) -> object:  # pragma: no cover - overridden
        raise NotImplementedError


class OpenAIChatClient(_ProviderBase, ChatClient):
    """OpenAI Chat Completions adapter."""

    name = "OpenAI"

    def _build_client(self) -> object:
        if openai is None:  # pragma: no cover - handled in production environment
            raise PipelineError("openai package is required for OpenAI models", kind=ErrorKind.GENERATION_FAILED)
        return openai.OpenAI(api_key=self.config.api_key, timeout=self.config.timeout_seconds)

    def _call_model(self, model: str, messages: Sequence[ChatMessage]) -> object:
        kwargs: dict[str, object] = {
            "model": model,
            "messages": [message.to_dict() for message in messages],
            "max_completion_tokens": self.config.max_tokens,
        }
        # Reasoning models only accept the default temperature.
        if not model.startswith(("o1", "o3", "o4", "gpt-5")):
            kwargs["temperature"] = self.config.temperature
        response = self._client.chat.completions.create(**kwargs)
        choices = getattr(response, "choices", None) or []
        if not choices:
            return None
        return choices[0].message.content


class AnthropicChatClient(_ProviderBase, ChatClient):
    """Anthropic Messages adapter; system messages travel in the ``system`` field."""

    name = "Anthropic"

    def _build_client(self) -> object:
        if anthropic is None:  # pragma: no cover - handled in production environment
            raise PipelineError(
                "anthropic package is required for Anthropic models", kind=ErrorKind.GENERATION_FAILED
            )
        return anthropic.Anthropic(api_key=self.config.api_key, timeout=self.config.timeout_seconds)

    def _call_model(self, model: str, messages: Sequence[ChatMessage]) -> object:
        system, rest = _split_system(messages)
        kwargs: dict[str, object] = {
            "model": model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": [message.to_dict() for message in rest],
        }
        if system:
            kwargs["system"] = system
        response = self._client.messages.create(**kwargs)
        blocks = getattr(response, "content", None) or []
        return "".join(getattr(block, "text", "") for block in blocks if getattr(block, "type", "text") == "text")


class GeminiChatClient(_ProviderBase, ChatClient):
    """Gemini adapter built on google-genai ``generate_content``."""

    name = "Gemini"

    def _build_client(self) -> object:
        if genai is None:  # pragma: no cover - handled in production environment
            raise PipelineError("google-genai package is required for Gemini models", kind=ErrorKind.GENERATION_FAILED)
        kwargs: dict[str, object] = {}
        if self.config.api_key:
            kwargs["api_key"] = self.config.api_key
        if genai_types is not None:
            kwargs["http_options"] = genai_types.HttpOptions(timeout=int(self.config.timeout_seconds * 1000))
        return genai.Client(**kwargs)  # type: ignore[call-arg]

    def _build_content_config(self, system: str) -> object | None:
        if genai_types is None:
            return None
        return genai_types.GenerateContentConfig(  # type: ignore[attr-defined]
            temperature=self.config.temperature,
            max_output_tokens=self.config.max_tokens,
            system_instruction=system or None,
        )

    def _call_model(self, model: str, messages: Sequence[ChatMessage]) -> object:
        system, rest = _split_system(messages)
        contents = [
            {
                "role": "model" if message.role is ChatRole.ASSISTANT else "user",
                "parts": [{"text": message.content}],
            }
            for message in rest
        ]
        kwargs: dict[str, object] = {"model": model, "contents": contents}
        config_payload = self._build_content_config(system)
        if config_payload is not None:
            kwargs["config"] = config_payload
        response = self._client.models.generate_content(**kwargs)
        return getattr(response, "text", None)


class OllamaChatClient(_ProviderBase, ChatClient):
    """Adapter for a local or remote Ollama server."""

    name = "Ollama"

    def _build_client(self) -> object:
        if ollama is None:  # pragma: no cover - handled in production environment
            raise PipelineError("ollama package is required for Ollama models", kind=ErrorKind.GENERATION_FAILED)
        return ollama.Client(host=self.config.ollama_host, timeout=self.config.timeout_seconds)

    def _call_model(self, model: str, messages: Sequence[ChatMessage]) -> object:
        response = self._client.chat(
            model=model,
            messages=[message.to_dict() for message in messages],
            options={"temperature": self.config.temperature, "num_predict": self.config.max_tokens},
        )
        return response["message"]["content"]


PROVIDER_CLIENTS: dict[ProviderKind, type[_ProviderBase]] = {
    ProviderKind.OPENAI: OpenAIChatClient,
    ProviderKind.ANTHROPIC: AnthropicChatClient,
    ProviderKind.GEMINI: GeminiChatClient,
    ProviderKind.OLLAMA: OllamaChatClient,
}


def build_chat_client(provider: ProviderKind, config: ProviderConfig) -> ChatClient:
    """Instantiate the SDK-backed chat client for ``provider``."""
    return PROVIDER_CLIENTS[provider](config=config)

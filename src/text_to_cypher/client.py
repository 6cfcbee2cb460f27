"""Application-facing client wiring the pipeline from configuration."""

from __future__ import annotations

import os
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .conversation import MessageInput
from .engine import PipelineOrchestrator, PipelineResponse
from .executor import Neo4jGraphStore, QueryExecutor
from .generator import QueryGenerator
from .providers import DEFAULT_OLLAMA_HOST, ProviderConfig, build_chat_client
from .registry import ModelProviderRegistry, ProviderKind
from .schema import SchemaDiscoverer
from .synthesizer import AnswerSynthesizer
from .types import ChatClient, GraphStore, PipelineConfig, PipelineError, TraceSink

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_NEO4J_URI = "bolt://localhost:7687"

PROVIDER_KEY_ENV = {
    ProviderKind.OPENAI: "OPENAI_API_KEY",
    ProviderKind.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderKind.GEMINI: "GOOGLE_API_KEY",
}


@dataclass(frozen=True)
class ClientConfig:
    """Model, AI credential and graph-store connection for one client."""

    model: str = DEFAULT_MODEL
    api_key: str | None = None
    neo4j_uri: str = DEFAULT_NEO4J_URI
    neo4j_user: str = "neo4j"
    neo4j_password: str = ""
    ollama_host: str = DEFAULT_OLLAMA_HOST
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    @classmethod
    def from_env(cls) -> ClientConfig:
        load_dotenv()
        pipeline = PipelineConfig(
            llm_timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "60")),
            neo4j_timeout_seconds=float(os.getenv("NEO4J_TIMEOUT_SECONDS", "15")),
        )
        return cls(
            model=os.getenv("TEXT_TO_CYPHER_MODEL", DEFAULT_MODEL).strip() or DEFAULT_MODEL,
            api_key=os.getenv("AI_API_KEY") or None,
            neo4j_uri=os.getenv("NEO4J_URI", DEFAULT_NEO4J_URI).strip() or DEFAULT_NEO4J_URI,
            neo4j_user=os.getenv("NEO4J_USER", "neo4j").strip(),
            neo4j_password=os.getenv("NEO4J_PASSWORD", ""),
            ollama_host=os.getenv("OLLAMA_HOST", DEFAULT_OLLAMA_HOST),
            pipeline=pipeline,
        )


class _ConfiguredClientFactory:
    """Build SDK chat clients on demand; the configured key goes to the configured model's provider."""

    def __init__(self, config: ClientConfig) -> None:
        self._config = config

    def _api_key_for(self, provider: ProviderKind) -> str | None:
        try:
            primary = ModelProviderRegistry().resolve(self._config.model).provider
        except PipelineError:
            primary = None
        if self._config.api_key and provider is primary:
            return self._config.api_key
        env_name = PROVIDER_KEY_ENV.get(provider)
        return os.getenv(env_name) if env_name else None

    def __call__(self, provider: ProviderKind) -> ChatClient:
        pipeline = self._config.pipeline
        provider_config = ProviderConfig(
            api_key=self._api_key_for(provider),
            timeout_seconds=pipeline.llm_timeout_seconds,
            temperature=pipeline.temperature,
            max_tokens=pipeline.max_tokens,
            ollama_host=self._config.ollama_host,
        )
        return build_chat_client(provider, provider_config)


class TextToCypherClient:
    """Ask questions of a graph in natural language.

    Construction only records configuration: the Neo4j driver and provider
    SDK clients are created the first time they are needed, so a bad key or an
    unreachable database surfaces as an error response, not at construction.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        store: GraphStore | None = None,
        registry: ModelProviderRegistry | None = None,
        trace: TraceSink | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        pipeline = self.config.pipeline
        self._store = store or Neo4jGraphStore(
            uri=self.config.neo4j_uri,
            user=self.config.neo4j_user,
            password=self.config.neo4j_password,
            config=pipeline,
        )
        self.registry = registry or ModelProviderRegistry(_ConfiguredClientFactory(self.config))
        self.engine = PipelineOrchestrator(
            registry=self.registry,
            discoverer=SchemaDiscoverer(store=self._store, config=pipeline),
            generator=QueryGenerator(registry=self.registry),
            executor=QueryExecutor(store=self._store),
            synthesizer=AnswerSynthesizer(registry=self.registry, char_budget=pipeline.result_char_budget),
            model_id=self.config.model,
            trace=trace,
        )

    @classmethod
    def from_env(cls, *, trace: TraceSink | None = None) -> TextToCypherClient:
        return cls(ClientConfig.from_env(), trace=trace)

    def text_to_cypher(
        self, graph_name: str, question: str | Iterable[MessageInput], *, cancel: threading.Event | None = None
    ) -> PipelineResponse:
        """Generate Cypher for ``question``, run it and answer in plain language."""
        return self.engine.text_to_cypher(graph_name, question, cancel=cancel)

    def text_to_cypher_with_messages(
        self, graph_name: str, messages: Iterable[MessageInput], *, cancel: threading.Event | None = None
    ) -> PipelineResponse:
        """Multi-turn variant: ``messages`` are ``{"role", "content"}`` mappings in chronological order."""
        return self.engine.text_to_cypher(graph_name, list(messages), cancel=cancel)

    def cypher_only(
        self, graph_name: str, question: str | Iterable[MessageInput], *, cancel: threading.Event | None = None
    ) -> PipelineResponse:
        return self.engine.cypher_only(graph_name, question, cancel=cancel)

    def discover_schema(self, graph_name: str) -> str:
        """Return the graph schema as JSON text; raises ``PipelineError`` on failure."""
        response = self.engine.discover_schema(graph_name)
        if not response.ok or response.schema is None:
            raise PipelineError(response.error or "Schema discovery failed", step=response.error_step, kind=response.error_kind)
        return response.schema.to_json()

    def list_models(self) -> list[str]:
        return self.list_models_by_provider(None)

    def list_models_by_provider(self, provider: str | ProviderKind | None) -> list[str]:
        response = self.engine.list_models(provider)
        if not response.ok or response.models is None:
            raise PipelineError(response.error or "Model listing failed", step=response.error_step, kind=response.error_kind)
        return response.models

    def close(self) -> None:
        close = getattr(self._store, "close", None)
        if callable(close):
            close()

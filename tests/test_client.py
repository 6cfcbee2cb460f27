"""Tests for configuration loading and the application-facing client."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from text_to_cypher import ClientConfig, TextToCypherClient
from text_to_cypher.client import DEFAULT_MODEL, DEFAULT_NEO4J_URI
from text_to_cypher.executor import Neo4jGraphStore
from text_to_cypher.registry import ProviderKind
from text_to_cypher.types import ErrorKind, PipelineError


def test_from_env_defaults(monkeypatch):
    for var in ("NEO4J_URI", "NEO4J_USER", "NEO4J_PASSWORD", "LLM_TIMEOUT_SECONDS", "NEO4J_TIMEOUT_SECONDS"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("text_to_cypher.client.load_dotenv", lambda: None)

    config = ClientConfig.from_env()

    assert config.model == DEFAULT_MODEL == "gpt-4o-mini"
    assert config.neo4j_uri == DEFAULT_NEO4J_URI == "bolt://localhost:7687"
    assert config.api_key is None
    assert config.pipeline.llm_timeout_seconds == 60.0


def test_from_env_reads_overrides(monkeypatch):
    monkeypatch.setattr("text_to_cypher.client.load_dotenv", lambda: None)
    monkeypatch.setenv("TEXT_TO_CYPHER_MODEL", "anthropic:claude-sonnet-4-5")
    monkeypatch.setenv("AI_API_KEY", "sk-ant")
    monkeypatch.setenv("NEO4J_URI", "neo4j://graph:7687")
    monkeypatch.setenv("NEO4J_USER", "reader")
    monkeypatch.setenv("NEO4J_PASSWORD", "secret")
    monkeypatch.setenv("LLM_TIMEOUT_SECONDS", "5")
    monkeypatch.setenv("NEO4J_TIMEOUT_SECONDS", "2.5")

    config = ClientConfig.from_env()

    assert config.model == "anthropic:claude-sonnet-4-5"
    assert config.api_key == "sk-ant"
    assert (config.neo4j_uri, config.neo4j_user, config.neo4j_password) == ("neo4j://graph:7687", "reader", "secret")
    assert config.pipeline.llm_timeout_seconds == 5.0
    assert config.pipeline.neo4j_timeout_seconds == 2.5


def test_construction_makes_no_connections(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("no connection expected at construction")

    monkeypatch.setattr("text_to_cypher.executor.GraphDatabase", SimpleNamespace(driver=fail))
    monkeypatch.setattr("text_to_cypher.providers.openai", SimpleNamespace(OpenAI=fail))

    client = TextToCypherClient(ClientConfig(api_key="sk-test", neo4j_password="bad"))

    assert isinstance(client._store, Neo4jGraphStore)
    client.close()


def test_unreachable_database_is_an_error_response(monkeypatch):
    def refuse(*args, **kwargs):
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr("text_to_cypher.executor.GraphDatabase", SimpleNamespace(driver=refuse))
    client = TextToCypherClient(ClientConfig())

    response = client.cypher_only("movies", "Which movies exist?")

    assert response.error_kind is ErrorKind.SCHEMA_DISCOVERY_FAILED
    assert "connection refused" in response.error


def test_api_key_goes_to_configured_provider(monkeypatch, movie_store):
    built: dict[str, dict[str, object]] = {}
    monkeypatch.setenv("OPENAI_API_KEY", "sk-openai-env")
    monkeypatch.setattr(
        "text_to_cypher.providers.anthropic",
        SimpleNamespace(Anthropic=lambda **kwargs: built.setdefault("anthropic", kwargs)),
    )
    monkeypatch.setattr(
        "text_to_cypher.providers.openai", SimpleNamespace(OpenAI=lambda **kwargs: built.setdefault("openai", kwargs))
    )
    client = TextToCypherClient(ClientConfig(model="anthropic:claude-haiku-4-5", api_key="sk-ant"), store=movie_store)

    client.registry.client_for(ProviderKind.ANTHROPIC)
    client.registry.client_for(ProviderKind.OPENAI)

    assert built["anthropic"]["api_key"] == "sk-ant"
    assert built["openai"]["api_key"] == "sk-openai-env"


def test_provider_clients_are_reused(monkeypatch, movie_store):
    created: list[dict[str, object]] = []
    monkeypatch.setattr(
        "text_to_cypher.providers.openai", SimpleNamespace(OpenAI=lambda **kwargs: created.append(kwargs) or object())
    )
    client = TextToCypherClient(ClientConfig(api_key="sk-test"), store=movie_store)

    first = client.registry.client_for(ProviderKind.OPENAI)

    assert client.registry.client_for(ProviderKind.OPENAI) is first
    assert len(created) == 1


def test_discover_schema_returns_json(movie_store):
    client = TextToCypherClient(store=movie_store)

    assert '"ACTED_IN"' in client.discover_schema("movies")


def test_discover_schema_raises_on_failure(fake_store):
    client = TextToCypherClient(store=fake_store(schema_error=RuntimeError("auth failed")))

    with pytest.raises(PipelineError) as excinfo:
        client.discover_schema("movies")

    assert excinfo.value.kind is ErrorKind.SCHEMA_DISCOVERY_FAILED


def test_list_models(movie_store):
    client = TextToCypherClient(store=movie_store)

    assert "ollama:llama3.1" in client.list_models()
    assert client.list_models_by_provider("OpenAI")[0] == "gpt-4o-mini"
    with pytest.raises(PipelineError) as excinfo:
        client.list_models_by_provider("cohere")
    assert excinfo.value.kind is ErrorKind.UNKNOWN_PROVIDER

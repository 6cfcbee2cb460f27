"""Pytest configuration and scripted doubles for the graph store and chat clients."""

import re
import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"

for path in (SRC_DIR, ROOT_DIR):
    if path.exists() and str(path) not in sys.path:
        sys.path.insert(0, str(path))

from text_to_cypher.engine import PipelineOrchestrator  # noqa: E402
from text_to_cypher.executor import QueryExecutor  # noqa: E402
from text_to_cypher.generator import QueryGenerator  # noqa: E402
from text_to_cypher.registry import ModelProviderRegistry, ProviderKind  # noqa: E402
from text_to_cypher.schema import LABELS_QUERY, RELATIONSHIP_TYPES_QUERY, SchemaDiscoverer  # noqa: E402
from text_to_cypher.synthesizer import AnswerSynthesizer  # noqa: E402

IDENTIFIER_PATTERN = re.compile(r"`((?:[^`]|``)*)`")


class FakeGraphStore:
    """Answers the discoverer's introspection queries from an in-memory graph.

    Any other statement is treated as generated Cypher and answered with
    ``rows`` (or raises ``execute_error``).
    """

    def __init__(
        self,
        nodes: dict[str, list[dict[str, object]]] | None = None,
        relationships: list[tuple[str, str, str, dict[str, object]]] | None = None,
        rows: list[dict[str, object]] | None = None,
        execute_error: Exception | None = None,
        schema_error: Exception | None = None,
    ):
        self.nodes = nodes or {}
        self.relationships = relationships or []
        self.rows = rows or []
        self.execute_error = execute_error
        self.schema_error = schema_error
        self.calls: list[dict[str, object]] = []

    @property
    def executed(self) -> list[str]:
        return [call["cypher"] for call in self.calls if not call["read_only"]]

    def query(self, graph_name, cypher, parameters=None, *, read_only=False):
        self.calls.append({"graph": graph_name, "cypher": cypher, "parameters": parameters, "read_only": read_only})
        sample = (parameters or {}).get("sample", 100)
        if cypher == LABELS_QUERY:
            if self.schema_error is not None:
                raise self.schema_error
            return [{"label": label} for label in self.nodes]
        if cypher == RELATIONSHIP_TYPES_QUERY:
            return [{"relationshipType": rel_type} for rel_type in dict.fromkeys(r[0] for r in self.relationships)]
        if read_only:
            name = IDENTIFIER_PATTERN.search(cypher).group(1).replace("``", "`")
            if cypher.startswith("MATCH (n:"):
                return [{"props": props} for props in self.nodes.get(name, [])[:sample]]
            matching = [r for r in self.relationships if r[0] == name][:sample]
            if "labels(a)" in cypher:
                pairs = dict.fromkeys((source, target) for _, source, target, _ in matching)
                return [{"source": [source], "target": [target]} for source, target in pairs]
            return [{"props": props} for _, _, _, props in matching]
        if self.execute_error is not None:
            raise self.execute_error
        return [dict(row) for row in self.rows]


class ScriptedChatClient:
    """Returns queued completions in order, raising any queued exception."""

    def __init__(self, responses: list[object]):
        self._responses = list(responses)
        self.calls: list[dict[str, object]] = []

    def complete(self, model, messages):
        self.calls.append({"model": model, "messages": list(messages)})
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def registry_with(client) -> ModelProviderRegistry:
    return ModelProviderRegistry(clients={kind: client for kind in ProviderKind})


def build_engine(store, client, *, model_id: str = "gpt-4o-mini", trace=None) -> PipelineOrchestrator:
    registry = registry_with(client)
    return PipelineOrchestrator(
        registry=registry,
        discoverer=SchemaDiscoverer(store=store),
        generator=QueryGenerator(registry=registry),
        executor=QueryExecutor(store=store),
        synthesizer=AnswerSynthesizer(registry=registry),
        model_id=model_id,
        trace=trace,
    )


@pytest.fixture
def movie_store() -> FakeGraphStore:
    return FakeGraphStore(
        nodes={
            "Actor": [{"name": "Keanu Reeves", "born": 1964}, {"name": "Zendaya", "born": 1996}],
            "Movie": [
                {"title": "The Matrix Resurrections", "released": 2021, "rating": 5.7},
                {"title": "Dune", "released": 2021, "rating": 8.0},
            ],
        },
        relationships=[
            ("ACTED_IN", "Actor", "Movie", {"roles": ["Neo"]}),
            ("ACTED_IN", "Actor", "Movie", {"roles": ["Chani"]}),
        ],
        rows=[
            {"actor": "Keanu Reeves", "movie": "The Matrix Resurrections", "released": 2021},
            {"actor": "Zendaya", "movie": "Dune", "released": 2021},
        ],
    )


@pytest.fixture
def scripted_client():
    return ScriptedChatClient


@pytest.fixture
def engine_factory():
    return build_engine


@pytest.fixture
def fake_store():
    return FakeGraphStore


@pytest.fixture(autouse=True)
def isolate_environment(tmp_path, monkeypatch):
    """Keep trace files in a temp dir and drop real credentials during tests."""
    test_log_dir = tmp_path / "test_logs"
    test_log_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("TRACE_LOG_DIR", str(test_log_dir))
    monkeypatch.setenv("TRACE_STDOUT", "0")
    for var in ("AI_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GOOGLE_API_KEY", "TEXT_TO_CYPHER_MODEL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def registry_factory():
    return registry_with

"""Shared dataclasses, error kinds and protocols for the Text-to-Cypher pipeline."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .conversation import ChatMessage


@dataclass(frozen=True)
class PipelineConfig:
    """Configuration for running the query pipeline."""

    neo4j_timeout_seconds: float = 15.0
    neo4j_fetch_size: int = 100
    schema_sample_size: int = 100
    llm_timeout_seconds: float = 60.0
    temperature: float = 0.0
    max_tokens: int = 1024
    result_char_budget: int = 4000


class ErrorKind(str, Enum):
    """Failure categories surfaced to callers in ``PipelineResponse.error_kind``."""

    UNKNOWN_PROVIDER = "UnknownProvider"
    INVALID_ROLE = "InvalidRole"
    INVALID_REQUEST = "InvalidRequest"
    SCHEMA_DISCOVERY_FAILED = "SchemaDiscoveryFailed"
    GENERATION_FAILED = "GenerationFailed"
    EXTRACTION_FAILED = "ExtractionFailed"
    EXECUTION_FAILED = "ExecutionFailed"
    SYNTHESIS_FAILED = "SynthesisFailed"
    CANCELLED = "Cancelled"


class PipelineError(RuntimeError):
    """Raised when a pipeline step fails."""

    def __init__(
        self,
        message: str,
        *,
        step: str | None = None,
        kind: ErrorKind | None = None,
    ):
        super().__init__(message)
        self.step = step
        self.kind = kind


class GraphStore(Protocol):
    """Runs Cypher against a named graph and returns raw records as dictionaries."""

    def query(
        self,
        graph_name: str,
        cypher: str,
        parameters: Mapping[str, object] | None = None,
        *,
        read_only: bool = False,
    ) -> list[dict[str, object]]:  # pragma: no cover - interface only
        ...


class ChatClient(Protocol):
    """Completes an ordered chat transcript with one provider's model."""

    def complete(self, model: str, messages: Sequence[ChatMessage]) -> str:  # pragma: no cover - interface only
        ...


class TraceSink(Protocol):
    """Receives step-wise trace data emitted during pipeline execution."""

    def record(self, step: str, data: dict[str, object]) -> None:  # pragma: no cover - interface only
        ...


def with_context_trace(trace: TraceSink | None, context: dict[str, object]) -> TraceSink | None:
    """Wrap ``trace`` so every event carries ``context``; ``None`` stays ``None``."""
    if trace is None:
        return None
    from .trace import ContextTraceSink  # noqa: WPS433 - avoids a circular import

    return ContextTraceSink(trace, context)

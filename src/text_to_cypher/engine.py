"""High-level coordinator for the Text-to-Cypher pipeline."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from time import perf_counter
from typing import TypeVar

from .conversation import Conversation, MessageInput
from .executor import ExecutionResult, QueryExecutor
from .generator import QueryGenerator
from .registry import ModelProviderRegistry, ProviderKind
from .schema import SchemaDescriptor, SchemaDiscoverer
from .synthesizer import AnswerSynthesizer
from .types import ErrorKind, PipelineError, TraceSink

T = TypeVar("T")

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"

STAGE_LABELS = {
    "discover_schema": "Schema discovery",
    "generate_cypher": "Cypher generation",
    "execute_cypher": "Cypher execution",
    "synthesize_answer": "Answer synthesis",
}


@dataclass(frozen=True)
class PipelineResponse:
    """Unified outcome of every public pipeline operation.

    Fields an operation does not produce stay ``None``. On error, only
    ``cypher_query`` may survive, and only when generation had completed.
    """

    status: str
    schema: SchemaDescriptor | None = None
    cypher_query: str | None = None
    cypher_result: ExecutionResult | None = None
    answer: str | None = None
    models: list[str] | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    error_step: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    @classmethod
    def failure(cls, exc: PipelineError, *, cypher_query: str | None = None) -> PipelineResponse:
        return cls(
            status=STATUS_ERROR,
            cypher_query=cypher_query,
            error=str(exc),
            error_kind=exc.kind,
            error_step=exc.step,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status,
            "schema": self.schema.to_dict() if self.schema is not None else None,
            "cypher_query": self.cypher_query,
            "cypher_result": self.cypher_result.to_list() if self.cypher_result is not None else None,
            "answer": self.answer,
            "models": list(self.models) if self.models is not None else None,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind is not None else None,
            "error_step": self.error_step,
        }


@dataclass
class PipelineOrchestrator:
    """Run schema discovery, Cypher generation, execution and answer synthesis in order.

    Each call threads its own stage outputs forward; the components are only
    read, so one orchestrator can serve concurrent requests. Every operation
    accepts an optional ``threading.Event``: once set, the next stage boundary
    aborts the call with ``ErrorKind.CANCELLED``.
    """

    registry: ModelProviderRegistry
    discoverer: SchemaDiscoverer
    generator: QueryGenerator
    executor: QueryExecutor
    synthesizer: AnswerSynthesizer
    model_id: str

    trace: TraceSink | None = None

    def _trace(self, step: str, data: dict[str, object]) -> None:
        if self.trace is not None:
            try:
                self.trace.record(step, data)
            except Exception:
                pass

    def _stage(self, step: str, kind: ErrorKind, action: Callable[[], T], cancel: threading.Event | None) -> tuple[T, int]:
        if cancel is not None and cancel.is_set():
            raise PipelineError(f"Operation cancelled before {step}", step=step, kind=ErrorKind.CANCELLED)
        started = perf_counter()
        try:
            value = action()
        except Exception as exc:
            duration_ms = int((perf_counter() - started) * 1000)
            self._trace("error", {"step": step, "error": str(exc), "duration_ms": duration_ms})
            error_kind = exc.kind if isinstance(exc, PipelineError) and exc.kind is not None else kind
            message = str(exc)
            if not message.startswith(STAGE_LABELS[step]):
                message = f"{STAGE_LABELS[step]} failed: {message}"
            raise PipelineError(message, step=step, kind=error_kind) from exc
        duration_ms = int((perf_counter() - started) * 1000)
        # A cancel that arrives while the call is in flight discards its result.
        if cancel is not None and cancel.is_set():
            self._trace("error", {"step": step, "error": "cancelled", "duration_ms": duration_ms})
            raise PipelineError(f"Operation cancelled during {step}", step=step, kind=ErrorKind.CANCELLED)
        return value, duration_ms

    def _prepare(self, graph_name: str, question: str | Iterable[MessageInput]) -> Conversation:
        if not graph_name or not graph_name.strip():
            raise PipelineError("Graph name must be a non-empty string", step="request", kind=ErrorKind.INVALID_REQUEST)
        conversation = Conversation.from_input(question)
        conversation.ensure_not_empty()
        return conversation

    def _discover(self, graph_name: str, cancel: threading.Event | None) -> SchemaDescriptor:
        schema, duration_ms = self._stage(
            "discover_schema",
            ErrorKind.SCHEMA_DISCOVERY_FAILED,
            lambda: self.discoverer.discover(graph_name),
            cancel,
        )
        self._trace(
            "discover_schema",
            {
                "graph": graph_name,
                "label_count": len(schema.labels),
                "relationship_type_count": len(schema.relationship_types),
                "duration_ms": duration_ms,
            },
        )
        return schema

    def _run(
        self,
        graph_name: str,
        question: str | Iterable[MessageInput],
        *,
        execute: bool,
        model_id: str | None,
        cancel: threading.Event | None,
    ) -> PipelineResponse:
        model = model_id or self.model_id
        run_started = perf_counter()
        cypher_query: str | None = None
        try:
            conversation = self._prepare(graph_name, question)
            self._trace("question", {"graph": graph_name, "messages": conversation.to_dicts(), "model": model})

            schema = self._discover(graph_name, cancel)

            generated, duration_ms = self._stage(
                "generate_cypher",
                ErrorKind.GENERATION_FAILED,
                lambda: self.generator.generate(schema, conversation, model),
                cancel,
            )
            cypher_query = generated.cypher
            self._trace(
                "generate_cypher",
                {
                    "cypher": generated.cypher,
                    "raw_completion": generated.raw_completion,
                    "model": generated.model_id,
                    "duration_ms": duration_ms,
                },
            )
            if not execute:
                return PipelineResponse(status=STATUS_SUCCESS, schema=schema, cypher_query=cypher_query)

            result, duration_ms = self._stage(
                "execute_cypher",
                ErrorKind.EXECUTION_FAILED,
                lambda: self.executor.execute(graph_name, generated.cypher),
                cancel,
            )
            self._trace(
                "execute_cypher",
                {"row_count": len(result), "rows_preview": result.to_list()[:3], "duration_ms": duration_ms},
            )

            answer, duration_ms = self._stage(
                "synthesize_answer",
                ErrorKind.SYNTHESIS_FAILED,
                lambda: self.synthesizer.synthesize(conversation.latest_question(), generated.cypher, result, model),
                cancel,
            )
            self._trace(
                "synthesize_answer",
                {
                    "answer_len": len(answer),
                    "answer": answer,
                    "duration_ms": duration_ms,
                    "total_duration_ms": int((perf_counter() - run_started) * 1000),
                },
            )
        except PipelineError as exc:
            if exc.step in ("request", "conversation"):
                self._trace("error", {"step": exc.step, "error": str(exc)})
            return PipelineResponse.failure(exc, cypher_query=cypher_query)

        return PipelineResponse(
            status=STATUS_SUCCESS,
            schema=schema,
            cypher_query=cypher_query,
            cypher_result=result,
            answer=answer,
        )

    def text_to_cypher(
        self,
        graph_name: str,
        question: str | Iterable[MessageInput],
        *,
        model_id: str | None = None,
        cancel: threading.Event | None = None,
    ) -> PipelineResponse:
        """Full pipeline: schema, Cypher, execution result and answer."""
        return self._run(graph_name, question, execute=True, model_id=model_id, cancel=cancel)

    def cypher_only(
        self,
        graph_name: str,
        question: str | Iterable[MessageInput],
        *,
        model_id: str | None = None,
        cancel: threading.Event | None = None,
    ) -> PipelineResponse:
        """Schema discovery and generation only; the statement is not executed."""
        return self._run(graph_name, question, execute=False, model_id=model_id, cancel=cancel)

    def discover_schema(self, graph_name: str, *, cancel: threading.Event | None = None) -> PipelineResponse:
        try:
            if not graph_name or not graph_name.strip():
                raise PipelineError(
                    "Graph name must be a non-empty string", step="request", kind=ErrorKind.INVALID_REQUEST
                )
            schema = self._discover(graph_name, cancel)
        except PipelineError as exc:
            return PipelineResponse.failure(exc)
        return PipelineResponse(status=STATUS_SUCCESS, schema=schema)

    def list_models(self, provider: str | ProviderKind | None = None) -> PipelineResponse:
        try:
            models = self.registry.list_models(provider)
        except PipelineError as exc:
            return PipelineResponse.failure(exc)
        return PipelineResponse(status=STATUS_SUCCESS, models=models)

    def with_trace(self, trace: TraceSink | None) -> PipelineOrchestrator:
        """Return a shallow copy sharing every component but using ``trace``.

        Used for per-request tracing, e.g. to inject a run_id.
        """
        return PipelineOrchestrator(
            registry=self.registry,
            discoverer=self.discoverer,
            generator=self.generator,
            executor=self.executor,
            synthesizer=self.synthesizer,
            model_id=self.model_id,
            trace=trace,
        )

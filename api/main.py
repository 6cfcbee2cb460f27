"""FastAPI wrapper around the Text-to-Cypher pipeline."""

from __future__ import annotations

import os
import uuid
from functools import lru_cache
from time import perf_counter
from typing import Annotated, Literal

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from text_to_cypher import PipelineResponse, TextToCypherClient
from text_to_cypher.engine import PipelineOrchestrator
from text_to_cypher.trace import CompositeTraceSink, JsonlTraceSink, LoggingTraceSink, daily_trace_path
from text_to_cypher.types import TraceSink, with_context_trace

load_dotenv()


class MessageModel(BaseModel):
    role: str = Field(..., description="user, assistant or system")
    content: str


class QuestionRequest(BaseModel):
    graph_name: str = Field(..., min_length=1, description="Graph (database) to query")
    question: str | None = Field(None, description="Single natural-language question")
    messages: list[MessageModel] | None = Field(None, description="Conversation, oldest first")

    def conversation(self) -> str | list[dict[str, str]]:
        if self.messages:
            return [message.model_dump() for message in self.messages]
        if self.question and self.question.strip():
            return self.question.strip()
        raise HTTPException(status_code=422, detail={"message": "Provide either 'question' or 'messages'"})


class PipelineResponseModel(BaseModel):
    status: Literal["success", "error"]
    schema_: dict[str, object] | None = Field(None, alias="schema")
    cypher_query: str | None = None
    cypher_result: list[dict[str, object]] | None = None
    answer: str | None = None
    models: list[str] | None = None
    error: str | None = None
    error_kind: str | None = None
    error_step: str | None = None
    run_id: str | None = None


def _build_trace() -> TraceSink:
    trace_sink: TraceSink = JsonlTraceSink(daily_trace_path())
    trace_stdout_flag = os.getenv("TRACE_STDOUT", "0").strip().lower()
    if trace_stdout_flag in {"1", "true", "yes"}:
        trace_sink = CompositeTraceSink(trace_sink, LoggingTraceSink())
    return trace_sink


@lru_cache(maxsize=1)
def build_client() -> TextToCypherClient:
    return TextToCypherClient.from_env(trace=_build_trace())


def get_client() -> TextToCypherClient:
    return build_client()


app = FastAPI(title="Text-to-Cypher API", version="0.1.0")

allowed_origins = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _traced_engine(client: TextToCypherClient, run_id: str) -> PipelineOrchestrator:
    engine = client.engine
    if engine.trace is not None:
        return engine.with_trace(with_context_trace(engine.trace, {"run_id": run_id}))
    return engine


def _respond(response: PipelineResponse, run_id: str | None = None) -> PipelineResponseModel:
    payload = PipelineResponseModel.model_validate({**response.to_dict(), "run_id": run_id})
    if not response.ok:
        raise HTTPException(status_code=400, detail=payload.model_dump(by_alias=True))
    return payload


@app.get("/healthz", response_model=dict[str, str])
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.head("/healthz")
async def healthz_head():
    return Response(status_code=200)


def _run_question(body: QuestionRequest, client: TextToCypherClient, *, execute: bool) -> PipelineResponseModel:
    run_id = os.getenv("TRACE_RUN_ID_OVERRIDE") or uuid.uuid4().hex
    engine = _traced_engine(client, run_id)
    started = perf_counter()
    conversation = body.conversation()

    try:
        if execute:
            response = engine.text_to_cypher(body.graph_name, conversation)
        else:
            response = engine.cypher_only(body.graph_name, conversation)
    except Exception as exc:
        if engine.trace is not None:
            engine.trace.record("error", {"step": "unknown", "error": str(exc), "error_type": type(exc).__name__})
        raise HTTPException(
            status_code=500, detail={"message": str(exc), "error_type": type(exc).__name__, "run_id": run_id}
        ) from exc

    if engine.trace is not None:
        engine.trace.record(
            "run",
            {
                "graph": body.graph_name,
                "status": response.status,
                "cypher": response.cypher_query,
                "error": response.error,
                "duration_ms": int((perf_counter() - started) * 1000),
            },
        )
    return _respond(response, run_id)


@app.post("/text-to-cypher", response_model=PipelineResponseModel, response_model_by_alias=True)
def text_to_cypher(
    body: QuestionRequest, client: Annotated[TextToCypherClient, Depends(get_client)]
) -> PipelineResponseModel:
    return _run_question(body, client, execute=True)


@app.post("/cypher-only", response_model=PipelineResponseModel, response_model_by_alias=True)
def cypher_only(
    body: QuestionRequest, client: Annotated[TextToCypherClient, Depends(get_client)]
) -> PipelineResponseModel:
    return _run_question(body, client, execute=False)


@app.get("/schema/{graph_name}", response_model=PipelineResponseModel, response_model_by_alias=True)
def discover_schema(
    graph_name: str, client: Annotated[TextToCypherClient, Depends(get_client)]
) -> PipelineResponseModel:
    return _respond(client.engine.discover_schema(graph_name))


@app.get("/models", response_model=PipelineResponseModel, response_model_by_alias=True)
def list_models(
    client: Annotated[TextToCypherClient, Depends(get_client)],
    provider: Annotated[str | None, Query(description="openai, anthropic, gemini or ollama")] = None,
) -> PipelineResponseModel:
    return _respond(client.engine.list_models(provider))

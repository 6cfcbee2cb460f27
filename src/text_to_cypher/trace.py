"""Trace sinks for step-wise pipeline events."""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from .types import TraceSink

logger = logging.getLogger(__name__)


def _event(step: str, data: dict[str, object]) -> dict[str, object]:
    return {"timestamp": datetime.now(UTC).isoformat(), "step": step, **data}


class JsonlTraceSink:
    """Append trace events to a JSONL file."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def record(self, step: str, data: dict[str, object]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                json.dump(_event(step, data), handle, ensure_ascii=False, default=str)
                handle.write("\n")
        except Exception:
            # Tracing should never crash the pipeline.
            logger.debug("Failed to write trace event to %s", self._path, exc_info=True)


class LoggingTraceSink:
    """Forward trace events to a logger, at WARNING for errors and DEBUG otherwise."""

    def __init__(self, name: str = "text_to_cypher.trace") -> None:
        self._logger = logging.getLogger(name)

    def record(self, step: str, data: dict[str, object]) -> None:
        level = logging.WARNING if step == "error" else logging.DEBUG
        if self._logger.isEnabledFor(level):
            self._logger.log(level, "TRACE %s: %s", step, json.dumps(data, ensure_ascii=False, default=str))


class CompositeTraceSink:
    """Forward every trace event to each wrapped sink in order."""

    def __init__(self, *sinks: TraceSink) -> None:
        self._sinks = sinks

    def record(self, step: str, data: dict[str, object]) -> None:
        for sink in self._sinks:
            sink.record(step, data)


class ContextTraceSink:
    """Injects a fixed context payload (such as a run_id) into every trace event."""

    def __init__(self, sink: TraceSink, context: dict[str, object]) -> None:
        self._sink = sink
        self._context = dict(context)

    def record(self, step: str, data: dict[str, object]) -> None:
        self._sink.record(step, {**self._context, **data})


def daily_trace_path(base: Path | None = None) -> Path:
    """Return today's JSONL file under ``base``, ``$TRACE_LOG_DIR`` or ``logs/traces``."""
    env_dir = os.getenv("TRACE_LOG_DIR")
    directory = (base or (Path(env_dir) if env_dir else Path("logs") / "traces")).resolve()
    return directory / datetime.now(UTC).strftime("%Y%m%d.jsonl")

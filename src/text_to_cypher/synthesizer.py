"""Natural-language answers from executed Cypher results."""

from __future__ import annotations

import json
from dataclasses import dataclass

from .conversation import ChatMessage, ChatRole
from .executor import ExecutionResult
from .prompts import ANSWER_PROMPT_TEMPLATE, ANSWER_SYSTEM_PROMPT
from .registry import ModelProviderRegistry
from .types import ErrorKind, PipelineError

EMPTY_RESULT_TEXT = "(no rows)"


def _format_value(value: object) -> str:
    if isinstance(value, list) and all(not isinstance(item, (dict, list)) for item in value):
        return ", ".join(str(item) for item in value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def format_rows(result: ExecutionResult, char_budget: int) -> str:
    """Render rows as numbered lines, stopping once ``char_budget`` characters are used.

    The first row is always included (cut to the budget if it alone is too
    long) so the model never sees an empty rendering of a non-empty result.
    """
    if result.is_empty:
        return EMPTY_RESULT_TEXT

    lines: list[str] = []
    used = 0
    for index, row in enumerate(result.rows, start=1):
        line = f"{index}. " + "; ".join(f"{key}: {_format_value(value)}" for key, value in row.items())
        if lines and used + len(line) + 1 > char_budget:
            break
        if not lines and len(line) > char_budget:
            line = line[: max(char_budget, 1)] + " ..."
        lines.append(line)
        used += len(line) + 1

    omitted = len(result.rows) - len(lines)
    if omitted:
        lines.append(f"... ({omitted} more rows omitted)")
    return "\n".join(lines)


@dataclass
class AnswerSynthesizer:
    """Second model call that turns query rows into a plain-language answer."""

    registry: ModelProviderRegistry
    char_budget: int = 4000

    def build_messages(self, question: str, cypher: str, result: ExecutionResult) -> list[ChatMessage]:
        prompt = ANSWER_PROMPT_TEMPLATE.format(
            question=question.strip(),
            cypher=cypher.strip(),
            row_count=len(result),
            rows=format_rows(result, self.char_budget),
        )
        return [
            ChatMessage(role=ChatRole.SYSTEM, content=ANSWER_SYSTEM_PROMPT),
            ChatMessage(role=ChatRole.USER, content=prompt),
        ]

    def synthesize(self, question: str, cypher: str, result: ExecutionResult, model_id: str) -> str:
        resolved = self.registry.resolve(model_id)
        messages = self.build_messages(question, cypher, result)
        try:
            client = self.registry.client_for(resolved.provider)
            answer = client.complete(resolved.model, messages)
        except Exception as exc:
            message = str(exc) if isinstance(exc, PipelineError) else f"{type(exc).__name__}: {exc}"
            raise PipelineError(message, step="synthesize_answer", kind=ErrorKind.SYNTHESIS_FAILED) from exc

        answer = (answer or "").strip()
        if not answer:
            raise PipelineError("Model returned an empty answer", step="synthesize_answer", kind=ErrorKind.SYNTHESIS_FAILED)
        return answer

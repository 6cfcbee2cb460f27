"""LLM-based Cypher generator.

The generator renders the graph schema into a system message, appends the
caller's conversation, and asks the resolved model for a single Cypher
statement. Models are not reliable about output format, so extraction
tolerates code fences, ``Cypher:`` labels and surrounding prose, and keeps
only the first statement it finds.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .conversation import ChatMessage, ChatRole, Conversation
from .prompts import CYPHER_SYSTEM_PROMPT_TEMPLATE
from .registry import ModelProviderRegistry
from .schema import SchemaDescriptor
from .types import ErrorKind, PipelineError

# A word right after the opening backticks is a language tag only when a newline follows it.
CODE_FENCE_PATTERN = re.compile(r"```(?:([a-zA-Z0-9_-]+)[ \t]*\n|[ \t]*\n?)([\s\S]*?)```", re.MULTILINE)

_CLAUSES = (
    r"OPTIONAL\s+MATCH|MATCH|UNWIND|MERGE|CREATE|DETACH\s+DELETE|LOAD\s+CSV|EXPLAIN|PROFILE"
    r"|WITH|RETURN|CALL|DELETE|SET|REMOVE|FOREACH|USE|SHOW"
)
# Lower-case clauses count only when a pattern or list follows, so "Create a ..." stays prose.
_LOWER_CASE_CLAUSES = r"(?i:(?:optional\s+)?match|create|merge)(?=\s*\()|(?i:unwind)(?=\s*\[)"

LINE_START_CLAUSE_PATTERN = re.compile(rf"^[ \t]*(?:(?:{_CLAUSES})\b|{_LOWER_CASE_CLAUSES})", re.MULTILINE)
# Fallback for statements embedded mid-sentence; upper case only to avoid matching prose.
INLINE_CLAUSE_PATTERN = re.compile(rf"\b(?:{_CLAUSES})\b")

LABEL_PREFIXES = ("cypher:", "query:", "cypher query:")


@dataclass(frozen=True)
class GeneratedQuery:
    cypher: str
    raw_completion: str
    model_id: str


def _first_statement(text: str) -> str:
    """Return ``text`` up to the first ``;`` that is not inside a string literal."""
    quote: str | None = None
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if quote is None:
            if ch in ("'", '"', "`"):
                quote = ch
            elif ch == ";":
                return text[:i]
        elif ch == "\\" and quote != "`":
            i += 1
        elif ch == quote:
            quote = None
        i += 1
    return text


def _strip_label(text: str) -> str:
    lowered = text.lower()
    for prefix in LABEL_PREFIXES:
        if lowered.startswith(prefix):
            return text[len(prefix) :].lstrip()
    return text


def _locate_statement(text: str, *, whole_block: bool) -> str:
    candidate = _strip_label(text.strip())
    match = LINE_START_CLAUSE_PATTERN.search(candidate)
    if match is None:
        match = INLINE_CLAUSE_PATTERN.search(candidate)
        if match is None:
            return ""
    body = candidate[match.start() :].strip()
    if not whole_block:
        # Outside a code fence, a blank line ends the statement and starts prose.
        body = re.split(r"\n[ \t]*\n", body, maxsplit=1)[0]
    return _first_statement(body).strip()


def extract_cypher(completion: str | None) -> str:
    """Isolate one Cypher statement from a model completion.

    Raises ``PipelineError`` of kind ``EXTRACTION_FAILED`` when the completion
    is empty or holds nothing that starts with a Cypher clause.
    """
    content = (completion or "").strip()
    if not content:
        raise PipelineError("Model returned an empty completion", step="extract_cypher", kind=ErrorKind.EXTRACTION_FAILED)

    fences = CODE_FENCE_PATTERN.findall(content)
    # Prefer blocks tagged as cypher, then any other fenced block.
    ordered = [body for tag, body in fences if tag.lower() == "cypher"]
    ordered += [body for tag, body in fences if tag.lower() != "cypher"]
    for body in ordered:
        statement = _locate_statement(body, whole_block=True)
        if statement:
            return statement

    statement = _locate_statement(CODE_FENCE_PATTERN.sub("", content) if fences else content, whole_block=False)
    if not statement:
        raise PipelineError(
            "Model output does not contain a Cypher statement", step="extract_cypher", kind=ErrorKind.EXTRACTION_FAILED
        )
    return statement


def build_generation_messages(
    schema: SchemaDescriptor, conversation: Conversation, *, template: str = CYPHER_SYSTEM_PROMPT_TEMPLATE
) -> list[ChatMessage]:
    system = ChatMessage(role=ChatRole.SYSTEM, content=template.format(schema=schema.to_json(indent=2)))
    return [system, *conversation]


@dataclass
class QueryGenerator:
    """Generate Cypher for a conversation using whichever provider the model id names."""

    registry: ModelProviderRegistry
    system_prompt_template: str = CYPHER_SYSTEM_PROMPT_TEMPLATE

    def generate(self, schema: SchemaDescriptor, conversation: Conversation, model_id: str) -> GeneratedQuery:
        conversation.ensure_not_empty()
        resolved = self.registry.resolve(model_id)
        messages = build_generation_messages(schema, conversation, template=self.system_prompt_template)

        try:
            client = self.registry.client_for(resolved.provider)
            completion = client.complete(resolved.model, messages)
        except PipelineError as exc:
            raise PipelineError(str(exc), step="generate_cypher", kind=ErrorKind.GENERATION_FAILED) from exc
        except Exception as exc:
            raise PipelineError(
                f"Model call failed: {type(exc).__name__}: {exc}",
                step="generate_cypher",
                kind=ErrorKind.GENERATION_FAILED,
            ) from exc

        return GeneratedQuery(cypher=extract_cypher(completion), raw_completion=completion, model_id=resolved.model_id)

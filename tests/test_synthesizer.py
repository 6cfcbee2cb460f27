"""Tests for answer synthesis and result rendering."""

from __future__ import annotations

import pytest

from text_to_cypher.conversation import ChatRole
from text_to_cypher.executor import ExecutionResult
from text_to_cypher.synthesizer import EMPTY_RESULT_TEXT, AnswerSynthesizer, format_rows
from text_to_cypher.types import ErrorKind, PipelineError

CYPHER = "MATCH (m:Movie) WHERE m.released = 2021 RETURN m.title AS title"


def _result(count: int) -> ExecutionResult:
    return ExecutionResult.from_records([{"title": f"Movie {i}", "genres": ["Drama", "Sci-Fi"]} for i in range(count)])


def test_format_rows_numbers_each_row():
    text = format_rows(_result(2), char_budget=1000)

    assert text.splitlines() == [
        "1. title: Movie 0; genres: Drama, Sci-Fi",
        "2. title: Movie 1; genres: Drama, Sci-Fi",
    ]


def test_format_rows_respects_budget_and_reports_omitted_rows():
    text = format_rows(_result(50), char_budget=120)

    lines = text.splitlines()
    assert lines[0].startswith("1. title: Movie 0")
    assert lines[-1].endswith("more rows omitted)")
    omitted = int(lines[-1].split("(")[1].split()[0])
    assert omitted + len(lines) - 1 == 50


def test_format_rows_truncates_a_single_oversized_row():
    result = ExecutionResult.from_records([{"plot": "x" * 500}])

    text = format_rows(result, char_budget=40)

    assert text.startswith("1. plot: xxx")
    assert text.endswith(" ...")
    assert len(text) < 60


def test_empty_result_is_rendered_explicitly():
    assert format_rows(ExecutionResult(), char_budget=100) == EMPTY_RESULT_TEXT


def test_synthesize_sends_question_cypher_and_rows(scripted_client, registry_factory):
    client = scripted_client(["  Two movies were released in 2021.  "])
    synthesizer = AnswerSynthesizer(registry=registry_factory(client))

    answer = synthesizer.synthesize("Which movies came out in 2021?", CYPHER, _result(2), "anthropic:claude-haiku-4-5")

    assert answer == "Two movies were released in 2021."
    (call,) = client.calls
    assert call["model"] == "claude-haiku-4-5"
    system, user = call["messages"]
    assert system.role is ChatRole.SYSTEM
    assert user.role is ChatRole.USER
    assert "Which movies came out in 2021?" in user.content
    assert CYPHER in user.content
    assert "(2 rows)" in user.content
    assert "1. title: Movie 0" in user.content


def test_synthesize_passes_empty_marker_for_no_rows(scripted_client, registry_factory):
    client = scripted_client(["No matching data was found."])

    AnswerSynthesizer(registry=registry_factory(client)).synthesize("Any movies?", CYPHER, ExecutionResult(), "gpt-4o-mini")

    assert EMPTY_RESULT_TEXT in client.calls[0]["messages"][1].content


@pytest.mark.parametrize("response", [RuntimeError("rate limited"), "", "   ", None])
def test_synthesize_failures_are_reported(scripted_client, registry_factory, response):
    client = scripted_client([response])
    synthesizer = AnswerSynthesizer(registry=registry_factory(client))

    with pytest.raises(PipelineError) as excinfo:
        synthesizer.synthesize("Any movies?", CYPHER, _result(1), "gpt-4o-mini")

    assert excinfo.value.kind is ErrorKind.SYNTHESIS_FAILED
    assert excinfo.value.step == "synthesize_answer"

"""Command-line access to the question → Cypher → answer pipeline."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace

from .client import ClientConfig, TextToCypherClient
from .engine import PipelineResponse
from .trace import CompositeTraceSink, JsonlTraceSink, LoggingTraceSink, daily_trace_path
from .types import PipelineError, TraceSink


def _build_client(model: str | None, trace: TraceSink | None) -> TextToCypherClient:
    config = ClientConfig.from_env()
    if model:
        config = replace(config, model=model)
    return TextToCypherClient(config, trace=trace)


def _build_trace(args: argparse.Namespace) -> TraceSink | None:
    sinks: list[TraceSink] = []
    if not args.no_log:
        sinks.append(JsonlTraceSink(daily_trace_path()))
    if args.trace:
        sinks.append(LoggingTraceSink())
    if not sinks:
        return None
    return sinks[0] if len(sinks) == 1 else CompositeTraceSink(*sinks)


def _load_messages(path: str) -> list[dict[str, object]]:
    with open(path, encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, list):
        raise ValueError("Messages file must contain a JSON array of {role, content} objects")
    return payload


def _print_response(response: PipelineResponse) -> int:
    if not response.ok:
        step = response.error_step
        kind = response.error_kind.value if response.error_kind is not None else "Error"
        where = f" in step '{step}'" if step else ""
        print(f"{kind}{where}: {response.error}", file=sys.stderr)
        if response.cypher_query:
            print("Cypher:\n" + response.cypher_query, file=sys.stderr)
        return 1

    if response.cypher_query is not None:
        print("Cypher:\n" + response.cypher_query + "\n")
    if response.cypher_result is not None:
        print("Rows:")
        print(json.dumps(response.cypher_result.to_list(), indent=2, ensure_ascii=False))
    if response.answer is not None:
        print("\nAnswer:\n" + response.answer)
    return 0


def _add_question_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("question", nargs="*", help="User question text")
    parser.add_argument("--messages", help="JSON file with a conversation ([{role, content}, ...])")


def _conversation(args: argparse.Namespace) -> str | list[dict[str, object]]:
    if args.messages:
        return _load_messages(args.messages)
    question = " ".join(args.question).strip()
    if not question:
        raise ValueError("A question or --messages file is required")
    return question


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Ask a property graph questions in natural language")
    parser.add_argument("--graph", default="neo4j", help="Graph (database) name")
    parser.add_argument("--model", help="Model id, e.g. gpt-4o-mini or anthropic:claude-sonnet-4-5")
    parser.add_argument("--no-log", action="store_true", help="Disable JSONL trace logging")
    parser.add_argument("--trace", action="store_true", help="Log trace events")
    parser.add_argument("--debug", action="store_true", help="Verbose logging and stack traces")
    subparsers = parser.add_subparsers(dest="command", required=True)

    _add_question_args(subparsers.add_parser("query", help="Generate, run and answer"))
    _add_question_args(subparsers.add_parser("cypher", help="Generate Cypher without running it"))
    subparsers.add_parser("schema", help="Print the discovered graph schema")
    models_parser = subparsers.add_parser("models", help="List model ids")
    models_parser.add_argument("provider", nargs="?", help="openai, anthropic, gemini or ollama")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug or args.trace else logging.WARNING)

    client = _build_client(args.model, _build_trace(args))
    try:
        if args.command == "schema":
            print(json.dumps(json.loads(client.discover_schema(args.graph)), indent=2, ensure_ascii=False))
            return 0
        if args.command == "models":
            for model in client.list_models_by_provider(args.provider):
                print(model)
            return 0

        question = _conversation(args)
        if args.command == "cypher":
            return _print_response(client.cypher_only(args.graph, question))
        return _print_response(client.text_to_cypher(args.graph, question))
    except (PipelineError, ValueError, OSError) as exc:
        step = getattr(exc, "step", None)
        if step:
            print(f"Error in step '{step}': {exc}", file=sys.stderr)
        else:
            print(f"Error: {exc}", file=sys.stderr)
        if args.debug:
            import traceback

            traceback.print_exc()
        return 1
    finally:
        client.close()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

"""Translate natural-language questions into Cypher, run them and answer from the results."""

from .client import ClientConfig, TextToCypherClient
from .conversation import ChatMessage, ChatRole, Conversation
from .engine import PipelineOrchestrator, PipelineResponse
from .executor import ExecutionResult, Neo4jGraphStore, QueryExecutor
from .generator import GeneratedQuery, QueryGenerator, extract_cypher
from .providers import (
    AnthropicChatClient,
    GeminiChatClient,
    OllamaChatClient,
    OpenAIChatClient,
    ProviderConfig,
)
from .registry import ModelProviderRegistry, ProviderKind, ResolvedModel
from .schema import LabelInfo, RelationshipInfo, SchemaDescriptor, SchemaDiscoverer
from .synthesizer import AnswerSynthesizer
from .types import ErrorKind, PipelineConfig, PipelineError

__all__ = [
    "AnswerSynthesizer",
    "AnthropicChatClient",
    "ChatMessage",
    "ChatRole",
    "ClientConfig",
    "Conversation",
    "ErrorKind",
    "ExecutionResult",
    "GeminiChatClient",
    "GeneratedQuery",
    "LabelInfo",
    "ModelProviderRegistry",
    "Neo4jGraphStore",
    "OllamaChatClient",
    "OpenAIChatClient",
    "PipelineConfig",
    "PipelineError",
    "PipelineOrchestrator",
    "PipelineResponse",
    "ProviderConfig",
    "ProviderKind",
    "QueryExecutor",
    "QueryGenerator",
    "RelationshipInfo",
    "ResolvedModel",
    "SchemaDescriptor",
    "SchemaDiscoverer",
    "TextToCypherClient",
    "extract_cypher",
]

"""Role-tagged conversation history used to build generation prompts."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum

from .types import ErrorKind, PipelineError


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: str | ChatRole) -> ChatRole:
        """Map a caller-supplied role string onto the closed role set.

        Matching is case-insensitive. Anything outside ``user``, ``assistant``
        and ``system`` is rejected rather than defaulted.
        """
        if isinstance(value, ChatRole):
            return value
        normalized = str(value).strip().lower()
        for role in cls:
            if role.value == normalized:
                return role
        raise PipelineError(
            f"Invalid message role: '{value}'. Must be 'user', 'assistant', or 'system'",
            step="conversation",
            kind=ErrorKind.INVALID_ROLE,
        )


@dataclass(frozen=True)
class ChatMessage:
    role: ChatRole
    content: str

    @classmethod
    def from_raw(cls, raw: ChatMessage | Mapping[str, object]) -> ChatMessage:
        if isinstance(raw, ChatMessage):
            return raw
        return cls(role=ChatRole.parse(raw.get("role", "")), content=str(raw.get("content") or ""))

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


MessageInput = str | ChatMessage | Mapping[str, object]


@dataclass(frozen=True)
class Conversation:
    """Ordered, immutable sequence of chat messages for one invocation."""

    messages: tuple[ChatMessage, ...]

    @classmethod
    def from_input(cls, value: str | Iterable[MessageInput]) -> Conversation:
        """Build a conversation from a bare question or a list of messages.

        A string becomes a single user message. Each mapping must carry a
        ``role`` and ``content``; roles are validated eagerly so an invalid
        role fails before any store or model call is made.
        """
        if isinstance(value, str):
            return cls(messages=(ChatMessage(role=ChatRole.USER, content=value),))
        messages: list[ChatMessage] = []
        for item in value:
            if isinstance(item, str):
                messages.append(ChatMessage(role=ChatRole.USER, content=item))
            else:
                messages.append(ChatMessage.from_raw(item))
        return cls(messages=tuple(messages))

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    def ensure_not_empty(self) -> None:
        if not self.messages or not any(message.content.strip() for message in self.messages):
            raise PipelineError(
                "Conversation must contain at least one non-empty message",
                step="conversation",
                kind=ErrorKind.INVALID_REQUEST,
            )

    def latest_question(self) -> str:
        """Return the most recent user message, used as the question for answer synthesis."""
        for message in reversed(self.messages):
            if message.role is ChatRole.USER and message.content.strip():
                return message.content.strip()
        return self.messages[-1].content.strip() if self.messages else ""

    def to_dicts(self) -> list[dict[str, str]]:
        return [message.to_dict() for message in self.messages]

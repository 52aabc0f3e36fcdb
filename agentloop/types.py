"""
Shared Message Types
====================

The data that flows between the Context, the model client and the tools:

- Message: one entry in the conversation history
- ToolCall: a tool invocation requested by the model
- LLMResponse: what a model round trip returns

Message content is always a list of media envelopes (see agentloop.media),
so a plain text message is simply `[{"type": "text", "text": "..."}]`.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from agentloop import media

ROLES = ("system", "user", "assistant", "tool")


@dataclass
class ToolCall:
    """
    A parsed tool call from the model.

    Attributes:
        id: The tool call ID (tool results must echo it)
        name: The tool name
        arguments: Parsed arguments dict
    """
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass
class Message:
    """
    A single message in the conversation.

    Attributes:
        role: "system", "user", "assistant" or "tool"
        content: Ordered content parts (media envelopes)
        tool_calls: Tools the assistant asked for in this message
        tool_call_id: For tool messages, the call this result answers
        name: For tool messages, the tool that produced the result
        timestamp: When the message was created
    """
    role: str
    content: list[dict[str, Any]] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def system(cls, text: str) -> "Message":
        return cls(role="system", content=[media.text(text)])

    @classmethod
    def user(cls, text: str, parts: list[dict[str, Any]] | None = None) -> "Message":
        """Build a user message from text plus already-built media parts."""
        return cls(role="user", content=[media.text(text)] + list(parts or []))

    @classmethod
    def assistant(cls, text: str, tool_calls: list[ToolCall] | None = None) -> "Message":
        content = [media.text(text)] if text else []
        return cls(role="assistant", content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool(cls, tool_call_id: str, name: str, text: str) -> "Message":
        return cls(
            role="tool",
            content=[media.text(text)],
            tool_call_id=tool_call_id,
            name=name,
        )

    @property
    def text(self) -> str:
        """All text parts joined together."""
        return "".join(part["text"] for part in self.content if part.get("type") == "text")

    @property
    def media_parts(self) -> list[dict[str, Any]]:
        """Non-text content parts."""
        return [part for part in self.content if part.get("type") != "text"]

    def to_dict(self) -> dict:
        """Convert to a plain dict (for logging and serialization)."""
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            data["name"] = self.name
        return data


@dataclass
class LLMResponse:
    """
    Result of one model round trip.

    Attributes:
        text: Final text (may be empty when tools are requested)
        tool_calls: Requested tool invocations, in the model's order
        finish_reason: Provider-reported stop reason, if any
        raw: The provider's untouched response object
    """
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None
    raw: Any = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_message(self) -> Message:
        """The assistant message this response adds to the history."""
        return Message.assistant(self.text, self.tool_calls)

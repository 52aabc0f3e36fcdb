"""
Model Clients
=============

The Context talks to a language model only through the ModelClient
protocol below. Any object with these three methods works: the
OpenAI-backed client in this package, another provider, or a test stub.

Error contract for implementations:
- raise TransportError when the model cannot be reached
- raise ProviderError when the API reports a non-recoverable failure
- never retry internally on behalf of the Context

Streaming:
    `stream_chat` returns an async iterator of text chunks. The Context
    closes it with `aclose()` when the consumer stops early, so
    implementations should be async generators that release their
    connection in a `finally` block.
"""

from typing import AsyncIterator, Protocol, Sequence, runtime_checkable

from agentloop.tools import ToolDescriptor
from agentloop.types import LLMResponse, Message


@runtime_checkable
class ModelClient(Protocol):
    """One round trip to a language model."""

    async def chat(self, messages: Sequence[Message]) -> LLMResponse:
        """Complete the conversation without offering tools."""
        ...

    async def chat_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDescriptor]
    ) -> LLMResponse:
        """Complete the conversation; the response may request tool calls."""
        ...

    def stream_chat(self, messages: Sequence[Message]) -> AsyncIterator[str]:
        """Stream the completion as text chunks."""
        ...


__all__ = ["ModelClient"]

"""
Pytest Configuration and Fixtures
"""

from typing import Callable, Sequence

import pytest

from agentloop.agent import Context
from agentloop.tools import Tool, ToolDescriptor, ToolRegistry, ToolResult
from agentloop.types import LLMResponse, Message, ToolCall


class StubModelClient:
    """
    Scripted model client.

    `responses` is consumed in order by chat/chat_with_tools; an entry
    may be an LLMResponse, an exception to raise, or a callable taking
    the call number and returning an LLMResponse.
    """

    def __init__(self, responses: Sequence = (), chunks: Sequence[str] = ()):
        self.responses = list(responses)
        self.chunks = list(chunks)
        self.requests: list[list[Message]] = []
        self.tool_lists: list[list[ToolDescriptor]] = []
        self.closed = 0
        self.pulled = 0

    def _next(self) -> LLMResponse:
        if not self.responses:
            raise AssertionError("StubModelClient ran out of responses")
        item = self.responses[0]
        if callable(item) and not isinstance(item, LLMResponse):
            return item(len(self.requests))
        self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def chat(self, messages):
        self.requests.append(list(messages))
        return self._next()

    async def chat_with_tools(self, messages, tools):
        self.requests.append(list(messages))
        self.tool_lists.append(list(tools))
        return self._next()

    async def stream_chat(self, messages):
        self.requests.append(list(messages))
        try:
            for chunk in self.chunks:
                self.pulled += 1
                yield chunk
        finally:
            self.closed += 1


def tool_call_response(*calls: tuple[str, str, dict]) -> LLMResponse:
    """An LLMResponse requesting the given (id, name, arguments) calls."""
    return LLMResponse(
        text="",
        tool_calls=[ToolCall(id=cid, name=name, arguments=args) for cid, name, args in calls],
        finish_reason="tool_calls",
    )


def make_tool(name: str, execute: Callable, description: str = "") -> Tool:
    return Tool(
        name=name,
        description=description or f"The {name} tool",
        parameters={"type": "object", "properties": {}},
        execute=execute,
    )


@pytest.fixture
def echo_tool() -> Tool:
    """A tool that returns its parameters."""
    async def _echo(params: dict) -> ToolResult:
        return ToolResult(success=True, data=params)

    return make_tool("echo", _echo)


@pytest.fixture
def registry(echo_tool) -> ToolRegistry:
    return ToolRegistry([echo_tool])


@pytest.fixture
def stub_llm() -> StubModelClient:
    return StubModelClient()


@pytest.fixture
def context(stub_llm, registry) -> Context:
    return Context(llm=stub_llm, system_prompt="You are a test assistant.", registry=registry, max_tool_turns=5)

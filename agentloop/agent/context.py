"""
Context
=======

The Context owns one conversation: its system prompt, its message
history, the tools the model may call, and the model client.

Tool-calling loop (chat_with_tools):

    User Message
         │
         ▼
    Model request (history + tool descriptors)
         │
         ▼
    ┌─── Has Tool Calls? ───┐
    │                       │
    Yes                     No
    │                       │
    ▼                       ▼
    Execute tools in        Return response
    the model's order
    │
    ▼
    Append one tool message per call
    │
    └──── next round (at most max_tool_turns rounds)

History is append-only. Whatever was appended before a failure stays in
place; nothing is rolled back.

A Context is not reentrant: start one chat call, await it, then start
the next. Use separate Contexts for concurrent conversations.
"""

import asyncio
import inspect
from contextlib import aclosing, contextmanager
from dataclasses import replace
from typing import Any, AsyncIterator, Iterator

from agentloop.errors import LoopExceededError, ToolNotFoundError
from agentloop.llm import ModelClient
from agentloop.media import build_parts, normalize_media_part
from agentloop.tools import ToolCapability, ToolRegistry, ToolResult
from agentloop.types import ROLES, LLMResponse, Message, ToolCall
from agentloop.utils.config import get_config
from agentloop.utils.logger import Logger

logger = Logger("Context")


class Context:
    """
    A conversation with a model, plus the tools it may use.

    Example:
        context = Context(llm=OpenAIModelClient(), system_prompt="Be brief.")
        context.register_tool_registry(create_builtin_registry())

        response = await context.chat_with_tools("What's in /tmp?")
        print(response.text)

        async for chunk in context.stream_chat("Now summarize that"):
            print(chunk, end="")

    Args:
        llm: The model client (can be set later)
        system_prompt: Defaults to AGENT_SYSTEM_PROMPT
        registry: Tool registry to use; shared, not copied
        max_tool_turns: Model round trips allowed per chat_with_tools call
    """

    def __init__(
        self,
        llm: ModelClient | None = None,
        system_prompt: str | None = None,
        registry: ToolRegistry | None = None,
        max_tool_turns: int | None = None
    ):
        config = get_config().agent

        self._llm = llm
        self._system_prompt = system_prompt if system_prompt is not None else config.system_prompt
        self._registry = registry if registry is not None else ToolRegistry()
        self._messages: list[Message] = []
        self._issued_call_ids: set[str] = set()
        self._busy = False
        self.max_tool_turns = max_tool_turns if max_tool_turns is not None else config.max_tool_turns

    # ==========================================================================
    # Configuration
    # ==========================================================================

    @property
    def llm(self) -> ModelClient | None:
        return self._llm

    @llm.setter
    def llm(self, llm: ModelClient) -> None:
        self._llm = llm

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @system_prompt.setter
    def system_prompt(self, prompt: str) -> None:
        self._system_prompt = prompt

    @property
    def max_tool_turns(self) -> int:
        return self._max_tool_turns

    @max_tool_turns.setter
    def max_tool_turns(self, turns: int) -> None:
        if turns < 1:
            raise ValueError("max_tool_turns must be at least 1")
        self._max_tool_turns = turns

    # ==========================================================================
    # Tools
    # ==========================================================================

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def register_tool(self, tool: ToolCapability) -> None:
        """Register one tool (DuplicateToolError on a name clash)."""
        self._registry.register(tool)

    def register_tool_registry(self, registry: ToolRegistry) -> None:
        """Import every tool of another registry."""
        self._registry.import_from(registry)

    def get_tool(self, name: str) -> ToolCapability | None:
        return self._registry.get(name)

    @property
    def tools(self) -> list[ToolCapability]:
        """Registered tools in registration order."""
        return self._registry.get_all()

    async def execute_tool(self, name: str, params: dict[str, Any]) -> ToolResult:
        """
        Run a registered tool.

        Sync and async tools are both supported. Sync tools run in a
        worker thread so a blocking tool does not stall the event loop.
        A tool that returns something other than a ToolResult is treated
        as a success with that value as data. Exceptions raised by the
        tool are returned as a failed ToolResult.

        Raises:
            ToolNotFoundError: If no tool has this name
        """
        tool = self._registry.get(name)
        if tool is None:
            raise ToolNotFoundError(name)

        logger.info(f"Executing tool: {name}")

        try:
            if inspect.iscoroutinefunction(tool.execute):
                result = await tool.execute(params)
            else:
                result = await asyncio.to_thread(tool.execute, params)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"Tool execution failed: {name}", e)
            return ToolResult(success=False, error=str(e) or type(e).__name__)

        if not isinstance(result, ToolResult):
            result = ToolResult(success=True, data=result)

        if result.success:
            logger.debug(f"Tool {name} succeeded")
        else:
            logger.warning(f"Tool {name} failed: {result.error}")

        return result

    # ==========================================================================
    # History
    # ==========================================================================

    @property
    def messages(self) -> list[Message]:
        """A copy of the conversation history (system prompt excluded)."""
        return list(self._messages)

    def add_message(self, message: Message) -> None:
        """
        Append a message to the history.

        Raises:
            ValueError: For an unknown role, a system message (use
                `system_prompt`), or a tool message whose tool_call_id
                was never issued by an assistant message
            InvalidMediaError: If a content part is not a valid envelope
        """
        if message.role not in ROLES:
            raise ValueError(f"Unknown message role: {message.role}")
        if message.role == "system":
            raise ValueError("Set the system prompt through Context.system_prompt")
        if message.role == "tool" and message.tool_call_id not in self._issued_call_ids:
            raise ValueError(f"Tool result references unknown tool call: {message.tool_call_id}")

        message = replace(message, content=[normalize_media_part(part) for part in message.content])

        for call in message.tool_calls:
            self._issued_call_ids.add(call.id)

        self._messages.append(message)

    def clear_history(self) -> None:
        """Drop all messages; the system prompt and tools are kept."""
        self._messages.clear()
        self._issued_call_ids.clear()
        logger.info("Cleared conversation history")

    def _request_messages(self) -> list[Message]:
        prefix = [Message.system(self._system_prompt)] if self._system_prompt else []
        return prefix + self._messages

    def _build_user_message(self, user_text: str, uris_or_data: list[str] | None) -> Message:
        # InvalidMediaError here leaves the history untouched
        return Message(role="user", content=build_parts(user_text, uris_or_data))

    def _require_llm(self) -> ModelClient:
        if self._llm is None:
            raise RuntimeError("No model client set on this Context")
        return self._llm

    @contextmanager
    def _turn(self) -> Iterator[None]:
        if self._busy:
            raise RuntimeError("A chat call is already in progress on this Context")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    # ==========================================================================
    # Chat
    # ==========================================================================

    async def chat(self, user_text: str, uris_or_data: list[str] | None = None) -> LLMResponse:
        """
        One round trip without tools.

        Raises:
            TransportError / ProviderError: From the model client, unchanged;
                the user message stays in the history
        """
        with self._turn():
            message = self._build_user_message(user_text, uris_or_data)
            llm = self._require_llm()
            self.add_message(message)

            response = await llm.chat(self._request_messages())

            self.add_message(Message.assistant(response.text))
            logger.debug(f"Chat response ({len(response.text)} chars)")
            return response

    async def chat_with_tools(
        self,
        user_text: str,
        uris_or_data: list[str] | None = None
    ) -> LLMResponse:
        """
        Run the tool-calling loop until the model answers without tools.

        Tool failures go back to the model as failed results. The first
        request for an unknown tool is answered with a "does not exist"
        result; a second one ends the call.

        Raises:
            LoopExceededError: After max_tool_turns rounds that all asked for tools
            ToolNotFoundError: On the second request for an unknown tool
            TransportError / ProviderError: From the model client, unchanged
        """
        with self._turn():
            message = self._build_user_message(user_text, uris_or_data)
            llm = self._require_llm()
            self.add_message(message)

            descriptors = self._registry.list()
            unknown_tool_reported = False

            for turn in range(1, self._max_tool_turns + 1):
                response = await llm.chat_with_tools(self._request_messages(), descriptors)
                self.add_message(response.to_message())

                if not response.has_tool_calls:
                    logger.info(f"Final answer after {turn} turn(s)")
                    return response

                logger.debug(f"Tool round {turn}: {len(response.tool_calls)} call(s)")

                for call in response.tool_calls:
                    if call.name not in self._registry:
                        if unknown_tool_reported:
                            logger.error(f"Model requested unknown tool again: {call.name}")
                            raise ToolNotFoundError(call.name)
                        unknown_tool_reported = True
                        result = self._unknown_tool_result(call)
                    else:
                        result = await self.execute_tool(call.name, call.arguments)

                    self.add_message(Message.tool(call.id, call.name, result.to_message()))

            logger.warning(f"Reached max tool turns ({self._max_tool_turns})")
            raise LoopExceededError(self._max_tool_turns)

    def _unknown_tool_result(self, call: ToolCall) -> ToolResult:
        logger.warning(f"Model requested unknown tool: {call.name}")
        available = ", ".join(self._registry.list_names()) or "none"
        return ToolResult(
            success=False,
            error=f"Tool '{call.name}' does not exist. Available tools: {available}"
        )

    async def stream_chat(
        self,
        user_text: str,
        uris_or_data: list[str] | None = None
    ) -> AsyncIterator[str]:
        """
        Stream the model's answer as text chunks.

        The assistant message is appended once the stream finishes. If
        the consumer stops early and closes this generator, the model
        stream is closed right away and nothing is appended.

        Example:
            async with contextlib.aclosing(context.stream_chat("Hi")) as chunks:
                async for chunk in chunks:
                    print(chunk, end="")
        """
        with self._turn():
            message = self._build_user_message(user_text, uris_or_data)
            llm = self._require_llm()
            self.add_message(message)

            collected: list[str] = []
            async with aclosing(llm.stream_chat(self._request_messages())) as stream:
                async for chunk in stream:
                    collected.append(chunk)
                    yield chunk

            self.add_message(Message.assistant("".join(collected)))
            logger.debug(f"Streamed response ({sum(len(c) for c in collected)} chars)")

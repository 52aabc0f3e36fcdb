"""
OpenAI Model Client
===================

ModelClient implementation on top of the OpenAI chat completions API.

Responsibilities:
1. Convert Messages (and their media envelopes) to OpenAI message dicts
2. Advertise tools in OpenAI function format
3. Parse tool calls out of the response
4. Map client failures onto TransportError / ProviderError

Media mapping:
    image (uri or data)  -> image_url part (data becomes a data URL)
    audio data wav/mp3   -> input_audio part
    document data        -> file part
    anything else        -> a text note with the reference, since the
                            chat completions API cannot fetch it

Usage:
    client = OpenAIModelClient()            # settings from the environment
    context = Context(llm=client)
"""

import json
from typing import Any, AsyncIterator, Sequence

import httpx
import openai
from openai import AsyncOpenAI

from agentloop.errors import AgentError, ProviderError, TransportError
from agentloop.tools import ToolDescriptor
from agentloop.types import LLMResponse, Message, ToolCall
from agentloop.utils.config import get_config, require_openai_key
from agentloop.utils.logger import Logger

logger = Logger("OpenAI")

_AUDIO_FORMATS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
}


def translate_error(error: Exception) -> AgentError:
    """Map an openai/httpx exception to the runtime's error kinds."""
    if isinstance(error, (openai.APIConnectionError, httpx.TransportError)):
        return TransportError(str(error))
    if isinstance(error, openai.APIStatusError):
        return ProviderError(str(error), status_code=error.status_code)
    return ProviderError(str(error))


# ==============================================================================
# Request formatting
# ==============================================================================

def _data_url(part: dict) -> str:
    return f"data:{part['mime']};base64,{part['data']}"


def _format_part(part: dict) -> dict:
    kind = part.get("type")

    if kind == "text":
        return {"type": "text", "text": part["text"]}

    if kind == "image":
        url = part["uri"] if "uri" in part else _data_url(part)
        return {"type": "image_url", "image_url": {"url": url}}

    if kind == "audio" and "data" in part and part.get("mime") in _AUDIO_FORMATS:
        return {
            "type": "input_audio",
            "input_audio": {"data": part["data"], "format": _AUDIO_FORMATS[part["mime"]]}
        }

    if kind == "document" and "data" in part:
        extension = part["mime"].rsplit("/", 1)[-1]
        return {
            "type": "file",
            "file": {"filename": f"document.{extension}", "file_data": _data_url(part)}
        }

    reference = part.get("uri") or f"inline {part.get('mime', 'data')}"
    return {"type": "text", "text": f"[{kind}: {reference}]"}


def format_message(message: Message) -> dict:
    """Convert one Message to the OpenAI chat format."""
    if message.role == "tool":
        return {
            "role": "tool",
            "tool_call_id": message.tool_call_id,
            "content": message.text
        }

    if message.role == "assistant":
        result: dict[str, Any] = {"role": "assistant", "content": message.text or None}
        if message.tool_calls:
            result["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)}
                }
                for tc in message.tool_calls
            ]
        return result

    if not message.media_parts:
        return {"role": message.role, "content": message.text}

    return {"role": message.role, "content": [_format_part(p) for p in message.content]}


def format_messages(messages: Sequence[Message]) -> list[dict]:
    return [format_message(m) for m in messages]


# ==============================================================================
# Response parsing
# ==============================================================================

def parse_tool_calls(message: Any) -> list[ToolCall]:
    """
    Parse tool calls from an OpenAI response message.

    Arguments that are not valid JSON become an empty dict so the tool
    can report the missing parameters back to the model.
    """
    tool_calls = []
    for tc in message.tool_calls or []:
        try:
            arguments = json.loads(tc.function.arguments or "{}")
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse tool arguments for {tc.function.name}", e)
            arguments = {}

        if not isinstance(arguments, dict):
            arguments = {}

        tool_calls.append(ToolCall(id=tc.id, name=tc.function.name, arguments=arguments))

    return tool_calls


def parse_response(response: Any) -> LLMResponse:
    choice = response.choices[0]
    return LLMResponse(
        text=choice.message.content or "",
        tool_calls=parse_tool_calls(choice.message),
        finish_reason=choice.finish_reason,
        raw=response
    )


class OpenAIModelClient:
    """
    Model client for OpenAI (and OpenAI-compatible) endpoints.

    Args:
        model: Model name; defaults to OPENAI_MODEL
        client: Preconfigured AsyncOpenAI client (mainly for tests)
        http_client: Optional httpx.AsyncClient passed to AsyncOpenAI
    """

    def __init__(
        self,
        model: str | None = None,
        client: AsyncOpenAI | None = None,
        http_client: httpx.AsyncClient | None = None
    ):
        config = get_config()
        self.model = model or config.openai.model

        if client is None:
            client = AsyncOpenAI(
                api_key=require_openai_key(config),
                base_url=config.openai.base_url,
                timeout=config.openai.timeout_seconds,
                max_retries=0,
                http_client=http_client
            )
        self.client = client

        logger.info(f"OpenAI client initialized with model: {self.model}")

    async def _create(self, **kwargs: Any) -> Any:
        try:
            return await self.client.chat.completions.create(model=self.model, **kwargs)
        except (openai.APIError, httpx.HTTPError) as e:
            logger.error("Chat completion request failed", e)
            raise translate_error(e) from e

    async def chat(self, messages: Sequence[Message]) -> LLMResponse:
        response = await self._create(messages=format_messages(messages))
        return parse_response(response)

    async def chat_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDescriptor]
    ) -> LLMResponse:
        kwargs: dict[str, Any] = {"messages": format_messages(messages)}
        if tools:
            kwargs["tools"] = [t.to_openai_function() for t in tools]
            kwargs["tool_choice"] = "auto"

        response = await self._create(**kwargs)
        return parse_response(response)

    async def stream_chat(self, messages: Sequence[Message]) -> AsyncIterator[str]:
        """Yield content deltas; the HTTP stream is closed on exit or abandonment."""
        stream = await self._create(messages=format_messages(messages), stream=True)
        try:
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except (openai.APIError, httpx.HTTPError) as e:
            logger.error("Streaming response failed", e)
            raise translate_error(e) from e
        finally:
            await stream.close()

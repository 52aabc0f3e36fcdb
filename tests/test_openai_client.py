"""
Tests for the OpenAI model client

The AsyncOpenAI client is replaced by a fake exposing
`chat.completions.create`, so no network access is needed.
"""

import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from agentloop import media
from agentloop.agent import Context
from agentloop.errors import ProviderError, TransportError
from agentloop.llm import ModelClient
from agentloop.llm.openai_client import OpenAIModelClient, format_message, parse_response
from agentloop.tools import ToolDescriptor
from agentloop.types import Message, ToolCall

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def completion(content=None, tool_calls=None, finish_reason="stop"):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason=finish_reason)])


def function_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def delta(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class FakeStream:
    def __init__(self, chunks):
        self.chunks = chunks
        self.closed = 0

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def close(self):
        self.closed += 1


class FakeOpenAI:
    """Records create() calls and replays scripted results."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs):
        self.calls.append(kwargs)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class TestFormatting:
    """Test Message -> OpenAI dict conversion."""

    def test_text_user(self):
        assert format_message(Message.user("hi")) == {"role": "user", "content": "hi"}

    def test_multimodal_user(self):
        message = Message.user("see", [
            media.image("image/png", uri="https://x/y.png"),
            media.image("image/jpeg", data="AAAA"),
            media.audio("audio/wav", data="BBBB"),
            media.document("application/pdf", data="CCCC"),
            media.video("video/mp4", uri="https://x/v.mp4"),
        ])

        parts = format_message(message)["content"]

        assert parts[0] == {"type": "text", "text": "see"}
        assert parts[1] == {"type": "image_url", "image_url": {"url": "https://x/y.png"}}
        assert parts[2]["image_url"]["url"] == "data:image/jpeg;base64,AAAA"
        assert parts[3] == {"type": "input_audio", "input_audio": {"data": "BBBB", "format": "wav"}}
        assert parts[4]["file"]["file_data"] == "data:application/pdf;base64,CCCC"
        assert parts[5] == {"type": "text", "text": "[video: https://x/v.mp4]"}

    def test_assistant_with_tool_calls(self):
        message = Message.assistant("", [ToolCall(id="c1", name="echo", arguments={"x": 1})])

        formatted = format_message(message)

        assert formatted["content"] is None
        assert formatted["tool_calls"][0]["id"] == "c1"
        assert json.loads(formatted["tool_calls"][0]["function"]["arguments"]) == {"x": 1}

    def test_tool_message(self):
        assert format_message(Message.tool("c1", "echo", "out")) == {
            "role": "tool",
            "tool_call_id": "c1",
            "content": "out",
        }


class TestParsing:
    """Test response parsing."""

    def test_text_response(self):
        response = parse_response(completion("hello"))
        assert response.text == "hello"
        assert response.tool_calls == []
        assert response.finish_reason == "stop"

    def test_tool_calls_in_order(self):
        response = parse_response(completion(tool_calls=[
            function_call("c1", "b", '{"n": 1}'),
            function_call("c2", "a", "not json"),
        ], finish_reason="tool_calls"))

        assert [(tc.id, tc.name) for tc in response.tool_calls] == [("c1", "b"), ("c2", "a")]
        assert response.tool_calls[0].arguments == {"n": 1}
        assert response.tool_calls[1].arguments == {}
        assert response.text == ""


class TestOpenAIModelClient:
    """Test requests and error mapping."""

    def test_satisfies_protocol(self):
        assert isinstance(OpenAIModelClient(model="m", client=FakeOpenAI()), ModelClient)

    @pytest.mark.asyncio
    async def test_chat_with_tools_request(self):
        fake = FakeOpenAI(completion("done"))
        client = OpenAIModelClient(model="test-model", client=fake)
        tools = [ToolDescriptor("echo", "Echo", {"type": "object", "properties": {}})]

        response = await client.chat_with_tools([Message.user("hi")], tools)

        assert response.text == "done"
        call = fake.calls[0]
        assert call["model"] == "test-model"
        assert call["tool_choice"] == "auto"
        assert call["tools"][0]["function"]["name"] == "echo"

    @pytest.mark.asyncio
    async def test_no_tools_omits_tool_choice(self):
        fake = FakeOpenAI(completion("done"))
        client = OpenAIModelClient(model="m", client=fake)

        await client.chat_with_tools([Message.user("hi")], [])

        assert "tools" not in fake.calls[0]

    @pytest.mark.asyncio
    async def test_connection_error_is_transport_error(self):
        fake = FakeOpenAI(openai.APIConnectionError(request=REQUEST))
        client = OpenAIModelClient(model="m", client=fake)

        with pytest.raises(TransportError):
            await client.chat([Message.user("hi")])

    @pytest.mark.asyncio
    async def test_status_error_is_provider_error(self):
        response = httpx.Response(429, request=REQUEST)
        fake = FakeOpenAI(openai.APIStatusError("rate limited", response=response, body=None))
        client = OpenAIModelClient(model="m", client=fake)

        with pytest.raises(ProviderError) as exc_info:
            await client.chat([Message.user("hi")])

        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_stream_closed_when_abandoned(self):
        stream = FakeStream([delta("a"), delta(None), delta("b"), delta("c")])
        client = OpenAIModelClient(model="m", client=FakeOpenAI(stream))
        context = Context(llm=client)

        generator = context.stream_chat("hi")
        assert await generator.__anext__() == "a"
        assert await generator.__anext__() == "b"
        await generator.aclose()

        assert stream.closed == 1

    @pytest.mark.asyncio
    async def test_stream_full(self):
        stream = FakeStream([delta("a"), delta("b")])
        fake = FakeOpenAI(stream)
        client = OpenAIModelClient(model="m", client=fake)

        chunks = [chunk async for chunk in client.stream_chat([Message.user("hi")])]

        assert chunks == ["a", "b"]
        assert stream.closed == 1
        assert fake.calls[0]["stream"] is True

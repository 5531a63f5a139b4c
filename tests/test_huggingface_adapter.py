import asyncio
import json
from typing import Any

import httpx
import pytest

from hfrelay.config import InterceptorConfig
from hfrelay.core import (
    GenerationOptions,
    ImagePart,
    NormalizedMessage,
    StreamDelta,
    StreamError,
    StreamFinish,
    StreamStart,
    TERMINAL_EVENT_TYPES,
    TextPart,
)
from hfrelay.exceptions import ConfigurationError, EmptyResponseError, TransportError
from hfrelay.providers import HuggingFaceChatAdapter, collect_stream, estimate_tokens

PROMPT = [
    NormalizedMessage(role="system", content="You are terse."),
    NormalizedMessage(role="user", content=(TextPart(text="say hi"),)),
]
WIRE_MESSAGES = [
    {"role": "system", "content": "You are terse."},
    {"role": "user", "content": "say hi"},
]


def _adapter(handler: Any) -> HuggingFaceChatAdapter:
    return HuggingFaceChatAdapter(
        "tgi",
        api_key="hf-test-key",
        endpoint_url="https://ep.example/",
        transport=httpx.MockTransport(handler),
    )


def _sse(*chunks: dict[str, Any], done: bool = True) -> bytes:
    lines = [f"data: {json.dumps(chunk)}\n\n" for chunk in chunks]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def _collect(adapter: HuggingFaceChatAdapter, **kwargs: Any) -> list[Any]:
    async def scenario():
        return [event async for event in adapter.stream(PROMPT, **kwargs)]

    return asyncio.run(scenario())


def test_generate_sends_wire_request_and_maps_eos_token() -> None:
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["authorization"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"choices": [{"message": {"content": "hi"}, "finish_reason": "eos_token"}]},
        )

    result = asyncio.run(_adapter(handler).generate(PROMPT))

    assert seen["url"] == "https://ep.example/v1/chat/completions"
    assert seen["authorization"] == "Bearer hf-test-key"
    assert seen["body"] == {
        "model": "tgi",
        "messages": WIRE_MESSAGES,
        "max_tokens": 500,
        "temperature": 0.7,
    }
    assert result.text == "hi"
    assert result.finish_reason == "stop"
    assert result.usage.input_tokens == estimate_tokens(WIRE_MESSAGES)
    assert result.usage.output_tokens == estimate_tokens("hi")
    assert result.usage.total_tokens == estimate_tokens(WIRE_MESSAGES) + estimate_tokens("hi")
    assert result.request_body == seen["body"]
    assert result.response_body["choices"][0]["message"]["content"] == "hi"


def test_generate_prefers_upstream_usage_and_forwards_options() -> None:
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "choices": [{"message": {"content": "ok"}, "finish_reason": "length"}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
            },
        )

    result = asyncio.run(
        _adapter(handler).generate(
            PROMPT,
            GenerationOptions(max_output_tokens=3, temperature=0.1, seed=42, stop_sequences=["."]),
        )
    )

    assert seen["body"]["max_tokens"] == 3
    assert seen["body"]["temperature"] == 0.1
    assert seen["body"]["seed"] == 42
    assert seen["body"]["stop"] == ["."]
    assert "top_p" not in seen["body"]
    assert result.finish_reason == "length"
    assert result.usage.to_dict() == {"input_tokens": 12, "output_tokens": 3, "total_tokens": 15}


def test_generate_without_choices_raises_empty_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": []})

    with pytest.raises(EmptyResponseError):
        asyncio.run(_adapter(handler).generate(PROMPT))


def test_generate_wraps_network_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(_adapter(handler).generate(PROMPT))

    assert "connection refused" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def test_generate_wraps_http_status_and_decoding_errors() -> None:
    def failing(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="overloaded")

    def garbled(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>not json</html>")

    with pytest.raises(TransportError) as status_info:
        asyncio.run(_adapter(failing).generate(PROMPT))
    assert "503" in str(status_info.value)

    with pytest.raises(TransportError):
        asyncio.run(_adapter(garbled).generate(PROMPT))


def test_generate_reports_dropped_image_as_warning() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": "a cat"}}]})

    prompt = [
        NormalizedMessage(
            role="user",
            content=(TextPart(text="what is it?"), ImagePart(image="data:image/png;base64,AA")),
        )
    ]

    result = asyncio.run(_adapter(handler).generate(prompt))

    assert result.finish_reason == "other"
    assert [warning.type for warning in result.warnings] == ["unsupported-content"]


def test_stream_emits_start_deltas_and_mapped_finish() -> None:
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            headers={"Content-Type": "text/event-stream"},
            content=_sse(
                {"choices": [{"delta": {"content": "Hel"}}]},
                {"choices": [{"delta": {"content": "lo"}}]},
                {"choices": [{"delta": {}, "finish_reason": "length"}]},
                {"choices": [{"delta": {"content": "ignored"}}]},
            ),
        )

    events = _collect(_adapter(handler))

    assert seen["body"]["stream"] is True
    assert [type(event) for event in events] == [StreamStart, StreamDelta, StreamDelta, StreamFinish]
    assert [event.text for event in events if isinstance(event, StreamDelta)] == ["Hel", "lo"]
    finish = events[-1]
    assert finish.finish_reason == "length"
    assert finish.usage.input_tokens == estimate_tokens(WIRE_MESSAGES)
    assert finish.usage.output_tokens == 2
    assert finish.usage.total_tokens == finish.usage.input_tokens + 2


def test_stream_synthesizes_stop_when_upstream_never_finishes() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            content=_sse({"choices": [{"delta": {"content": "partial"}}]}, done=False),
        )

    events = _collect(_adapter(handler))

    assert [type(event) for event in events] == [StreamStart, StreamDelta, StreamFinish]
    assert events[-1].finish_reason == "stop"
    assert events[-1].usage.output_tokens == 2


def test_stream_failure_ends_with_single_error_event() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="bad token")

    events = _collect(_adapter(handler))

    assert [type(event) for event in events] == [StreamStart, StreamError]
    assert "401" in events[-1].message
    terminal = [event for event in events if isinstance(event, TERMINAL_EVENT_TYPES)]
    assert terminal == [events[-1]]


def test_stream_close_releases_upstream_response() -> None:
    state = {"closed": False, "chunks_sent": 0}

    class RecordingStream(httpx.AsyncByteStream):
        async def __aiter__(self):
            for chunk in (
                {"choices": [{"delta": {"content": "one "}}]},
                {"choices": [{"delta": {"content": "two "}}]},
                {"choices": [{"delta": {"content": "three"}}]},
            ):
                state["chunks_sent"] += 1
                yield _sse(chunk, done=False)

        async def aclose(self) -> None:
            state["closed"] = True

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=RecordingStream())

    async def scenario():
        events = _adapter(handler).stream(PROMPT)
        received = [await events.__anext__(), await events.__anext__()]
        await events.aclose()
        return received

    received = asyncio.run(scenario())

    assert isinstance(received[0], StreamStart)
    assert received[1] == StreamDelta(text="one ")
    assert state["closed"] is True
    assert state["chunks_sent"] == 1


def test_collect_stream_folds_events_into_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            content=_sse(
                {"choices": [{"delta": {"content": "Hel"}}]},
                {"choices": [{"delta": {"content": "lo"}, "finish_reason": "stop"}]},
            ),
        )

    result = asyncio.run(collect_stream(_adapter(handler).stream(PROMPT)))

    assert result.text == "Hello"
    assert result.finish_reason == "stop"


def test_from_config_rejects_missing_credentials_before_io() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        HuggingFaceChatAdapter.from_config(InterceptorConfig(endpoint_url="https://ep.example"))

    assert "API key is required" in str(excinfo.value)


def test_from_config_uses_default_model_id() -> None:
    adapter = HuggingFaceChatAdapter.from_config(
        InterceptorConfig(api_key="k", endpoint_url="https://ep.example///")
    )

    assert adapter.model_id == "tgi"
    assert adapter.url == "https://ep.example/v1/chat/completions"

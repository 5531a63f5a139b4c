import asyncio
import json
from typing import Any

import httpx
import pytest

from hfrelay.config import InterceptorConfig
from hfrelay.core import NormalizedMessage
from hfrelay.providers import HuggingFaceChatAdapter
from hfrelay.transport import (
    AsyncRedirectTransport,
    RedirectRouter,
    RedirectTransport,
    build_redirect_url,
    is_chat_completion_url,
    merge_redirect_headers,
    redact_headers,
)

ACTIVE = InterceptorConfig(api_key="k", endpoint_url="https://ep.example/")


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://api.openai.com/v1/chat/completions", True),
        ("https://api.openai.com/v1/completions", True),
        ("http://localhost:11434/proxy/v1/chat/completions?x=1", True),
        ("https://api.openai.com/v1/embeddings", False),
        ("https://example.local/docs?next=/v1/chat/completions", False),
    ],
)
def test_chat_completion_path_detection(url: str, expected: bool) -> None:
    assert is_chat_completion_url(url) is expected


def test_redirect_url_strips_trailing_slash() -> None:
    assert build_redirect_url("https://ep.example/") == "https://ep.example/v1/chat/completions"
    assert build_redirect_url("https://ep.example") == "https://ep.example/v1/chat/completions"


def test_redirect_headers_take_precedence_case_insensitively() -> None:
    merged = merge_redirect_headers(
        {
            "authorization": "Bearer original",
            "X-Trace": "abc",
            "Host": "api.openai.com",
            "content-type": "text/plain",
        },
        "k",
    )

    assert merged == {
        "X-Trace": "abc",
        "Content-Type": "application/json",
        "Authorization": "Bearer k",
    }


def test_router_passes_through_when_inactive_or_unmatched() -> None:
    inactive = RedirectRouter(InterceptorConfig(endpoint_url="https://ep.example"))
    active = RedirectRouter(ACTIVE)

    assert inactive.target_for("https://api.openai.com/v1/chat/completions") is None
    assert active.target_for("https://api.openai.com/v1/models") is None
    assert (
        active.target_for("https://api.openai.com/v1/chat/completions")
        == "https://ep.example/v1/chat/completions"
    )


def test_router_reads_live_config() -> None:
    router = RedirectRouter()
    url = "https://api.openai.com/v1/chat/completions"
    assert router.target_for(url) is None

    router.update(ACTIVE)

    assert router.target_for(url) == "https://ep.example/v1/chat/completions"


def test_sync_redirect_transport_rewrites_matching_requests() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"host": request.url.host})

    transport = RedirectTransport(RedirectRouter(ACTIVE), httpx.MockTransport(handler))
    with httpx.Client(transport=transport) as client:
        redirected = client.post(
            "https://api.openai.com/v1/chat/completions",
            json={"model": "gpt-4o-mini", "messages": []},
            headers={"Authorization": "Bearer sk-original", "X-Trace": "abc"},
        )
        untouched = client.get("https://api.openai.com/v1/models")

    assert redirected.json() == {"host": "ep.example"}
    assert str(seen[0].url) == "https://ep.example/v1/chat/completions"
    assert seen[0].method == "POST"
    assert seen[0].headers["Authorization"] == "Bearer k"
    assert seen[0].headers["X-Trace"] == "abc"
    assert seen[0].headers["Host"] == "ep.example"
    assert json.loads(seen[0].content) == {"model": "gpt-4o-mini", "messages": []}
    assert untouched.json() == {"host": "api.openai.com"}
    assert str(seen[1].url) == "https://api.openai.com/v1/models"


def test_sync_redirect_transport_falls_back_to_original_request() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        if request.url.host == "ep.example":
            raise httpx.ConnectError("endpoint down", request=request)
        return httpx.Response(200, json={"served_by": request.url.host})

    transport = RedirectTransport(RedirectRouter(ACTIVE), httpx.MockTransport(handler))
    with httpx.Client(transport=transport) as client:
        response = client.post(
            "https://api.openai.com/v1/chat/completions",
            json={"messages": []},
            headers={"Authorization": "Bearer sk-original"},
        )

    assert response.json() == {"served_by": "api.openai.com"}
    assert seen == [
        "https://ep.example/v1/chat/completions",
        "https://api.openai.com/v1/chat/completions",
    ]
    assert response.request.headers["Authorization"] == "Bearer sk-original"


def test_async_redirect_transport_feeds_adapter_through_injection() -> None:
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["authorization"] = request.headers["Authorization"]
        return httpx.Response(
            200,
            json={"choices": [{"message": {"content": "routed"}, "finish_reason": "stop"}]},
        )

    transport = AsyncRedirectTransport(RedirectRouter(ACTIVE), httpx.MockTransport(handler))
    adapter = HuggingFaceChatAdapter(
        "gpt-4o-mini",
        api_key="sk-original",
        endpoint_url="https://api.openai.com",
        transport=transport,
    )

    result = asyncio.run(adapter.generate([NormalizedMessage(role="user", content="hi")]))

    assert result.text == "routed"
    assert seen == {
        "url": "https://ep.example/v1/chat/completions",
        "authorization": "Bearer k",
    }


def test_redact_headers_masks_credentials() -> None:
    assert redact_headers({"Authorization": "Bearer k", "X-Trace": "abc"}) == {
        "Authorization": "[REDACTED]",
        "X-Trace": "abc",
    }

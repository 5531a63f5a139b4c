"""Hugging Face inference endpoint adapter over the OpenAI-style chat API."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
import logging
import math
from typing import Any

import httpx

from hfrelay.config import DEFAULT_TIMEOUT_SECONDS, InterceptorConfig, require_valid_config
from hfrelay.core.models import (
    GenerationOptions,
    GenerationResult,
    NormalizedMessage,
    StreamDelta,
    StreamError,
    StreamEvent,
    StreamFinish,
    StreamStart,
    Usage,
)
from hfrelay.exceptions import EmptyResponseError, TransportError
from hfrelay.providers.base import LanguageModel
from hfrelay.providers.conversion import (
    CHARS_PER_TOKEN,
    build_chat_payload,
    build_usage,
    convert_messages,
    error_message,
    estimate_tokens,
    extract_delta_text,
    extract_message_text,
    first_choice,
    iter_sse_chunks,
    map_finish_reason,
)

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"


class HuggingFaceChatAdapter(LanguageModel):
    """Call a Hugging Face endpoint that speaks the OpenAI chat-completions protocol.

    Each call opens its own ``httpx.AsyncClient``. Pass ``transport`` to route
    calls through another transport, such as ``AsyncRedirectTransport`` or a
    test double.
    """

    provider = "huggingface"

    def __init__(
        self,
        model_id: str,
        *,
        api_key: str,
        endpoint_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model_id = model_id
        self._api_key = api_key
        self._endpoint_url = endpoint_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: InterceptorConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "HuggingFaceChatAdapter":
        require_valid_config(config)
        return cls(
            config.resolved_model_id,
            api_key=str(config.api_key).strip(),
            endpoint_url=str(config.endpoint_url).strip(),
            timeout_seconds=config.timeout_seconds,
            transport=transport,
        )

    @property
    def url(self) -> str:
        return f"{self._endpoint_url}{CHAT_COMPLETIONS_PATH}"

    async def generate(
        self,
        prompt: Sequence[NormalizedMessage],
        options: GenerationOptions | None = None,
    ) -> GenerationResult:
        messages, warnings = convert_messages(prompt)
        payload = build_chat_payload(
            model=self.model_id,
            messages=messages,
            options=options or GenerationOptions(),
        )

        try:
            async with self._client() as client:
                response = await client.post(self.url, json=payload, headers=self._headers())
                response.raise_for_status()
                body = response.json()
        except Exception as error:
            message = error_message(error)
            logger.error("inference endpoint call failed: %s", message)
            raise TransportError(message) from error

        choice = first_choice(body)
        if choice is None:
            raise EmptyResponseError("No response from inference endpoint")

        text = extract_message_text(choice)
        return GenerationResult(
            text=text,
            usage=build_usage(body.get("usage"), messages=messages, output_text=text),
            finish_reason=map_finish_reason(choice.get("finish_reason")),
            warnings=warnings,
            request_body=payload,
            response_body=body,
        )

    async def stream(
        self,
        prompt: Sequence[NormalizedMessage],
        options: GenerationOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        messages, warnings = convert_messages(prompt)
        payload = build_chat_payload(
            model=self.model_id,
            messages=messages,
            options=options or GenerationOptions(),
            stream=True,
        )
        input_tokens = estimate_tokens(messages)
        accumulated_length = 0

        yield StreamStart(warnings=tuple(warnings))

        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    self.url,
                    json=payload,
                    headers=self._headers(),
                ) as response:
                    response.raise_for_status()
                    async for chunk in iter_sse_chunks(response.aiter_lines()):
                        choice = first_choice(chunk)
                        if choice is None:
                            continue

                        text = extract_delta_text(choice)
                        if text:
                            accumulated_length += len(text)
                            yield StreamDelta(text=text)

                        finish_reason = choice.get("finish_reason")
                        if finish_reason:
                            yield StreamFinish(
                                usage=_stream_usage(input_tokens, accumulated_length),
                                finish_reason=map_finish_reason(finish_reason),
                            )
                            return
        except Exception as error:
            message = error_message(error)
            logger.error("inference endpoint stream failed: %s", message)
            yield StreamError(message=message)
            return

        yield StreamFinish(
            usage=_stream_usage(input_tokens, accumulated_length),
            finish_reason="stop",
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout_seconds, transport=self._transport)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }


def _stream_usage(input_tokens: int, accumulated_length: int) -> Usage:
    output_tokens = math.ceil(accumulated_length / CHARS_PER_TOKEN)
    return Usage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=input_tokens + output_tokens,
    )

"""Wire-format conversion between normalized conversations and OpenAI-style chat payloads."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
import json
import logging
import math
from typing import Any

from hfrelay.core.models import (
    CallWarning,
    GenerationOptions,
    ImagePart,
    NormalizedMessage,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    Usage,
)
from hfrelay.core.types import ROLES, FinishReason, WarningType

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 500
DEFAULT_TEMPERATURE = 0.7
CHARS_PER_TOKEN = 4
UNKNOWN_ERROR_MESSAGE = "Unknown error from inference endpoint"

_FINISH_REASON_MAP: dict[str, FinishReason] = {
    "stop": "stop",
    "eos_token": "stop",
    "length": "length",
    "max_tokens": "length",
}


def convert_messages(
    prompt: Sequence[NormalizedMessage],
) -> tuple[list[dict[str, str]], list[CallWarning]]:
    """Flatten normalized messages into ``{role, content}`` wire messages."""
    wire_messages: list[dict[str, str]] = []
    warnings: list[CallWarning] = []

    for message in prompt:
        role = message.role
        if role not in ROLES:
            # Lossy: the endpoint has no slot for unknown roles.
            warnings.append(
                _warn(
                    "unsupported-role",
                    f"Role '{role}' is not supported; message was serialized as user content.",
                )
            )
            wire_messages.append({"role": "user", "content": to_json(message.to_dict())})
        elif role == "system":
            wire_messages.append({"role": "system", "content": _join_text(message)})
        elif role == "user":
            if any(isinstance(part, ImagePart) for part in message.parts):
                warnings.append(
                    _warn(
                        "unsupported-content",
                        "Image parts are not supported by the chat endpoint and were dropped.",
                    )
                )
            wire_messages.append({"role": "user", "content": _join_text(message)})
        elif role == "assistant":
            if any(isinstance(part, ToolCallPart) for part in message.parts):
                warnings.append(
                    _warn(
                        "unsupported-content",
                        "Tool calls are not supported by the chat endpoint and were dropped.",
                    )
                )
            wire_messages.append({"role": "assistant", "content": _join_text(message)})
        else:  # tool
            wire_messages.append({"role": "assistant", "content": _render_tool_results(message)})

    return wire_messages, warnings


def build_chat_payload(
    *,
    model: str,
    messages: list[dict[str, str]],
    options: GenerationOptions,
    stream: bool = False,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": (
            options.max_output_tokens
            if options.max_output_tokens is not None
            else DEFAULT_MAX_TOKENS
        ),
        "temperature": (
            options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE
        ),
    }
    if options.top_p is not None:
        payload["top_p"] = options.top_p
    if options.stop_sequences is not None:
        payload["stop"] = list(options.stop_sequences)
    if options.seed is not None:
        payload["seed"] = options.seed
    if stream:
        payload["stream"] = True
    return payload


def estimate_tokens(value: Any) -> int:
    """Rough token count: one token per four characters of text or compact JSON."""
    text = value if isinstance(value, str) else to_json(value)
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def map_finish_reason(reason: Any) -> FinishReason:
    if isinstance(reason, str):
        return _FINISH_REASON_MAP.get(reason, "other")
    return "other"


def build_usage(
    raw_usage: Any,
    *,
    messages: list[dict[str, str]],
    output_text: str,
) -> Usage:
    """Prefer upstream usage counts, estimating whichever are missing."""
    upstream = raw_usage if isinstance(raw_usage, dict) else {}

    input_tokens = _int_or_none(upstream.get("prompt_tokens"))
    if input_tokens is None:
        input_tokens = estimate_tokens(messages)

    output_tokens = _int_or_none(upstream.get("completion_tokens"))
    if output_tokens is None:
        output_tokens = estimate_tokens(output_text)

    total_tokens = _int_or_none(upstream.get("total_tokens")) or 0
    if total_tokens == 0:
        total_tokens = input_tokens + output_tokens

    return Usage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens,
    )


def first_choice(body: Any) -> dict[str, Any] | None:
    if not isinstance(body, dict):
        return None
    choices = body.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return None


def extract_message_text(choice: dict[str, Any]) -> str:
    message = choice.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str):
            return content
    return ""


def extract_delta_text(choice: dict[str, Any]) -> str:
    delta = choice.get("delta")
    if isinstance(delta, dict):
        content = delta.get("content")
        if isinstance(content, str):
            return content
    return ""


async def iter_sse_chunks(lines: AsyncIterator[str]) -> AsyncIterator[dict[str, Any]]:
    """Decode ``data:`` lines of a server-sent event stream into JSON chunks."""
    async for raw_line in lines:
        stripped = raw_line.strip()
        if not stripped or not stripped.startswith("data:"):
            continue
        payload = stripped[5:].strip()
        if payload == "[DONE]":
            break
        try:
            chunk = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("skipping malformed stream line: %s", payload[:200])
            continue
        if isinstance(chunk, dict):
            yield chunk


def error_message(error: object) -> str:
    """Human-readable message for any raised value."""
    if isinstance(error, str):
        return error or UNKNOWN_ERROR_MESSAGE
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    if isinstance(error, BaseException):
        rendered = str(error)
        if rendered:
            return rendered
    return UNKNOWN_ERROR_MESSAGE


def to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def _join_text(message: NormalizedMessage) -> str:
    if isinstance(message.content, str):
        return message.content
    return "\n".join(part.text for part in message.content if isinstance(part, TextPart))


def _render_tool_results(message: NormalizedMessage) -> str:
    if isinstance(message.content, str):
        return message.content
    return "\n".join(
        f"Tool result ({part.tool_name}): {to_json(part.result)}"
        for part in message.content
        if isinstance(part, ToolResultPart)
    )


def _warn(warning_type: WarningType, message: str) -> CallWarning:
    logger.warning(message)
    return CallWarning(type=warning_type, message=message)


def _int_or_none(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None

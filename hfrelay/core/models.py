"""Core data models for normalized conversations and generation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Sequence, Union

from hfrelay.core.types import FINISH_REASONS, FinishReason, PartType, WarningType


@dataclass(frozen=True, slots=True)
class TextPart:
    text: str

    type: ClassVar[PartType] = "text"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True, slots=True)
class ImagePart:
    image: Any
    media_type: str | None = None

    type: ClassVar[PartType] = "image"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "image": self.image}
        if self.media_type is not None:
            payload["media_type"] = self.media_type
        return payload


@dataclass(frozen=True, slots=True)
class ToolCallPart:
    tool_call_id: str
    tool_name: str
    args: Any = None

    type: ClassVar[PartType] = "tool-call"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "tool_call_id": self.tool_call_id,
            "tool_name": self.tool_name,
            "args": self.args,
        }


@dataclass(frozen=True, slots=True)
class ToolResultPart:
    tool_call_id: str
    tool_name: str
    result: Any = None

    type: ClassVar[PartType] = "tool-result"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "tool_call_id": self.tool_call_id,
            "tool_name": self.tool_name,
            "result": self.result,
        }


ContentPart = Union[TextPart, ImagePart, ToolCallPart, ToolResultPart]


def content_part_from_dict(raw: dict[str, Any]) -> ContentPart:
    """Build a content part from its JSON shape."""
    if not isinstance(raw, dict):
        raise ValueError(f"content part must be an object, got {type(raw).__name__}")
    part_type = raw.get("type")
    if part_type == "text":
        return TextPart(text=str(raw.get("text", "")))
    if part_type == "image":
        return ImagePart(image=raw.get("image"), media_type=raw.get("media_type"))
    if part_type == "tool-call":
        return ToolCallPart(
            tool_call_id=str(raw.get("tool_call_id", "")),
            tool_name=str(raw.get("tool_name", "")),
            args=raw.get("args"),
        )
    if part_type == "tool-result":
        return ToolResultPart(
            tool_call_id=str(raw.get("tool_call_id", "")),
            tool_name=str(raw.get("tool_name", "")),
            result=raw.get("result"),
        )
    raise ValueError(f"Unsupported content part type: {part_type}")


@dataclass(frozen=True, slots=True)
class NormalizedMessage:
    """One provider-independent conversation message.

    ``role`` is one of ``ROLES``; other values are carried through and flagged
    at conversion time. ``content`` is either plain text or an ordered tuple
    of content parts.
    Lists passed in are frozen into tuples so the message stays immutable.
    """

    role: str
    content: str | tuple[ContentPart, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.content, str):
            object.__setattr__(self, "content", tuple(self.content))

    @property
    def parts(self) -> tuple[ContentPart, ...]:
        if isinstance(self.content, str):
            return (TextPart(text=self.content),)
        return self.content

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            content: Any = self.content
        else:
            content = [part.to_dict() for part in self.content]
        return {"role": self.role, "content": content}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "NormalizedMessage":
        content = raw.get("content", "")
        if isinstance(content, list):
            return cls(
                role=str(raw["role"]),
                content=tuple(content_part_from_dict(part) for part in content),
            )
        return cls(role=str(raw["role"]), content=str(content))


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    max_output_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    stop_sequences: tuple[str, ...] | None = None
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.stop_sequences is not None:
            object.__setattr__(self, "stop_sequences", tuple(self.stop_sequences))


@dataclass(frozen=True, slots=True)
class Usage:
    input_tokens: int
    output_tokens: int
    total_tokens: int

    def to_dict(self) -> dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True, slots=True)
class CallWarning:
    """Non-fatal signal that part of the prompt could not be forwarded."""

    type: WarningType
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "message": self.message}


@dataclass(slots=True)
class GenerationResult:
    text: str
    usage: Usage
    finish_reason: FinishReason
    warnings: list[CallWarning] = field(default_factory=list)
    request_body: dict[str, Any] | None = None
    response_body: Any = None

    def __post_init__(self) -> None:
        if self.finish_reason not in FINISH_REASONS:
            raise ValueError(f"Unsupported finish reason: {self.finish_reason}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "usage": self.usage.to_dict(),
            "finish_reason": self.finish_reason,
            "warnings": [warning.to_dict() for warning in self.warnings],
        }


@dataclass(frozen=True, slots=True)
class StreamStart:
    warnings: tuple[CallWarning, ...] = ()

    type: ClassVar[str] = "stream-start"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "warnings": [w.to_dict() for w in self.warnings]}


@dataclass(frozen=True, slots=True)
class StreamDelta:
    text: str

    type: ClassVar[str] = "text-delta"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True, slots=True)
class StreamFinish:
    usage: Usage
    finish_reason: FinishReason

    type: ClassVar[str] = "finish"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "usage": self.usage.to_dict(),
            "finish_reason": self.finish_reason,
        }


@dataclass(frozen=True, slots=True)
class StreamError:
    message: str

    type: ClassVar[str] = "error"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "message": self.message}


StreamEvent = Union[StreamStart, StreamDelta, StreamFinish, StreamError]

TERMINAL_EVENT_TYPES: tuple[type, ...] = (StreamFinish, StreamError)


def messages_from_dicts(raw_messages: Sequence[dict[str, Any]]) -> list[NormalizedMessage]:
    return [NormalizedMessage.from_dict(raw) for raw in raw_messages]

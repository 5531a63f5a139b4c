"""Core models for hfrelay."""

from hfrelay.core.models import (
    CallWarning,
    ContentPart,
    GenerationOptions,
    GenerationResult,
    ImagePart,
    NormalizedMessage,
    StreamDelta,
    StreamError,
    StreamEvent,
    StreamFinish,
    StreamStart,
    TERMINAL_EVENT_TYPES,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    Usage,
    content_part_from_dict,
    messages_from_dicts,
)
from hfrelay.core.types import FINISH_REASONS, ROLES, FinishReason, PartType, WarningType

__all__ = [
    "CallWarning",
    "ContentPart",
    "FINISH_REASONS",
    "FinishReason",
    "GenerationOptions",
    "GenerationResult",
    "ImagePart",
    "NormalizedMessage",
    "PartType",
    "ROLES",
    "StreamDelta",
    "StreamError",
    "StreamEvent",
    "StreamFinish",
    "StreamStart",
    "TERMINAL_EVENT_TYPES",
    "TextPart",
    "ToolCallPart",
    "ToolResultPart",
    "Usage",
    "WarningType",
    "content_part_from_dict",
    "messages_from_dicts",
]

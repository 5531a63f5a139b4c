"""Type definitions for hfrelay core models."""

from typing import Literal

ROLES: tuple[str, ...] = (
    "system",
    "user",
    "assistant",
    "tool",
)

PartType = Literal["text", "image", "tool-call", "tool-result"]

FinishReason = Literal["stop", "length", "other"]

FINISH_REASONS: tuple[str, ...] = ("stop", "length", "other")

WarningType = Literal["unsupported-content", "unsupported-role"]

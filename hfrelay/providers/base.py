"""Chat-completion capability contract."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Protocol, runtime_checkable

from hfrelay.core.models import (
    CallWarning,
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
from hfrelay.core.types import FinishReason
from hfrelay.exceptions import TransportError


@runtime_checkable
class LanguageModel(Protocol):
    """Protocol for chat-completion backends consumed by the calling framework."""

    provider: str
    model_id: str

    async def generate(
        self,
        prompt: Sequence[NormalizedMessage],
        options: GenerationOptions | None = None,
    ) -> GenerationResult:
        """Run one unary completion and return the normalized result."""

    def stream(
        self,
        prompt: Sequence[NormalizedMessage],
        options: GenerationOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run one streaming completion as an async sequence of events."""


async def collect_stream(events: AsyncIterator[StreamEvent]) -> GenerationResult:
    """Fold a stream into a result; a terminal error event is raised as TransportError."""
    warnings: list[CallWarning] = []
    parts: list[str] = []
    usage = Usage(input_tokens=0, output_tokens=0, total_tokens=0)
    finish_reason: FinishReason = "other"

    async for event in events:
        if isinstance(event, StreamStart):
            warnings.extend(event.warnings)
        elif isinstance(event, StreamDelta):
            parts.append(event.text)
        elif isinstance(event, StreamFinish):
            usage = event.usage
            finish_reason = event.finish_reason
        elif isinstance(event, StreamError):
            raise TransportError(event.message)

    return GenerationResult(
        text="".join(parts),
        usage=usage,
        finish_reason=finish_reason,
        warnings=warnings,
    )

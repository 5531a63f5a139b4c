"""Chat-completion provider adapters."""

from hfrelay.providers.base import LanguageModel, collect_stream
from hfrelay.providers.conversion import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    build_chat_payload,
    build_usage,
    convert_messages,
    error_message,
    estimate_tokens,
    iter_sse_chunks,
    map_finish_reason,
)
from hfrelay.providers.huggingface import CHAT_COMPLETIONS_PATH, HuggingFaceChatAdapter

__all__ = [
    "CHAT_COMPLETIONS_PATH",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_TEMPERATURE",
    "HuggingFaceChatAdapter",
    "LanguageModel",
    "build_chat_payload",
    "build_usage",
    "collect_stream",
    "convert_messages",
    "error_message",
    "estimate_tokens",
    "iter_sse_chunks",
    "map_finish_reason",
]

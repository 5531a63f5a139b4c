"""Stable public API surface for hfrelay.

This module is the supported import path for library users.
"""

from __future__ import annotations

from hfrelay.config import (
    ConfigValidation,
    InterceptorConfig,
    load_config_from_env,
    require_valid_config,
    validate_config,
)
from hfrelay.core import (
    CallWarning,
    GenerationOptions,
    GenerationResult,
    ImagePart,
    NormalizedMessage,
    StreamDelta,
    StreamError,
    StreamEvent,
    StreamFinish,
    StreamStart,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    Usage,
)
from hfrelay.exceptions import (
    ConfigurationError,
    EmptyResponseError,
    GenerationError,
    HfRelayError,
    RedirectFallbackError,
    TransportError,
)
from hfrelay.providers import HuggingFaceChatAdapter, LanguageModel, collect_stream
from hfrelay.transport import (
    AsyncRedirectTransport,
    RedirectRouter,
    RedirectTransport,
    TransportInterceptor,
    get_transport_interceptor,
    intercept_chat_completions,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "AsyncRedirectTransport",
    "CallWarning",
    "ConfigValidation",
    "ConfigurationError",
    "EmptyResponseError",
    "GenerationError",
    "GenerationOptions",
    "GenerationResult",
    "HfRelayError",
    "HuggingFaceChatAdapter",
    "ImagePart",
    "InterceptorConfig",
    "LanguageModel",
    "NormalizedMessage",
    "RedirectFallbackError",
    "RedirectRouter",
    "RedirectTransport",
    "StreamDelta",
    "StreamError",
    "StreamEvent",
    "StreamFinish",
    "StreamStart",
    "TextPart",
    "ToolCallPart",
    "ToolResultPart",
    "TransportError",
    "TransportInterceptor",
    "Usage",
    "collect_stream",
    "get_transport_interceptor",
    "intercept_chat_completions",
    "load_config_from_env",
    "require_valid_config",
    "validate_config",
]

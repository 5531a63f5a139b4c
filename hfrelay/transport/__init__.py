"""Transport-level redirection of chat-completion traffic."""

from hfrelay.transport.interceptor import (
    SUPPORTED_TARGETS,
    InterceptTarget,
    TransportInterceptor,
    get_transport_interceptor,
    intercept_chat_completions,
    reset_transport_interceptor,
)
from hfrelay.transport.redaction import redact_headers
from hfrelay.transport.redirect import (
    REDIRECT_PATH_PATTERNS,
    AsyncRedirectTransport,
    RedirectRouter,
    RedirectTransport,
    build_redirect_url,
    is_chat_completion_url,
    merge_redirect_headers,
)

__all__ = [
    "AsyncRedirectTransport",
    "InterceptTarget",
    "REDIRECT_PATH_PATTERNS",
    "RedirectRouter",
    "RedirectTransport",
    "SUPPORTED_TARGETS",
    "TransportInterceptor",
    "build_redirect_url",
    "get_transport_interceptor",
    "intercept_chat_completions",
    "is_chat_completion_url",
    "merge_redirect_headers",
    "redact_headers",
    "reset_transport_interceptor",
]

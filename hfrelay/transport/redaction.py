"""Header masking for log output."""

from __future__ import annotations

from typing import Any, Mapping

SENSITIVE_HEADER_NAMES = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "x-api-key",
        "api-key",
        "apikey",
        "cookie",
        "set-cookie",
    }
)

REDACTION_MASK = "[REDACTED]"


def redact_headers(headers: Mapping[str, Any]) -> dict[str, Any]:
    return {
        str(name): REDACTION_MASK if str(name).lower() in SENSITIVE_HEADER_NAMES else value
        for name, value in headers.items()
    }

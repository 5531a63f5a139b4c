"""Redirect chat-completion requests to the configured inference endpoint."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import logging
from typing import Any, Mapping, TypeVar
from urllib.parse import urlsplit

import httpx
from requests import PreparedRequest
from requests.structures import CaseInsensitiveDict

from hfrelay.config import InterceptorConfig
from hfrelay.exceptions import RedirectFallbackError
from hfrelay.transport.redaction import redact_headers

logger = logging.getLogger(__name__)

REDIRECT_PATH_PATTERNS: tuple[str, ...] = ("/v1/chat/completions", "/v1/completions")
REDIRECT_TARGET_PATH = "/v1/chat/completions"

_DROPPED_HEADERS = frozenset({"host"})

RequestT = TypeVar("RequestT")
ResponseT = TypeVar("ResponseT")


def is_chat_completion_url(url: str) -> bool:
    path = urlsplit(url).path
    return any(pattern in path for pattern in REDIRECT_PATH_PATTERNS)


def build_redirect_url(endpoint_url: str) -> str:
    return f"{endpoint_url.strip().rstrip('/')}{REDIRECT_TARGET_PATH}"


def merge_redirect_headers(headers: Mapping[str, Any], api_key: str) -> dict[str, str]:
    """Layer redirect headers over the original ones; redirect headers win."""
    overrides = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
    }
    override_names = {name.lower() for name in overrides}
    merged = {
        str(name): str(value)
        for name, value in headers.items()
        if str(name).lower() not in override_names and str(name).lower() not in _DROPPED_HEADERS
    }
    merged.update(overrides)
    return merged


class RedirectRouter:
    """Redirect decisions against a live ``InterceptorConfig``."""

    def __init__(self, config: InterceptorConfig | None = None) -> None:
        self._config = config or InterceptorConfig()

    @property
    def config(self) -> InterceptorConfig:
        return self._config

    def update(self, config: InterceptorConfig) -> None:
        self._config = config

    def target_for(self, url: str) -> str | None:
        """Return the redirect URL for ``url``, or ``None`` to pass it through."""
        config = self._config
        if not config.active or not is_chat_completion_url(url):
            return None
        return build_redirect_url(str(config.endpoint_url))

    def headers_for(self, headers: Mapping[str, Any]) -> dict[str, str]:
        return merge_redirect_headers(headers, str(self._config.api_key).strip())

    def build_httpx_request(
        self,
        request: httpx.Request,
        target: str,
        content: bytes,
    ) -> httpx.Request:
        headers = self.headers_for(request.headers)
        _log_redirect(request.method, str(request.url), target, headers)
        return httpx.Request(
            request.method,
            target,
            headers=headers,
            content=content,
            extensions=dict(request.extensions),
        )

    def build_prepared_request(self, request: PreparedRequest, target: str) -> PreparedRequest:
        headers = self.headers_for(request.headers)
        _log_redirect(str(request.method), str(request.url), target, headers)
        redirected = request.copy()
        redirected.prepare_url(target, None)
        redirected.headers = CaseInsensitiveDict(headers)
        return redirected


def send_with_fallback(
    send: Callable[[RequestT], ResponseT],
    original: RequestT,
    redirected: RequestT,
    *,
    target: str,
) -> ResponseT:
    try:
        return _dispatch_redirect(send, redirected, target)
    except RedirectFallbackError as fallback:
        logger.warning("%s; retrying original destination", fallback)
        return send(original)


async def send_with_fallback_async(
    send: Callable[[RequestT], Awaitable[ResponseT]],
    original: RequestT,
    redirected: RequestT,
    *,
    target: str,
) -> ResponseT:
    try:
        return await _dispatch_redirect_async(send, redirected, target)
    except RedirectFallbackError as fallback:
        logger.warning("%s; retrying original destination", fallback)
        return await send(original)


class RedirectTransport(httpx.BaseTransport):
    """Sync transport that redirects chat-completion requests through ``inner``."""

    def __init__(
        self,
        router: RedirectRouter,
        inner: httpx.BaseTransport | None = None,
    ) -> None:
        self._router = router
        self._inner = inner or httpx.HTTPTransport()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        target = self._router.target_for(str(request.url))
        if target is None:
            return self._inner.handle_request(request)
        redirected = self._router.build_httpx_request(request, target, request.read())
        return send_with_fallback(self._inner.handle_request, request, redirected, target=target)

    def close(self) -> None:
        self._inner.close()


class AsyncRedirectTransport(httpx.AsyncBaseTransport):
    """Async transport that redirects chat-completion requests through ``inner``."""

    def __init__(
        self,
        router: RedirectRouter,
        inner: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._router = router
        self._inner = inner or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        target = self._router.target_for(str(request.url))
        if target is None:
            return await self._inner.handle_async_request(request)
        redirected = self._router.build_httpx_request(request, target, await request.aread())
        return await send_with_fallback_async(
            self._inner.handle_async_request,
            request,
            redirected,
            target=target,
        )

    async def aclose(self) -> None:
        await self._inner.aclose()


def _dispatch_redirect(
    send: Callable[[RequestT], ResponseT],
    redirected: RequestT,
    target: str,
) -> ResponseT:
    try:
        return send(redirected)
    except Exception as error:
        raise RedirectFallbackError(f"redirect to {target} failed: {error}") from error


async def _dispatch_redirect_async(
    send: Callable[[RequestT], Awaitable[ResponseT]],
    redirected: RequestT,
    target: str,
) -> ResponseT:
    try:
        return await send(redirected)
    except Exception as error:
        raise RedirectFallbackError(f"redirect to {target} failed: {error}") from error


def _log_redirect(method: str, url: str, target: str, headers: Mapping[str, Any]) -> None:
    logger.info("redirecting %s %s -> %s", method.upper(), url, target)
    logger.debug("redirect headers: %s", redact_headers(headers))

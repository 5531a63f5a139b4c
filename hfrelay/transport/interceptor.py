"""Process-wide, reversible redirection of library HTTP transports."""

from __future__ import annotations

import atexit
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
import logging
import threading
from typing import Any, Literal

import httpx
import requests
from requests.adapters import HTTPAdapter

from hfrelay.config import InterceptorConfig
from hfrelay.transport.redirect import (
    RedirectRouter,
    send_with_fallback,
    send_with_fallback_async,
)

logger = logging.getLogger(__name__)

InterceptTarget = Literal["httpx", "requests"]
SUPPORTED_TARGETS: tuple[str, ...] = ("httpx", "requests")


@dataclass(frozen=True, slots=True)
class _TransportSlot:
    name: str
    owner: type
    attribute: str
    wrap: Callable[[Callable[..., Any], RedirectRouter], Callable[..., Any]]


def _wrap_httpx_sync(original: Callable[..., Any], router: RedirectRouter) -> Callable[..., Any]:
    def handle_request(self: Any, request: httpx.Request) -> httpx.Response:
        target = router.target_for(str(request.url))
        if target is None:
            return original(self, request)
        redirected = router.build_httpx_request(request, target, request.read())
        return send_with_fallback(
            lambda outgoing: original(self, outgoing),
            request,
            redirected,
            target=target,
        )

    return handle_request


def _wrap_httpx_async(original: Callable[..., Any], router: RedirectRouter) -> Callable[..., Any]:
    async def handle_async_request(self: Any, request: httpx.Request) -> httpx.Response:
        target = router.target_for(str(request.url))
        if target is None:
            return await original(self, request)
        redirected = router.build_httpx_request(request, target, await request.aread())
        return await send_with_fallback_async(
            lambda outgoing: original(self, outgoing),
            request,
            redirected,
            target=target,
        )

    return handle_async_request


def _wrap_requests(original: Callable[..., Any], router: RedirectRouter) -> Callable[..., Any]:
    def send(self: Any, request: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        target = router.target_for(str(request.url))
        if target is None:
            return original(self, request, **kwargs)
        redirected = router.build_prepared_request(request, target)
        return send_with_fallback(
            lambda outgoing: original(self, outgoing, **kwargs),
            request,
            redirected,
            target=target,
        )

    return send


def _slots_for(targets: tuple[str, ...]) -> tuple[_TransportSlot, ...]:
    slots: list[_TransportSlot] = []
    if "httpx" in targets:
        slots.append(
            _TransportSlot("httpx.sync", httpx.HTTPTransport, "handle_request", _wrap_httpx_sync)
        )
        slots.append(
            _TransportSlot(
                "httpx.async",
                httpx.AsyncHTTPTransport,
                "handle_async_request",
                _wrap_httpx_async,
            )
        )
    if "requests" in targets:
        slots.append(_TransportSlot("requests", HTTPAdapter, "send", _wrap_requests))
    return tuple(slots)


def _normalize_targets(
    targets: tuple[InterceptTarget, ...] | list[InterceptTarget] | None,
) -> tuple[str, ...]:
    if targets is None:
        return SUPPORTED_TARGETS
    normalized: list[str] = []
    for name in targets:
        normalized_name = str(name).strip().lower()
        if normalized_name not in SUPPORTED_TARGETS:
            raise ValueError(
                f"Unsupported intercept target: {normalized_name}. "
                "Supported values: httpx, requests."
            )
        normalized.append(normalized_name)
    if not normalized:
        return SUPPORTED_TARGETS
    return tuple(dict.fromkeys(normalized))


_SLOT_LOCK = threading.Lock()
_SLOT_ORIGINALS: dict[str, Callable[..., Any]] = {}
_SLOT_OWNERS: dict[str, "TransportInterceptor"] = {}
_WRAPPER_FLAG = "_hfrelay_wrapper"


class TransportInterceptor:
    """Redirect chat-completion traffic from any httpx or requests client.

    Installation state lives at module level and is shared by every instance,
    so at most one wrapper sits on a library transport function at a time.
    Originals are captured from a free slot, which never holds an hfrelay
    wrapper, and every restore puts exactly those objects back. Installing
    over a slot held by another instance takes it over; a later restore by
    the displaced instance is a no-op.
    """

    def __init__(
        self,
        config: InterceptorConfig | None = None,
        *,
        targets: tuple[InterceptTarget, ...] | list[InterceptTarget] | None = None,
    ) -> None:
        self._router = RedirectRouter(config)
        self._targets = _normalize_targets(targets)
        self._slots = _slots_for(self._targets)

    @property
    def config(self) -> InterceptorConfig:
        return self._router.config

    @property
    def targets(self) -> tuple[str, ...]:
        return self._targets

    @property
    def installed(self) -> bool:
        with _SLOT_LOCK:
            return self._owns_all_slots()

    @property
    def is_configured(self) -> bool:
        return self._router.config.active

    def original(self, slot_name: str) -> Callable[..., Any] | None:
        return _SLOT_ORIGINALS.get(slot_name)

    def update_config(self, config: InterceptorConfig) -> None:
        """Store ``config`` and install or restore to match ``config.active``."""
        self._router.update(config)
        if config.active:
            self.install()
        else:
            self.restore()

    def install(self) -> bool:
        with _SLOT_LOCK:
            if self._owns_all_slots():
                return False
            for slot in self._slots:
                owner = _SLOT_OWNERS.get(slot.name)
                if owner is None:
                    current = getattr(slot.owner, slot.attribute)
                    if not getattr(current, _WRAPPER_FLAG, False):
                        _SLOT_ORIGINALS[slot.name] = current
                elif owner is not self:
                    logger.warning("taking over %s interception from another interceptor", slot.name)
                wrapper = slot.wrap(_SLOT_ORIGINALS[slot.name], self._router)
                setattr(wrapper, _WRAPPER_FLAG, True)
                setattr(slot.owner, slot.attribute, wrapper)
                _SLOT_OWNERS[slot.name] = self
        logger.info(
            "chat-completion interception installed for %s -> %s",
            ", ".join(self._targets),
            self._router.config.endpoint_url,
        )
        return True

    def restore(self) -> bool:
        with _SLOT_LOCK:
            owned = [slot for slot in self._slots if _SLOT_OWNERS.get(slot.name) is self]
            if not owned:
                return False
            for slot in owned:
                setattr(slot.owner, slot.attribute, _SLOT_ORIGINALS[slot.name])
                del _SLOT_OWNERS[slot.name]
        logger.info("chat-completion interception removed; original transports restored")
        return True

    def _owns_all_slots(self) -> bool:
        return bool(self._slots) and all(
            _SLOT_OWNERS.get(slot.name) is self for slot in self._slots
        )

    def __enter__(self) -> "TransportInterceptor":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> bool:
        self.restore()
        return False


_INTERCEPTOR: TransportInterceptor | None = None
_INTERCEPTOR_LOCK = threading.Lock()


def get_transport_interceptor() -> TransportInterceptor:
    """Return the process-wide interceptor, creating it on first use."""
    global _INTERCEPTOR
    with _INTERCEPTOR_LOCK:
        if _INTERCEPTOR is None:
            _INTERCEPTOR = TransportInterceptor()
            atexit.register(_INTERCEPTOR.restore)
        return _INTERCEPTOR


def reset_transport_interceptor() -> None:
    global _INTERCEPTOR
    with _INTERCEPTOR_LOCK:
        if _INTERCEPTOR is None:
            return
        _INTERCEPTOR.restore()
        atexit.unregister(_INTERCEPTOR.restore)
        _INTERCEPTOR = None


@contextmanager
def intercept_chat_completions(
    config: InterceptorConfig,
    *,
    interceptor: TransportInterceptor | None = None,
) -> Iterator[TransportInterceptor]:
    """Redirect chat-completion traffic for the duration of the block.

    On exit the interceptor goes back to the config and installation state it
    had on entry, so a scope nested inside an active owner leaves the owner's
    interception in place.
    """
    active_interceptor = interceptor or get_transport_interceptor()
    previous_config = active_interceptor.config
    was_installed = active_interceptor.installed
    active_interceptor.update_config(config)
    try:
        yield active_interceptor
    finally:
        if was_installed:
            active_interceptor.update_config(previous_config)
        else:
            active_interceptor.restore()
            active_interceptor._router.update(previous_config)

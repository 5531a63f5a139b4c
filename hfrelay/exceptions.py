"""hfrelay exceptions."""


class HfRelayError(Exception):
    """Base class for hfrelay errors."""


class ConfigurationError(HfRelayError):
    """Required endpoint configuration is missing or invalid."""


class GenerationError(HfRelayError):
    """A chat-completion call failed."""


class EmptyResponseError(GenerationError):
    """The endpoint answered without any choice."""


class TransportError(GenerationError):
    """Network, HTTP status, or decoding failure normalized at the adapter boundary."""


class RedirectFallbackError(HfRelayError):
    """Redirect dispatch failed and the original destination is retried."""

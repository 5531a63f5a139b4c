"""Endpoint configuration, validation, and environment loading."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Mapping

from hfrelay.exceptions import ConfigurationError

API_KEY_ENV_VAR = "HF_API_KEY"
ENDPOINT_URL_ENV_VAR = "HF_ENDPOINT_URL"
MODEL_ID_ENV_VAR = "HF_MODEL_ID"

DEFAULT_MODEL_ID = "tgi"
DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class InterceptorConfig:
    """Target endpoint and credential for adapter calls and redirects.

    The owner replaces the whole value on every change; consumers only read it.
    """

    api_key: str | None = None
    endpoint_url: str | None = None
    model_id: str | None = None
    enabled: bool = True
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def active(self) -> bool:
        return self.enabled and _present(self.api_key) and _present(self.endpoint_url)

    @property
    def resolved_model_id(self) -> str:
        return self.model_id.strip() if _present(self.model_id) else DEFAULT_MODEL_ID


@dataclass(frozen=True, slots=True)
class ConfigValidation:
    is_valid: bool
    errors: tuple[str, ...] = field(default_factory=tuple)


def validate_config(config: InterceptorConfig) -> ConfigValidation:
    errors: list[str] = []
    if not _present(config.api_key):
        errors.append("HuggingFace API key is required")
    if not _present(config.endpoint_url):
        errors.append("HuggingFace endpoint URL is required")
    return ConfigValidation(is_valid=not errors, errors=tuple(errors))


def require_valid_config(config: InterceptorConfig) -> InterceptorConfig:
    validation = validate_config(config)
    if not validation.is_valid:
        raise ConfigurationError("; ".join(validation.errors))
    return config


def load_config_from_env(
    environ: Mapping[str, str] | None = None,
    *,
    api_key: str | None = None,
    endpoint_url: str | None = None,
    model_id: str | None = None,
    api_key_env: str | None = None,
    enabled: bool = True,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> InterceptorConfig:
    """Resolve configuration from explicit values, then environment variables."""
    env = os.environ if environ is None else environ
    key_env_name = api_key_env.strip() if _present(api_key_env) else API_KEY_ENV_VAR

    return InterceptorConfig(
        api_key=_first_present(api_key, env.get(key_env_name)),
        endpoint_url=_first_present(endpoint_url, env.get(ENDPOINT_URL_ENV_VAR)),
        model_id=_first_present(model_id, env.get(MODEL_ID_ENV_VAR)),
        enabled=enabled,
        timeout_seconds=timeout_seconds,
    )


def _present(value: str | None) -> bool:
    return bool(value and value.strip())


def _first_present(*values: str | None) -> str | None:
    for value in values:
        if _present(value):
            return value.strip()
    return None

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version as package_version
import json
import logging
from pathlib import Path
from typing import Any, NoReturn

import typer

from hfrelay.config import (
    API_KEY_ENV_VAR,
    DEFAULT_TIMEOUT_SECONDS,
    InterceptorConfig,
    load_config_from_env,
    validate_config,
)
from hfrelay.core.models import (
    GenerationOptions,
    GenerationResult,
    NormalizedMessage,
    StreamDelta,
    StreamEvent,
    TextPart,
    messages_from_dicts,
)
from hfrelay.exceptions import ConfigurationError, GenerationError
from hfrelay.logging_utils import configure_logging
from hfrelay.providers import HuggingFaceChatAdapter, collect_stream
from hfrelay.transport import RedirectRouter

app = typer.Typer(help="hfrelay CLI")


@dataclass(slots=True)
class _OutputOptions:
    quiet: bool = False
    stable_json: bool = True


_OUTPUT_OPTIONS = _OutputOptions()


def _resolve_cli_version() -> str:
    try:
        return package_version("hfrelay")
    except PackageNotFoundError:
        from hfrelay import __version__ as local_version

        return local_version


def _version_callback(value: bool) -> None:
    if not value:
        return
    typer.echo(_resolve_cli_version(), color=False)
    raise typer.Exit()


def _echo(message: str, *, err: bool = False, force: bool = False, nl: bool = True) -> None:
    if _OUTPUT_OPTIONS.quiet and not err and not force:
        return
    typer.echo(message, err=err, nl=nl)


def _echo_json(payload: dict[str, Any], *, err: bool = False) -> None:
    if _OUTPUT_OPTIONS.stable_json:
        rendered = json.dumps(payload, ensure_ascii=True, sort_keys=True, separators=(",", ":"))
    else:
        rendered = json.dumps(payload, ensure_ascii=True, sort_keys=True, indent=2)
    typer.echo(rendered, err=err)


def _fail(message: str, *, exit_code: int, json_output: bool) -> NoReturn:
    if json_output:
        _echo_json({"status": "error", "exit_code": exit_code, "message": message})
    else:
        _echo(message, err=True)
    raise typer.Exit(code=exit_code)


def _load_messages_file(path: Path) -> list[NormalizedMessage]:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise ValueError(f"messages file not found: {path}") from error
    except json.JSONDecodeError as error:
        raise ValueError(f"messages file is not valid JSON: {path}: {error}") from error
    if not isinstance(raw, list) or not all(isinstance(item, dict) for item in raw):
        raise ValueError(f"messages file must contain a JSON list of messages: {path}")
    try:
        return messages_from_dicts(raw)
    except KeyError as error:
        raise ValueError(f"message is missing field {error} in {path}") from error
    except ValueError as error:
        raise ValueError(f"invalid message in {path}: {error}") from error


def _build_prompt(
    *,
    prompt: str | None,
    system: str | None,
    messages_file: Path | None,
) -> list[NormalizedMessage]:
    messages: list[NormalizedMessage] = []
    if messages_file is not None:
        messages.extend(_load_messages_file(messages_file))
    elif system:
        messages.append(NormalizedMessage(role="system", content=system))
    if prompt:
        messages.append(NormalizedMessage(role="user", content=(TextPart(text=prompt),)))
    if not messages:
        raise ValueError("nothing to send: pass --prompt or --messages-file")
    return messages


async def _echo_deltas(events: AsyncIterator[StreamEvent]) -> AsyncIterator[StreamEvent]:
    async for event in events:
        if isinstance(event, StreamDelta):
            _echo(event.text, nl=False)
        yield event


async def _run_generation(
    adapter: HuggingFaceChatAdapter,
    messages: list[NormalizedMessage],
    options: GenerationOptions,
    *,
    stream: bool,
    echo_deltas: bool,
) -> GenerationResult:
    if not stream:
        return await adapter.generate(messages, options)
    events = adapter.stream(messages, options)
    if echo_deltas:
        events = _echo_deltas(events)
    return await collect_stream(events)


def _config_from_options(
    *,
    api_key: str | None,
    api_key_env: str | None,
    endpoint_url: str | None,
    model: str | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> InterceptorConfig:
    return load_config_from_env(
        api_key=api_key,
        endpoint_url=endpoint_url,
        model_id=model,
        api_key_env=api_key_env,
        timeout_seconds=timeout_seconds,
    )


@app.callback()
def app_options(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show hfrelay version and exit.",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        help="Suppress non-error text output.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Log redirect and endpoint activity to stderr.",
    ),
    pretty_json: bool = typer.Option(
        False,
        "--pretty-json",
        help="Indent JSON output instead of the stable compact form.",
    ),
) -> None:
    """Talk to OpenAI-style inference endpoints."""
    _OUTPUT_OPTIONS.quiet = quiet
    _OUTPUT_OPTIONS.stable_json = not pretty_json
    if verbose:
        configure_logging(logging.DEBUG)


@app.command("validate")
def validate(
    api_key: str | None = typer.Option(
        None,
        "--api-key",
        help="Endpoint API key override.",
    ),
    api_key_env: str | None = typer.Option(
        None,
        "--api-key-env",
        help=f"Environment variable holding the API key (default {API_KEY_ENV_VAR}).",
    ),
    endpoint_url: str | None = typer.Option(
        None,
        "--endpoint-url",
        help="Endpoint base URL override.",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit machine-readable validation output.",
    ),
) -> None:
    """Check that an API key and endpoint URL are configured."""
    config = _config_from_options(
        api_key=api_key,
        api_key_env=api_key_env,
        endpoint_url=endpoint_url,
    )
    validation = validate_config(config)
    exit_code = 0 if validation.is_valid else 3
    message = "configuration valid" if validation.is_valid else "configuration invalid"

    if json_output:
        _echo_json(
            {
                "status": "ok" if validation.is_valid else "error",
                "exit_code": exit_code,
                "message": message,
                "errors": list(validation.errors),
                "endpoint_url": config.endpoint_url,
                "model": config.resolved_model_id,
            }
        )
    elif validation.is_valid:
        _echo(f"{message}: {config.endpoint_url} (model {config.resolved_model_id})")
    else:
        _echo(f"{message}: " + "; ".join(validation.errors), err=True)

    if exit_code:
        raise typer.Exit(code=exit_code)


@app.command("generate")
def generate(
    prompt: str | None = typer.Option(
        None,
        "--prompt",
        help="User prompt text.",
    ),
    system: str | None = typer.Option(
        None,
        "--system",
        help="Optional system prompt (ignored with --messages-file).",
    ),
    messages_file: Path | None = typer.Option(
        None,
        "--messages-file",
        help="JSON file with a list of normalized messages.",
    ),
    model: str | None = typer.Option(
        None,
        "--model",
        help="Model id sent to the endpoint (default HF_MODEL_ID or tgi).",
    ),
    api_key: str | None = typer.Option(
        None,
        "--api-key",
        help="Endpoint API key override.",
    ),
    api_key_env: str | None = typer.Option(
        None,
        "--api-key-env",
        help=f"Environment variable holding the API key (default {API_KEY_ENV_VAR}).",
    ),
    endpoint_url: str | None = typer.Option(
        None,
        "--endpoint-url",
        help="Endpoint base URL override.",
    ),
    max_tokens: int | None = typer.Option(
        None,
        "--max-tokens",
        help="Maximum output tokens (default 500).",
    ),
    temperature: float | None = typer.Option(
        None,
        "--temperature",
        help="Sampling temperature (default 0.7).",
    ),
    top_p: float | None = typer.Option(
        None,
        "--top-p",
        help="Nucleus sampling probability.",
    ),
    stop: list[str] | None = typer.Option(
        None,
        "--stop",
        help="Repeatable stop sequence.",
    ),
    seed: int | None = typer.Option(
        None,
        "--seed",
        help="Sampling seed.",
    ),
    stream: bool = typer.Option(
        False,
        "--stream/--no-stream",
        help="Stream the completion and print text as it arrives.",
    ),
    timeout_seconds: float = typer.Option(
        DEFAULT_TIMEOUT_SECONDS,
        "--timeout-seconds",
        help="HTTP timeout for endpoint calls.",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit machine-readable generation output.",
    ),
) -> None:
    """Run one chat completion against the configured endpoint."""
    config = _config_from_options(
        api_key=api_key,
        api_key_env=api_key_env,
        endpoint_url=endpoint_url,
        model=model,
        timeout_seconds=timeout_seconds,
    )
    try:
        adapter = HuggingFaceChatAdapter.from_config(config)
    except ConfigurationError as error:
        _fail(f"generate failed: {error}", exit_code=3, json_output=json_output)

    try:
        messages = _build_prompt(prompt=prompt, system=system, messages_file=messages_file)
    except ValueError as error:
        _fail(f"generate failed: {error}", exit_code=2, json_output=json_output)

    options = GenerationOptions(
        max_output_tokens=max_tokens,
        temperature=temperature,
        top_p=top_p,
        stop_sequences=tuple(stop) if stop else None,
        seed=seed,
    )

    try:
        result = asyncio.run(
            _run_generation(
                adapter,
                messages,
                options,
                stream=stream,
                echo_deltas=stream and not json_output,
            )
        )
    except GenerationError as error:
        _fail(f"generate failed: {error}", exit_code=1, json_output=json_output)

    if json_output:
        _echo_json(
            {
                "status": "ok",
                "exit_code": 0,
                "message": "generation complete",
                "provider": adapter.provider,
                "model": adapter.model_id,
                "stream": stream,
                "result": result.to_dict(),
            }
        )
        return

    if stream:
        _echo("")
    else:
        _echo(result.text)
    for warning in result.warnings:
        _echo(f"warning: {warning.message}", err=True)
    _echo(
        f"finish={result.finish_reason} "
        f"tokens={result.usage.input_tokens}+{result.usage.output_tokens}"
        f"={result.usage.total_tokens}",
        err=True,
    )


@app.command("route")
def route(
    url: str = typer.Argument(..., help="Outbound request URL to test."),
    api_key: str | None = typer.Option(
        None,
        "--api-key",
        help="Endpoint API key override.",
    ),
    api_key_env: str | None = typer.Option(
        None,
        "--api-key-env",
        help=f"Environment variable holding the API key (default {API_KEY_ENV_VAR}).",
    ),
    endpoint_url: str | None = typer.Option(
        None,
        "--endpoint-url",
        help="Endpoint base URL override.",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit machine-readable routing output.",
    ),
) -> None:
    """Show where the interceptor would send a request for URL."""
    config = _config_from_options(
        api_key=api_key,
        api_key_env=api_key_env,
        endpoint_url=endpoint_url,
    )
    target = RedirectRouter(config).target_for(url)
    redirected = target is not None

    if json_output:
        _echo_json(
            {
                "status": "ok",
                "exit_code": 0,
                "message": "redirect" if redirected else "pass-through",
                "url": url,
                "redirected": redirected,
                "target": target or url,
                "interceptor_active": config.active,
            }
        )
        return

    if redirected:
        _echo(f"redirect: {url} -> {target}")
    elif not config.active:
        _echo(f"pass-through: {url} (interceptor inactive)")
    else:
        _echo(f"pass-through: {url}")


def main() -> None:
    app()

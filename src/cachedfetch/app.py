"""Typer application and CLI entry point for cachedfetch.

The CLI is a thin shell around :class:`~cachedfetch.client.CachedClient`:
``cachedfetch fetch`` resolves configuration, sends the request with retry
and backoff, prints the decoded payload to stdout, and exits with the
failure's exit code when every attempt failed.  ``--repeat`` issues the same
request several times through one client so the cache can be observed with
``--verbose``.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``.
"""

from __future__ import annotations

import asyncio
import json
import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer

from cachedfetch import __version__
from cachedfetch.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="cachedfetch",
    help="Fetch remote resources with retry, backoff and an expiring cache.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

config_app = typer.Typer(no_args_is_help=True)
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"cachedfetch {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show retry and cache diagnostics."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~cachedfetch.output.OutputManager` and
    stores the config path in ``ctx.obj`` for sub-commands.
    """
    from cachedfetch.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ------------------------------------------------------------------ #
# fetch
# ------------------------------------------------------------------ #


@app.command("fetch")
def fetch_command(
    ctx: typer.Context,
    target: str = typer.Argument(
        ..., help="Absolute URL, or a path appended to the configured base URL."
    ),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    header: list[str] = typer.Option(
        [], "--header", "-H", help="Extra header as 'Name: value'. Repeatable."
    ),
    data: Optional[str] = typer.Option(
        None, "--data", "-d", help="Request body. JSON is sent as JSON, anything else raw."
    ),
    attempts: Optional[int] = typer.Option(
        None, "--attempts", "-a", help="Maximum attempts (overrides config)."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Per-attempt timeout in seconds."
    ),
    ttl: Optional[float] = typer.Option(
        None, "--ttl", help="Cache lifetime of a successful result in seconds."
    ),
    deadline: Optional[float] = typer.Option(
        None, "--deadline", help="Cancel the whole request after this many seconds."
    ),
    repeat: int = typer.Option(
        1, "--repeat", "-r", min=1, help="Issue the request this many times."
    ),
) -> None:
    """Fetch TARGET and print the decoded payload."""
    from cachedfetch.config import resolve_config
    from cachedfetch.exceptions import ConfigError
    from cachedfetch.output import get_output

    output = get_output()
    try:
        config = resolve_config(
            path=ctx.obj.get("config_path") if ctx.obj else None,
            timeout=timeout,
            max_attempts=attempts,
            ttl_seconds=ttl,
        )
    except ConfigError as exc:
        output.error(str(exc))
        raise typer.Exit(code=exc.exit_code)

    headers = _parse_headers(header)
    body = _parse_body(data)

    results = asyncio.run(
        _run_fetch(config, target, method, headers, body, repeat, deadline)
    )

    for result in results:
        if not result.ok:
            assert result.error is not None
            output.error(str(result.error))
            raise typer.Exit(code=result.error.exit_code)
        output.debug(f"Completed after {result.attempts} attempt(s)")
        output.format_response(result.value)


async def _run_fetch(
    config: Any,
    target: str,
    method: str,
    headers: dict[str, str],
    body: Any,
    repeat: int,
    deadline: Optional[float],
) -> list[Any]:
    from cachedfetch.cancellation import CancellationToken
    from cachedfetch.client import CachedClient

    results = []
    async with CachedClient(config, transport=_make_transport(config)) as client:
        if target.startswith(("http://", "https://")):
            spec = client.build_spec("", method=method, headers=headers, body=body)
            spec = spec.model_copy(update={"base_url": target})
        else:
            spec = client.build_spec(target, method=method, headers=headers, body=body)

        for _ in range(repeat):
            cancel = CancellationToken(timeout=deadline) if deadline is not None else None
            result = await client.fetch(None, spec, cancel=cancel)
            results.append(result)
            if not result.ok:
                break
    return results


def _make_transport(config: Any) -> Any:
    """Build the transport used by the CLI."""
    from cachedfetch.client.transport import HttpxTransport

    return HttpxTransport(verify=config.request.verify_ssl)


def _parse_headers(values: list[str]) -> dict[str, str]:
    """Parse ``Name: value`` pairs from repeated ``--header`` options."""
    headers: dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Header must look like 'Name: value', got {raw!r}")
        headers[name.strip()] = value.strip()
    return headers


def _parse_body(body: Optional[str]) -> Any:
    """Parse *body* as JSON if possible, returning the raw string on failure."""
    if body is None:
        return None
    try:
        return json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body


# ------------------------------------------------------------------ #
# config
# ------------------------------------------------------------------ #


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Print the effective configuration (file + environment)."""
    from cachedfetch.config import resolve_config
    from cachedfetch.exceptions import ConfigError
    from cachedfetch.output import get_output

    output = get_output()
    try:
        config = resolve_config(path=ctx.obj.get("config_path") if ctx.obj else None)
    except ConfigError as exc:
        output.error(str(exc))
        raise typer.Exit(code=exc.exit_code)
    output.print_data(json.dumps(config.model_dump(mode="json"), indent=2))


@config_app.command("init")
def config_init(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Default base URL."),
    ttl: float = typer.Option(300.0, "--ttl", help="Default cache TTL in seconds."),
    attempts: int = typer.Option(3, "--attempts", help="Default maximum attempts."),
) -> None:
    """Write a config file with the given defaults."""
    from cachedfetch.config import save_config
    from cachedfetch.models import CacheConfig, ClientConfig, RequestConfig
    from cachedfetch.output import get_output

    config = ClientConfig(
        base_url=base_url,
        request=RequestConfig(max_attempts=attempts),
        cache=CacheConfig(ttl_seconds=ttl),
    )
    path = save_config(config, ctx.obj.get("config_path") if ctx.obj else None)
    get_output().info(f"Wrote {path}")


# ------------------------------------------------------------------ #
# Entry point
# ------------------------------------------------------------------ #


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from cachedfetch.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``cachedfetch`` console script.

    :class:`~cachedfetch.exceptions.FetchError` and
    :class:`~cachedfetch.exceptions.ConfigError` cause a clean exit with
    their ``exit_code``.  Any other exception produces a crash log and a
    generic failure exit.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        from cachedfetch.exceptions import ConfigError, FetchError
        from cachedfetch.output import get_output

        if isinstance(exc, (FetchError, ConfigError)):
            get_output().error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        get_output().error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)

"""Typer application and CLI entry point for vkclient.

Commands::

    vkclient call users.get -P user_ids=1        # GET a method, print payload
    vkclient call wall.post -P message=hi --post # POST a method
    vkclient session show                        # inspect the stored session
    vkclient session clear                       # forget the stored session

The access token comes from ``--token``, ``VKCLIENT_ACCESS_TOKEN`` or the
stored session (see :func:`~vkclient.config.resolve_options`).
:class:`~vkclient.exceptions.VKClientError` failures exit with their
``exit_code``; anything else writes a crash log under the data directory.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from vkclient import __version__
from vkclient.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="vkclient",
    help="Call VK API methods from the command line.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)
session_app = typer.Typer(no_args_is_help=True)
app.add_typer(session_app, name="session", help="Stored session management.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"vkclient {__version__}")
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
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback: install the output manager and configure logging."""
    from vkclient.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


def parse_params(pairs: list[str]) -> dict[str, str]:
    """Turn ``["key=value", ...]`` into a dict.

    Raises:
        typer.BadParameter: If a pair has no ``=`` or an empty key.
    """
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got '{pair}'", param_hint="--param")
        params[key] = value
    return params


async def _run_call(
    options: Any,
    method: str,
    params: dict[str, str],
    http_method: str,
    save_session: bool,
) -> Any:
    from vkclient.client import VK

    async with VK(options) as vk:
        vk.extend_discovered()
        await vk.setup({"auth": {"save_session": save_session}})
        return await vk.api.call(method, params, http_method)


@app.command("call")
def call_command(
    method: str = typer.Argument(help="API method name, e.g. users.get."),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-P", help="Method parameter as key=value (repeatable)."
    ),
    post: bool = typer.Option(False, "--post", help="Send the call as POST."),
    token: Optional[str] = typer.Option(None, "--token", help="Access token to use."),
    api_version: Optional[str] = typer.Option(None, "--api-version", help="API version (v)."),
    no_save_session: bool = typer.Option(
        False, "--no-save-session", help="Do not persist the resolved session."
    ),
) -> None:
    """Call an API method and print its payload."""
    from vkclient.config import resolve_options
    from vkclient.exceptions import CaptchaError, RedirectError, TwoFactorError, VKClientError
    from vkclient.output import error, format_response, suggest

    params = parse_params(param or [])

    try:
        options = resolve_options(cli_token=token, cli_api_version=api_version)
        result = asyncio.run(
            _run_call(options, method, params, "post" if post else "get", not no_save_session)
        )
    except CaptchaError as exc:
        error(f"Captcha required: {exc.message}")
        suggest(
            f"Open {exc.image_url} and retry with "
            f"-P captcha_sid={exc.sid} -P captcha_key=<answer>"
        )
        raise typer.Exit(code=exc.exit_code) from None
    except TwoFactorError as exc:
        error(f"Validation required ({exc.validation_type}): {exc.message}")
        if exc.redirect_uri:
            suggest(f"Continue at {exc.redirect_uri}")
        raise typer.Exit(code=exc.exit_code) from None
    except RedirectError as exc:
        error(exc.message)
        suggest(f"Continue at {exc.redirect_uri}")
        raise typer.Exit(code=exc.exit_code) from None
    except VKClientError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    format_response(result)


def _session_store() -> Any:
    from vkclient.config import resolve_options
    from vkclient.session import SessionStore

    options = resolve_options()
    return SessionStore(options.plugins.get("storage", {}).get("session_file"))


@session_app.command("show")
def session_show() -> None:
    """Print the stored session with the token masked."""
    from vkclient.output import format_response, info

    session = _session_store().load()
    if session is None:
        info("No stored session.")
        return

    data = session.model_dump(exclude_none=True)
    token = data["access_token"]
    data["access_token"] = f"{token[:4]}...{token[-4:]}" if len(token) > 12 else "***"
    format_response(data)


@session_app.command("clear")
def session_clear() -> None:
    """Delete the stored session."""
    from vkclient.output import success

    store = _session_store()
    store.clear()
    success(f"Session cleared ({store.path}).")


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from vkclient.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """Console-script entry point.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        log_path = _write_crash_log(exc)
        sys.stderr.write(f"Unexpected error: {exc}\nCrash log written to {log_path}\n")
        sys.exit(EXIT_GENERIC_FAILURE)

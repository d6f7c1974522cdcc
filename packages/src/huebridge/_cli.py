"""Command-line entrypoint (Typer-based).

:func:`build_cli` turns a :class:`BridgeController` into a one-command
Typer app; :func:`main` is the ``huebridge`` console script and the
target of ``python -m huebridge``.

Exit codes:

- ``0`` clean shutdown (signal or Ctrl-C)
- ``1`` invalid configuration
- ``2`` startup failure (identity, discovery registration, HTTP bind)
- ``3`` any other runtime error
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from typing import TYPE_CHECKING, Annotated, get_args

import typer
from pydantic import ValidationError

from huebridge._errors import AdvertiseError, ListenError, ResolutionError
from huebridge._settings import LoggingSettings

if TYPE_CHECKING:
    from huebridge._lifecycle import BridgeController
    from huebridge._settings import BridgeSettings

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_STARTUP_ERROR = 2
EXIT_RUNTIME_ERROR = 3

# Failures that mean the bridge never came up.
STARTUP_ERRORS: tuple[type[Exception], ...] = (ResolutionError, AdvertiseError, ListenError)

_LOG_LEVELS: tuple[str, ...] = get_args(LoggingSettings.model_fields["level"].annotation)
_LOG_FORMATS: tuple[str, ...] = get_args(LoggingSettings.model_fields["format"].annotation)


def _choice(value: str | None, choices: tuple[str, ...], option: str) -> str | None:
    """Normalise *value* to the spelling used in *choices*, or reject it."""
    if value is None:
        return None
    for choice in choices:
        if value.casefold() == choice.casefold():
            return choice
    raise typer.BadParameter(
        f"{value!r} is not one of {', '.join(choices)}",
        param_hint=f"'{option}'",
    )


def _load_settings(
    controller: BridgeController,
    env_file: str,
    *,
    log_level: str | None,
    log_format: str | None,
) -> BridgeSettings:
    """Instantiate settings from *env_file* and apply the log overrides."""
    try:
        settings: BridgeSettings = controller._settings_class(_env_file=env_file)  # type: ignore[call-arg]
    except ValidationError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(EXIT_CONFIG_ERROR) from exc

    overrides = {
        key: value
        for key, value in (("level", log_level), ("format", log_format))
        if value is not None
    }
    if overrides:
        settings.logging = settings.logging.model_copy(update=overrides)
    return settings


def _serve(controller: BridgeController, settings: BridgeSettings) -> int:
    """Run the bridge to completion and return the process exit code."""
    try:
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(controller._run_async(settings=settings))
    except STARTUP_ERRORS as exc:
        logger.error("Startup failed: %s", exc)
        return EXIT_STARTUP_ERROR
    except Exception as exc:
        logger.error("Runtime error: %s", exc)
        return EXIT_RUNTIME_ERROR
    return EXIT_OK


def build_cli(controller: BridgeController) -> typer.Typer:
    """Construct the Typer CLI for *controller*."""
    name = controller._name
    version = controller._version

    cli = typer.Typer(
        help=f"{name} v{version}: emulated Philips Hue bridge (discovery only)",
    )

    @cli.callback(invoke_without_command=True)
    def main(
        show_version: Annotated[
            bool,
            typer.Option("--version", is_eager=True, help="Show version and exit."),
        ] = False,
        dry_run: Annotated[
            bool,
            typer.Option("--dry-run", help="Serve HTTP but send no discovery traffic."),
        ] = False,
        log_level: Annotated[
            str | None,
            typer.Option("--log-level", help=f"Override log level ({', '.join(_LOG_LEVELS)})."),
        ] = None,
        log_format: Annotated[
            str | None,
            typer.Option("--log-format", help="Override log format (json, text)."),
        ] = None,
        env_file: Annotated[
            str,
            typer.Option("--env-file", help="Path to .env file."),
        ] = ".env",
    ) -> None:
        if show_version:
            typer.echo(f"{name} v{version}")
            raise typer.Exit()

        level = _choice(log_level, _LOG_LEVELS, "--log-level")
        fmt = _choice(log_format, _LOG_FORMATS, "--log-format")

        controller._dry_run = dry_run
        settings = _load_settings(controller, env_file, log_level=level, log_format=fmt)

        code = _serve(controller, settings)
        if code != EXIT_OK:
            sys.exit(code)

    return cli


def main() -> None:
    """Console-script entrypoint."""
    from huebridge import __version__
    from huebridge._lifecycle import BridgeController

    BridgeController(version=__version__).cli()

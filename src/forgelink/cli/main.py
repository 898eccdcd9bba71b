"""forgelink CLI: command-line control for FlashForge Adventurer 3 printers.

Provides a ``forgelink`` command with subcommands for discovery, printer
configuration, status queries and simple control actions.  Every
subcommand supports a ``--json`` flag for machine-parseable output.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Callable, NoReturn, TypeVar

import click

from forgelink.cli.config import (
    list_printers as _list_printers,
)
from forgelink.cli.config import (
    load_printer_config,
    load_settings,
    remove_printer,
    save_printer,
    set_active_printer,
)
from forgelink.cli.output import (
    format_action,
    format_discovered,
    format_error,
    format_info,
    format_job,
    format_position,
    format_printers,
    format_response,
    format_status,
    format_temperatures,
)
from forgelink.client import Printer
from forgelink.discovery import DiscoveryMode, discover_one
from forgelink.discovery import discover as discover_peers
from forgelink.errors import (
    AlreadyControlled,
    AmbiguousPeers,
    CommandTimeout,
    ConnectFailure,
    DiscoveryFailure,
    FramingError,
    NoPeersFound,
    ParseFailure,
    PrinterError,
    ProtocolViolation,
)
from forgelink.log_config import configure_logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MODE_CHOICES: tuple[str, ...] = tuple(m.value for m in DiscoveryMode)

# Most specific first.
_ERROR_CODES: tuple[tuple[type[PrinterError], str], ...] = (
    (ConnectFailure, "CONNECT_FAILED"),
    (AlreadyControlled, "ALREADY_CONTROLLED"),
    (CommandTimeout, "TIMEOUT"),
    (NoPeersFound, "NO_PRINTER_FOUND"),
    (AmbiguousPeers, "AMBIGUOUS_PRINTER"),
    (DiscoveryFailure, "DISCOVERY_ERROR"),
    (ProtocolViolation, "PROTOCOL_ERROR"),
    (FramingError, "PROTOCOL_ERROR"),
    (ParseFailure, "PROTOCOL_ERROR"),
)


def _error_code(exc: PrinterError) -> str:
    for exc_type, code in _ERROR_CODES:
        if isinstance(exc, exc_type):
            return code
    return "PRINTER_ERROR"


def _fail(message: str, code: str, json_mode: bool) -> NoReturn:
    click.echo(format_error(message, code=code, json_mode=json_mode))
    sys.exit(1)


# ---------------------------------------------------------------------------
# Printer resolution
# ---------------------------------------------------------------------------


def _resolve_host(ctx: click.Context, json_mode: bool) -> str:
    """Pick the printer address: flag, env, config file, then discovery."""
    host = ctx.obj.get("host")
    if host:
        return host

    try:
        cfg = load_printer_config(ctx.obj.get("printer"))
    except ValueError as exc:
        _fail(str(exc), "CONFIG_ERROR", json_mode)
    if cfg is not None:
        logger.debug("Using configured printer %s at %s", cfg.get("name"), cfg["host"])
        return cfg["host"]

    settings = load_settings()
    peer = discover_one(
        DiscoveryMode(settings["discovery_mode"]),
        settings["discovery_window"],
    )
    logger.info("Discovered printer %s", peer)
    return peer.address


def _open_printer(ctx: click.Context, json_mode: bool) -> Printer:
    host = _resolve_host(ctx, json_mode)
    timeout = ctx.obj.get("timeout")
    if timeout is None:
        timeout = load_settings()["timeout"]
    return Printer.open(host, timeout=timeout)


def _with_printer(
    ctx: click.Context,
    json_mode: bool,
    what: str,
    operation: Callable[[Printer], T],
) -> T:
    """Run *operation* in a fresh session, turning failures into CLI errors."""
    try:
        with _open_printer(ctx, json_mode) as printer:
            return operation(printer)
    except PrinterError as exc:
        _fail(f"Failed to {what}: {exc}", _error_code(exc), json_mode)
    except ValueError as exc:
        _fail(f"Failed to {what}: {exc}", "INVALID_COMMAND", json_mode)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--printer",
    "-p",
    default=None,
    envvar="FORGELINK_PRINTER",
    help="Printer name to use (overrides active printer).",
)
@click.option("--host", default=None, help="Printer IP address (bypasses config and discovery).")
@click.option("--timeout", "-t", type=float, default=None, help="Per-command reply timeout in seconds.")
@click.option("--verbose", "-v", is_flag=True, help="Log protocol traffic to stderr.")
@click.version_option(package_name="forgelink")
@click.pass_context
def cli(
    ctx: click.Context,
    printer: str | None,
    host: str | None,
    timeout: float | None,
    verbose: bool,
) -> None:
    """forgelink: control FlashForge Adventurer 3 printers over the LAN."""
    ctx.ensure_object(dict)
    ctx.obj["printer"] = printer
    ctx.obj["host"] = host
    ctx.obj["timeout"] = timeout
    if verbose or os.environ.get("FORGELINK_LOG_DIR"):
        configure_logging(verbose=verbose)


# ---------------------------------------------------------------------------
# discover
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--window", "-w", type=float, default=None, help="Seconds to wait for replies.")
@click.option(
    "--mode",
    "-m",
    type=click.Choice(_MODE_CHOICES),
    default=None,
    help="Which socket listens for replies.",
)
@click.option("--first", is_flag=True, help="Stop at the first printer that answers.")
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
def discover(window: float | None, mode: str | None, first: bool, json_mode: bool) -> None:
    """Find printers on the local network."""
    settings = load_settings()
    try:
        peers = discover_peers(
            DiscoveryMode(mode or settings["discovery_mode"]),
            settings["discovery_window"] if window is None else window,
            first=first,
        )
    except PrinterError as exc:
        _fail(
            f"Network discovery failed: {exc}. Check network connectivity or pass --host.",
            _error_code(exc),
            json_mode,
        )

    click.echo(format_discovered([p.to_dict() for p in peers], json_mode=json_mode))
    if not json_mode and not peers:
        click.echo("\nTip: try --mode multicast_join, a longer --window, or 'forgelink add NAME IP'.")


# ---------------------------------------------------------------------------
# Printer configuration
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name")
@click.argument("host", required=False)
@click.option("--no-activate", is_flag=True, help="Keep the current active printer.")
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
def add(name: str, host: str | None, no_activate: bool, json_mode: bool) -> None:
    """Save a printer under NAME.

    Without HOST the network is searched and the single printer that
    answers is saved.
    """
    try:
        if not host:
            settings = load_settings()
            host = discover_one(
                DiscoveryMode(settings["discovery_mode"]),
                settings["discovery_window"],
            ).address
        path = save_printer(name, host, set_active=not no_activate)
    except PrinterError as exc:
        _fail(f"Failed to find a printer to add: {exc}", _error_code(exc), json_mode)
    except (OSError, ValueError) as exc:
        _fail(f"Failed to save printer: {exc}", "CONFIG_ERROR", json_mode)

    data = {"name": name, "host": host, "config_path": str(path)}
    click.echo(format_response("success", data=data, json_mode=json_mode))


@cli.command()
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
def printers(json_mode: bool) -> None:
    """List configured printers."""
    click.echo(format_printers(_list_printers(), json_mode=json_mode))


@cli.command()
@click.argument("name")
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
def use(name: str, json_mode: bool) -> None:
    """Make NAME the active printer."""
    try:
        set_active_printer(name)
    except (OSError, ValueError) as exc:
        _fail(str(exc), "CONFIG_ERROR", json_mode)
    click.echo(format_response("success", data={"active_printer": name}, json_mode=json_mode))


@cli.command()
@click.argument("name")
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
def remove(name: str, json_mode: bool) -> None:
    """Remove printer NAME from the config file."""
    try:
        remove_printer(name)
    except (OSError, ValueError) as exc:
        _fail(str(exc), "CONFIG_ERROR", json_mode)
    click.echo(format_response("success", data={"removed": name}, json_mode=json_mode))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def info(ctx: click.Context, json_mode: bool) -> None:
    """Show printer identity, firmware and build volume."""
    result = _with_printer(ctx, json_mode, "get printer info", lambda p: p.query_info())
    click.echo(format_info(result.to_dict(), json_mode=json_mode))


@cli.command()
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def status(ctx: click.Context, json_mode: bool) -> None:
    """Show machine state and endstops."""
    result = _with_printer(ctx, json_mode, "get printer status", lambda p: p.query_status())
    click.echo(format_status(result.to_dict(), json_mode=json_mode))


@cli.command()
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def position(ctx: click.Context, json_mode: bool) -> None:
    """Show the extruder position."""
    result = _with_printer(ctx, json_mode, "get extruder position", lambda p: p.query_position())
    click.echo(format_position(result.to_dict(), json_mode=json_mode))


@cli.command()
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def temps(ctx: click.Context, json_mode: bool) -> None:
    """Show extruder and bed temperatures."""
    result = _with_printer(ctx, json_mode, "get temperatures", lambda p: p.query_temperatures())
    click.echo(format_temperatures(result.to_dict(), json_mode=json_mode))


@cli.command()
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def job(ctx: click.Context, json_mode: bool) -> None:
    """Show SD print progress."""
    result = _with_printer(ctx, json_mode, "get job status", lambda p: p.query_job_status())
    click.echo(format_job(result.to_dict(), json_mode=json_mode))


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def _switch(
    ctx: click.Context,
    action: str,
    state: str,
    json_mode: bool,
    operation: Callable[[Printer, bool], Any],
) -> None:
    on = state == "on"
    _with_printer(ctx, json_mode, f"turn {action} {state}", lambda p: operation(p, on))
    result = {"state": state, "message": f"{action.capitalize()} turned {state}."}
    click.echo(format_action(action, result, json_mode=json_mode))


@cli.command()
@click.argument("state", type=click.Choice(["on", "off"]))
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def light(ctx: click.Context, state: str, json_mode: bool) -> None:
    """Turn the chamber light on or off."""
    _switch(ctx, "light", state, json_mode, lambda p, on: p.set_light(on))


@cli.command()
@click.argument("state", type=click.Choice(["on", "off"]))
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def fan(ctx: click.Context, state: str, json_mode: bool) -> None:
    """Turn the cooling fan on or off."""
    _switch(ctx, "fan", state, json_mode, lambda p, on: p.set_fan(on))


@cli.command()
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def stop(ctx: click.Context, json_mode: bool) -> None:
    """Stop the current print job."""
    _with_printer(ctx, json_mode, "stop the print job", lambda p: p.stop_job())
    click.echo(format_action("stop", {"message": "Print job stopped."}, json_mode=json_mode))


@cli.command()
@click.argument("command", nargs=-1, required=True)
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def raw(ctx: click.Context, command: tuple[str, ...], json_mode: bool) -> None:
    """Send COMMAND verbatim and print the reply payload.

    Example: forgelink raw M119
    """
    command_line = " ".join(command)
    payload = _with_printer(ctx, json_mode, f"send {command_line!r}", lambda p: p.send_raw(command_line))
    result = {"command": command_line, "payload": payload, "message": payload or "(empty reply)"}
    click.echo(format_action("raw", result, json_mode=json_mode))


def main() -> None:
    """CLI entry point."""
    cli()


if __name__ == "__main__":
    main()

"""Output formatting for the forgelink CLI.

Provides both JSON (machine-parseable) and human-readable (Rich) output.
All public functions accept a ``json_mode`` flag:
    - ``True``  → JSON envelope ``{"status": ..., "data": ...}``
    - ``False`` → Rich tables and panels for humans

Record arguments are the dicts produced by the models' ``to_dict()``.
"""

from __future__ import annotations

import json
from io import StringIO
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from forgelink.units import format_distance

# ---------------------------------------------------------------------------
# Generic helpers
# ---------------------------------------------------------------------------


def format_mm(micrometres: Optional[int]) -> str:
    """Render a micrometre count as ``12.340 mm``."""
    if micrometres is None:
        return "N/A"
    return f"{format_distance(micrometres)} mm"


def format_temp(current: Optional[int], target: Optional[int]) -> str:
    """Format temperatures like ``205°C → 210°C``."""
    current_str = f"{current}°C" if current is not None else "N/A"
    target_str = f"{target}°C" if target else "off"
    return f"{current_str} → {target_str}"


def progress_bar(completion: Optional[float], width: int = 20) -> str:
    """ASCII progress bar: ``[████████░░░░] 42.3%``."""
    if completion is None:
        completion = 0.0
    completion = max(0.0, min(100.0, completion))
    filled = int(round(width * completion / 100))
    bar = "█" * filled + "░" * (width - filled)
    return f"[{bar}] {completion:.1f}%"


def _render(renderable: Any) -> str:
    """Render a Rich object to a string."""
    buf = StringIO()
    console = Console(file=buf, force_terminal=True, width=100)
    console.print(renderable)
    return buf.getvalue().rstrip("\n")


def _success(data: Dict[str, Any]) -> str:
    return json.dumps({"status": "success", "data": data}, indent=2, sort_keys=False)


def _key_value_table() -> Table:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold cyan", no_wrap=True)
    table.add_column("Value")
    return table


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


def format_response(
    status: str,
    data: Optional[Dict[str, Any]] = None,
    error: Optional[Dict[str, Any]] = None,
    *,
    json_mode: bool = False,
) -> str:
    """Build a standard ``{status, data, error}`` response."""
    if json_mode:
        envelope: Dict[str, Any] = {"status": status}
        if data is not None:
            envelope["data"] = data
        if error is not None:
            envelope["error"] = error
        return json.dumps(envelope, indent=2, sort_keys=False)

    if status == "error" and error:
        code = error.get("code", "UNKNOWN")
        msg = error.get("message", "An unknown error occurred.")
        t = Text()
        t.append("Error", style="bold red")
        t.append(f" [{code}]: ", style="red")
        t.append(msg)
        return _render(Panel(t, title="Error", border_style="red"))

    if data:
        lines = [f"[bold]{escape(str(k))}:[/bold] {escape(str(v))}" for k, v in data.items()]
        return _render(Panel("\n".join(lines), border_style="green"))

    return f"Status: {status}"


def format_error(
    message: str,
    code: str = "ERROR",
    *,
    json_mode: bool = False,
) -> str:
    """Shortcut for a standard error response."""
    return format_response(
        "error",
        error={"code": code, "message": message},
        json_mode=json_mode,
    )


# ---------------------------------------------------------------------------
# Printer records
# ---------------------------------------------------------------------------


def format_info(info: Dict[str, Any], *, json_mode: bool = False) -> str:
    """Format printer identity (``PrinterInfo.to_dict()``)."""
    if json_mode:
        return _success({"info": info})

    table = _key_value_table()
    table.add_row("Name", escape(info.get("machine_name", "")))
    table.add_row("Type", escape(info.get("machine_type", "")))
    table.add_row("Firmware", escape(info.get("firmware", "")))
    table.add_row("Serial", escape(info.get("serial", "")))
    table.add_row("MAC", escape(info.get("mac_address", "")))
    table.add_row("Tools", str(info.get("tool_count", "")))
    volume = " x ".join(format_mm(info.get(k)) for k in ("x_um", "y_um", "z_um"))
    table.add_row("Build volume", volume)
    return _render(Panel(table, title="Printer Info", border_style="blue"))


def format_status(status: Dict[str, Any], *, json_mode: bool = False) -> str:
    """Format machine state (``PrinterStatus.to_dict()``)."""
    if json_mode:
        return _success({"printer": status})

    machine_status = status.get("machine_status", "unknown")
    color = {"READY": "green", "BUILDING_FROM_SD": "yellow", "PAUSED": "yellow"}.get(machine_status, "white")

    table = _key_value_table()
    table.add_row("Machine", f"[{color}]{escape(machine_status)}[/{color}]")
    table.add_row("Move mode", escape(status.get("move_mode", "")))
    endstops = " ".join(f"{axis.upper()}:{status.get(f'endstop_{axis}')}" for axis in "xyz")
    table.add_row("Endstops", endstops)
    flags = status.get("flags") or {}
    table.add_row("Flags", " ".join(f"{k}:{v}" for k, v in flags.items()))
    return _render(Panel(table, title="Printer Status", border_style="blue"))


def format_position(position: Dict[str, Any], *, json_mode: bool = False) -> str:
    """Format the extruder position (``ExtruderPosition.to_dict()``)."""
    if json_mode:
        return _success({"position": position})

    table = _key_value_table()
    for axis in ("x", "y", "z"):
        table.add_row(axis.upper(), format_mm(position.get(f"{axis}_um")))
    table.add_row("A", str(position.get("a", "")))
    table.add_row("B", str(position.get("b", "")))
    return _render(Panel(table, title="Extruder Position", border_style="blue"))


def format_temperatures(temps: Dict[str, Any], *, json_mode: bool = False) -> str:
    """Format temperatures (``Temperatures.to_dict()``)."""
    if json_mode:
        return _success({"temperatures": temps})

    table = _key_value_table()
    table.add_row(
        f"Extruder T{temps.get('extruder', 0)}",
        format_temp(temps.get("extruder_current"), temps.get("extruder_target")),
    )
    table.add_row("Bed", format_temp(temps.get("bed_current"), temps.get("bed_target")))
    return _render(Panel(table, title="Temperatures", border_style="blue"))


def format_job(job: Dict[str, Any], *, json_mode: bool = False) -> str:
    """Format SD job progress (``JobStatus.to_dict()``)."""
    if json_mode:
        return _success({"job": job})

    table = _key_value_table()
    table.add_row("Status", escape(job.get("text", "")))
    if job.get("bytes_total") is not None:
        table.add_row("Bytes", f"{job.get('bytes_printed')}/{job.get('bytes_total')}")
        table.add_row("Progress", progress_bar(job.get("completion")))
    return _render(Panel(table, title="Job", border_style="blue"))


# ---------------------------------------------------------------------------
# Action results (light, fan, stop, raw)
# ---------------------------------------------------------------------------


def format_action(
    action: str,
    result: Dict[str, Any],
    *,
    json_mode: bool = False,
) -> str:
    """Format the result of a control action."""
    if json_mode:
        return _success({"action": action, **result})

    message = result.get("message", f"{action.capitalize()} completed.")
    border, text_style = {
        "stop": ("red", "bold red"),
        "raw": ("blue", "bold blue"),
    }.get(action, ("green", "bold green"))
    return _render(Panel(Text(message, style=text_style), title=action.capitalize(), border_style=border))


# ---------------------------------------------------------------------------
# Printer list
# ---------------------------------------------------------------------------


def format_printers(
    printers: List[Dict[str, Any]],
    *,
    json_mode: bool = False,
) -> str:
    """Format the list of configured printers."""
    if json_mode:
        return _success({"printers": printers, "count": len(printers)})

    if not printers:
        return _render(Panel("No printers configured.  Run 'forgelink add' to add one.", border_style="yellow"))

    table = Table(title="Configured Printers", border_style="blue")
    table.add_column("Name", style="bold")
    table.add_column("Host")
    table.add_column("Active")
    for p in printers:
        active = "✓" if p.get("active") else ""
        table.add_row(escape(p["name"]), escape(p.get("host", "")), active)
    return _render(table)


# ---------------------------------------------------------------------------
# Discovery results
# ---------------------------------------------------------------------------


def format_discovered(
    peers: List[Dict[str, Any]],
    *,
    json_mode: bool = False,
) -> str:
    """Format discovered printers (``DiscoveredPeer.to_dict()``)."""
    if json_mode:
        return _success({"printers": peers, "count": len(peers)})

    if not peers:
        return _render(Panel("No printers found on the network.", border_style="yellow"))

    table = Table(title="Discovered Printers", border_style="green")
    table.add_column("Name", style="bold")
    table.add_column("Address")
    for p in peers:
        table.add_row(escape(p.get("name", "")), p.get("address", ""))
    return _render(table)

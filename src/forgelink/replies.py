"""Parsers for the payloads returned by :meth:`Connection.send`.

The reply vocabulary was reverse-engineered from one firmware, so every
parser fails closed: an unknown line, a malformed number or a missing field
raises :class:`~forgelink.errors.ParseFailure` carrying the offending text.
A firmware change should surface as an error, not as a misread coordinate
that later drives a move.
"""

from __future__ import annotations

import re

from forgelink.errors import ParseFailure
from forgelink.models import (
    ExtruderPosition,
    JobStatus,
    PrinterInfo,
    PrinterStatus,
    Temperatures,
)
from forgelink.units import Distance, Temperature, parse_distance

# M115: "X: 150 Y: 150 Z: 150"
_BUILD_VOLUME_RE = re.compile(r"X: ([0-9]+) Y: ([0-9]+) Z: ([0-9]+)")
_COUNT_RE = re.compile(r"[0-9]+")

# M115 "Key: value" lines and the PrinterInfo field each one fills.
_INFO_FIELDS: dict[str, str] = {
    "Machine Type": "machine_type",
    "Machine Name": "machine_name",
    "Firmware": "firmware",
    "SN": "serial",
    "Tool Count": "tool_count",
    "Mac Address": "mac_address",
}

# M119
_ENDSTOP_RE = re.compile(r"Endstop: X-max:([0-9]+) Y-max:([0-9]+) Z-max:([0-9]+)")
_MACHINE_STATUS_RE = re.compile(r"MachineStatus: (\S+)")
_MOVE_MODE_RE = re.compile(r"MoveMode: (\S+)")
_STATUS_FLAGS_RE = re.compile(r"Status:((?: [A-Z]+:[0-9]+)+)")

# M114: "X:-12.34 Y:0.5 Z:10 A:0 B:0"
_DECIMAL = r"(-?[0-9]+(?:\.[0-9]+)?)"
_POSITION_RE = re.compile(rf"X:{_DECIMAL} Y:{_DECIMAL} Z:{_DECIMAL} A:([0-9]+) B:([0-9]+)")

# M105: "T0:210 /210 B:60/60"
_TEMPERATURES_RE = re.compile(r"T([0-9]+):([0-9]+) /([0-9]+) B:([0-9]+)/([0-9]+)")


def _lines(payload: str) -> list[str]:
    return [line.rstrip("\r") for line in payload.split("\n")]


def _unknown(command: str, text: str) -> ParseFailure:
    return ParseFailure(f"unknown {command} reply: {text!r}", text=text)


def parse_info(payload: str) -> PrinterInfo:
    """Parse the ``M115`` printer information reply.

    Lines come in any order; blank lines are ignored.
    """
    values: dict[str, object] = {}
    for line in _lines(payload):
        if not line:
            continue
        volume = _BUILD_VOLUME_RE.fullmatch(line)
        if volume is not None:
            values["x"], values["y"], values["z"] = (Distance.from_mm(int(v)) for v in volume.groups())
            continue
        key, sep, value = line.partition(":")
        field_name = _INFO_FIELDS.get(key)
        if not sep or field_name is None:
            raise _unknown("M115", line)
        value = value.strip()
        if field_name == "tool_count":
            if not _COUNT_RE.fullmatch(value):
                raise _unknown("M115", line)
            values[field_name] = int(value)
        else:
            values[field_name] = value

    missing = sorted(set(_INFO_FIELDS.values()) - values.keys())
    if "x" not in values:
        missing.append("build volume")
    if missing:
        raise ParseFailure(
            f"incomplete M115 reply, missing {', '.join(missing)}: {payload!r}",
            text=payload,
        )
    return PrinterInfo(**values)  # type: ignore[arg-type]


def parse_status(payload: str) -> PrinterStatus:
    """Parse the ``M119`` status reply.

    Expected lines::

        Endstop: X-max:0 Y-max:0 Z-max:0
        MachineStatus: READY
        MoveMode: READY
        Status: S:0 L:0 J:0 F:0
    """
    endstops: tuple[int, int, int] | None = None
    machine_status: str | None = None
    move_mode: str | None = None
    flags: tuple[tuple[str, int], ...] | None = None

    for line in _lines(payload):
        if not line:
            continue
        if match := _ENDSTOP_RE.fullmatch(line):
            endstops = (int(match.group(1)), int(match.group(2)), int(match.group(3)))
        elif match := _MACHINE_STATUS_RE.fullmatch(line):
            machine_status = match.group(1)
        elif match := _MOVE_MODE_RE.fullmatch(line):
            move_mode = match.group(1)
        elif match := _STATUS_FLAGS_RE.fullmatch(line):
            pairs = (token.split(":") for token in match.group(1).split())
            flags = tuple((name, int(value)) for name, value in pairs)
        else:
            raise _unknown("M119", line)

    if endstops is None or machine_status is None or move_mode is None or flags is None:
        raise ParseFailure(f"incomplete M119 reply: {payload!r}", text=payload)
    return PrinterStatus(
        endstop_x=endstops[0],
        endstop_y=endstops[1],
        endstop_z=endstops[2],
        machine_status=machine_status,
        move_mode=move_mode,
        flags=flags,
    )


def parse_position(payload: str) -> ExtruderPosition:
    """Parse the single-line ``M114`` extruder position reply."""
    match = _POSITION_RE.fullmatch(payload)
    if match is None:
        raise _unknown("M114", payload)
    x, y, z, a, b = match.groups()
    return ExtruderPosition(
        x=parse_distance(x),
        y=parse_distance(y),
        z=parse_distance(z),
        a=int(a),
        b=int(b),
    )


def parse_temperatures(payload: str) -> Temperatures:
    """Parse the ``M105`` temperature reply (whole degrees Celsius)."""
    match = _TEMPERATURES_RE.fullmatch(payload)
    if match is None:
        raise _unknown("M105", payload)
    extruder, current, target, bed_current, bed_target = (int(v) for v in match.groups())
    return Temperatures(
        extruder=extruder,
        extruder_current=Temperature(current),
        extruder_target=Temperature(target),
        bed_current=Temperature(bed_current),
        bed_target=Temperature(bed_target),
    )


def parse_job_status(payload: str) -> JobStatus:
    """Wrap the ``M27`` reply; its text is kept verbatim."""
    return JobStatus(text=payload)


def expect_empty(command_line: str, payload: str) -> None:
    """Check that an action command (light, fan, stop) got an empty reply."""
    if payload:
        raise _unknown(command_line.strip().partition(" ")[0], payload)

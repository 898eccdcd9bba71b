"""Structured records decoded from printer replies.

All records are frozen: they are values with no identity beyond their
fields.  Each exposes ``to_dict()`` returning a JSON-serialisable view in
which distances are integer micrometres (``*_um`` keys) and temperatures
integer degrees Celsius.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from forgelink.units import Distance, Temperature

# "SD printing byte 1234/5678"
_SD_PROGRESS_RE = re.compile(r"SD printing byte\s+(?P<current>\d+)\s*/\s*(?P<total>\d+)")


@dataclass(frozen=True)
class PrinterInfo:
    """Printer identity and build volume, as reported by ``M115``.

    This never changes for a given machine, so it can be cached.
    """

    machine_type: str
    machine_name: str
    firmware: str
    serial: str
    x: Distance
    y: Distance
    z: Distance
    tool_count: int
    mac_address: str

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary."""
        return {
            "machine_type": self.machine_type,
            "machine_name": self.machine_name,
            "firmware": self.firmware,
            "serial": self.serial,
            "x_um": int(self.x),
            "y_um": int(self.y),
            "z_um": int(self.z),
            "tool_count": self.tool_count,
            "mac_address": self.mac_address,
        }


@dataclass(frozen=True)
class PrinterStatus:
    """Machine state as reported by ``M119``.

    *flags* holds the letter counters of the ``Status:`` line in the order
    the firmware sent them, e.g. ``(("S", 0), ("L", 0), ("J", 0), ("F", 0))``.
    """

    endstop_x: int
    endstop_y: int
    endstop_z: int
    machine_status: str
    move_mode: str
    flags: tuple[tuple[str, int], ...]

    def flag(self, name: str) -> int | None:
        """Return the value of the status counter *name*, if reported."""
        for key, value in self.flags:
            if key == name:
                return value
        return None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary."""
        return {
            "endstop_x": self.endstop_x,
            "endstop_y": self.endstop_y,
            "endstop_z": self.endstop_z,
            "machine_status": self.machine_status,
            "move_mode": self.move_mode,
            "flags": dict(self.flags),
        }


@dataclass(frozen=True)
class ExtruderPosition:
    """Current extruder position from ``M114``."""

    x: Distance
    y: Distance
    z: Distance
    a: int
    b: int

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary."""
        return {
            "x_um": int(self.x),
            "y_um": int(self.y),
            "z_um": int(self.z),
            "a": self.a,
            "b": self.b,
        }


@dataclass(frozen=True)
class Temperatures:
    """Extruder and bed temperatures from ``M105``."""

    extruder: int
    extruder_current: Temperature
    extruder_target: Temperature
    bed_current: Temperature
    bed_target: Temperature

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary."""
        return {
            "extruder": self.extruder,
            "extruder_current": int(self.extruder_current),
            "extruder_target": int(self.extruder_target),
            "bed_current": int(self.bed_current),
            "bed_target": int(self.bed_target),
        }


@dataclass(frozen=True)
class JobStatus:
    """The ``M27`` reply, kept verbatim.

    The firmware does not define a closed vocabulary here ("SD printing byte
    X/Y", "Not SD printing.", ...).  :attr:`progress` and :attr:`completion`
    interpret the byte counter form when present and are ``None`` otherwise.
    """

    text: str

    @property
    def progress(self) -> tuple[int, int] | None:
        """``(current, total)`` SD byte counters, if the text reports them."""
        match = _SD_PROGRESS_RE.search(self.text)
        if match is None:
            return None
        return int(match.group("current")), int(match.group("total"))

    @property
    def completion(self) -> float | None:
        """Percentage of the job file consumed (0.0 -- 100.0)."""
        progress = self.progress
        if progress is None:
            return None
        current, total = progress
        return round((current / total) * 100.0, 2) if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary."""
        progress = self.progress
        return {
            "text": self.text,
            "bytes_printed": progress[0] if progress else None,
            "bytes_total": progress[1] if progress else None,
            "completion": self.completion,
        }


@dataclass(frozen=True)
class DiscoveredPeer:
    """A printer that answered a discovery probe.

    Holds no connection; pass :attr:`address` to
    :meth:`forgelink.client.Printer.open` to talk to it.
    """

    address: str
    name: str
    payload: bytes = b""

    def __str__(self) -> str:
        return f"{self.name} ({self.address})"

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary."""
        return {
            "address": self.address,
            "name": self.name,
            "payload": self.payload.hex(),
        }

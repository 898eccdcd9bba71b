"""forgelink - LAN control and discovery for FlashForge Adventurer 3 printers."""

from __future__ import annotations

import logging
import os
import re
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

_logger = logging.getLogger(__name__)


def _resolve_version() -> str:
    """Resolve the installed package version with a source-tree fallback."""
    # Source-tree first: avoids stale installed metadata when running from git.
    try:
        pyproject = Path(__file__).resolve().parents[2] / "pyproject.toml"
        if pyproject.is_file():
            content = pyproject.read_text(encoding="utf-8")
            match = re.search(r'(?m)^\s*version\s*=\s*"([^"]+)"\s*$', content)
            if match:
                return match.group(1)
    except OSError as exc:
        _logger.debug("Local pyproject version fallback failed: %s", exc)

    try:
        return version("forgelink")
    except PackageNotFoundError:
        return "unknown"


__version__ = _resolve_version()


def parse_float_env(name: str, default: float) -> float:
    """Parse a float from an environment variable with safe fallback.

    Logs a warning and returns *default* if the value is not a valid number.
    """
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        _logger.warning(
            "Invalid number for %s=%r, using default %s",
            name,
            raw,
            default,
        )
        return default


from forgelink.client import Printer  # noqa: E402
from forgelink.discovery import DiscoveryMode, discover, discover_one  # noqa: E402
from forgelink.errors import (  # noqa: E402
    AlreadyControlled,
    AmbiguousPeers,
    CommandTimeout,
    ConnectFailure,
    ConnectionClosedError,
    DiscoveryFailure,
    FramingError,
    NoPeersFound,
    ParseFailure,
    PrinterError,
    ProtocolViolation,
)
from forgelink.models import (  # noqa: E402
    DiscoveredPeer,
    ExtruderPosition,
    JobStatus,
    PrinterInfo,
    PrinterStatus,
    Temperatures,
)
from forgelink.transport import Connection, connect  # noqa: E402
from forgelink.units import Distance, Temperature, format_distance, parse_distance  # noqa: E402

__all__ = [
    "AlreadyControlled",
    "AmbiguousPeers",
    "CommandTimeout",
    "ConnectFailure",
    "Connection",
    "ConnectionClosedError",
    "DiscoveredPeer",
    "DiscoveryFailure",
    "DiscoveryMode",
    "Distance",
    "ExtruderPosition",
    "FramingError",
    "JobStatus",
    "NoPeersFound",
    "ParseFailure",
    "Printer",
    "PrinterError",
    "PrinterInfo",
    "PrinterStatus",
    "ProtocolViolation",
    "Temperature",
    "Temperatures",
    "__version__",
    "connect",
    "discover",
    "discover_one",
    "format_distance",
    "parse_distance",
    "parse_float_env",
]

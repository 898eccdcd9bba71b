"""Configuration management for the forgelink CLI.

Handles loading and saving named printers stored in
``~/.forgelink/config.yaml``, plus the CLI-wide ``settings`` section.

Precedence for the printer address (highest first):
    1. CLI flag ``--host``
    2. Environment variable ``FORGELINK_PRINTER_HOST``
    3. Config file (``--printer`` name, else the active printer)
    4. Network discovery
"""

from __future__ import annotations

import contextlib
import logging
import os
import stat
import sys
from pathlib import Path
from typing import Any

import yaml

from forgelink import parse_float_env
from forgelink.discovery import DEFAULT_WINDOW, DiscoveryMode

logger = logging.getLogger(__name__)

# Valid top-level keys in the config file.  Used for schema validation.
_KNOWN_KEYS: set[str] = {"printers", "active_printer", "settings"}

DEFAULT_TIMEOUT: float = 10.0

_DEFAULT_SETTINGS: dict[str, Any] = {
    "timeout": DEFAULT_TIMEOUT,
    "discovery_window": DEFAULT_WINDOW,
    "discovery_mode": DiscoveryMode.SEND_ONLY.value,
}


def get_config_path() -> Path:
    """Return the config file path.

    ``FORGELINK_CONFIG`` overrides the default ``~/.forgelink/config.yaml``.
    """
    override = os.environ.get("FORGELINK_CONFIG", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".forgelink" / "config.yaml"


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def _check_file_permissions(path: Path) -> None:
    """Warn if *path* is readable by group or others.

    Skipped on Windows where POSIX permission semantics do not apply.
    """
    if sys.platform == "win32":
        return
    try:
        mode = path.stat().st_mode
        if mode & (stat.S_IRGRP | stat.S_IWGRP | stat.S_IROTH | stat.S_IWOTH):
            logger.warning(
                "Config file %s has overly permissive permissions (mode %04o). Recommended: chmod 600 %s",
                path,
                stat.S_IMODE(mode),
                path,
            )
    except OSError as exc:
        logger.debug("Could not stat config file %s: %s", path, exc)


def _validate_config_schema(data: dict[str, Any], path: Path) -> None:
    """Log warnings for unknown keys in the config file."""
    for key in sorted(set(data.keys()) - _KNOWN_KEYS):
        logger.warning(
            "Config file %s contains unknown key %r (expected one of: %s)",
            path,
            key,
            ", ".join(sorted(_KNOWN_KEYS)),
        )


def _read_config_file(path: Path) -> dict[str, Any]:
    """Read and parse the YAML config file; return ``{}`` on any failure."""
    if not path.is_file():
        return {}
    _check_file_permissions(path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        if not isinstance(data, dict):
            return {}
        _validate_config_schema(data, path)
        return data
    except yaml.YAMLError as exc:
        logger.warning("Config file %s has invalid YAML: %s", path, exc)
        return {}
    except OSError as exc:
        logger.warning("Could not read config file %s: %s", path, exc)
        return {}


def _write_config_file(path: Path, data: dict[str, Any]) -> None:
    """Write *data* to the YAML config file, creating dirs as needed.

    Sets file permissions to ``0600``; the file records printer serial
    numbers and addresses.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(data, fh, default_flow_style=False, sort_keys=False)
    if sys.platform != "win32":
        with contextlib.suppress(OSError):
            path.chmod(0o600)


def _printers_section(raw: dict[str, Any]) -> dict[str, Any]:
    printers = raw.get("printers", {})
    return printers if isinstance(printers, dict) else {}


def load_printer_config(
    printer_name: str | None = None,
    *,
    config_path: Path | None = None,
) -> dict[str, Any] | None:
    """Resolve the configuration for a single printer.

    Resolution order:
        1. If ``FORGELINK_PRINTER_HOST`` is set, use it (ignores the file).
        2. Otherwise look up *printer_name* (or the active printer, or the
           only configured printer) in the config file.

    Returns a dict with at least a ``host`` key, or ``None`` when nothing is
    configured and no name was asked for, leaving the caller to discover.

    Raises :class:`ValueError` if *printer_name* is unknown, or several
    printers are configured without an active one.
    """
    # --- Env var fast path ------------------------------------------------
    env_host = os.environ.get("FORGELINK_PRINTER_HOST", "").strip()
    if env_host:
        return {"name": None, "host": env_host}

    # --- Config file path -------------------------------------------------
    path = config_path or get_config_path()
    raw = _read_config_file(path)
    printers = _printers_section(raw)

    name = printer_name or raw.get("active_printer")
    if not name:
        if not printers:
            return None
        if len(printers) > 1:
            raise ValueError(
                "Multiple printers configured but no active printer set.  "
                "Run 'forgelink use <name>' to select one, or pass --printer."
            )
        name = next(iter(printers))

    if name not in printers:
        raise ValueError(
            f"Printer {name!r} not found in config. "
            f"Available: {', '.join(printers.keys()) or '(none)'}. "
            f"Run 'forgelink printers' to list all, or 'forgelink add' to add one."
        )

    entry = printers[name]
    cfg = dict(entry) if isinstance(entry, dict) else {}
    cfg["name"] = name
    cfg["host"] = str(cfg.get("host", "")).strip()
    if not cfg["host"]:
        raise ValueError(f"Printer {name!r} has no host in {path}")
    return cfg


def load_settings(*, config_path: Path | None = None) -> dict[str, Any]:
    """Return the ``settings`` section merged over the defaults.

    ``FORGELINK_TIMEOUT`` overrides ``timeout``.  Invalid values are logged
    and replaced by their default.
    """
    path = config_path or get_config_path()
    raw = _read_config_file(path)
    section = raw.get("settings", {})
    if not isinstance(section, dict):
        section = {}

    settings = dict(_DEFAULT_SETTINGS)
    for key in ("timeout", "discovery_window"):
        if key in section:
            try:
                settings[key] = float(section[key])
            except (TypeError, ValueError):
                logger.warning("Invalid %s in %s: %r, using default", key, path, section[key])
    if "discovery_mode" in section:
        mode = str(section["discovery_mode"])
        if mode in {m.value for m in DiscoveryMode}:
            settings["discovery_mode"] = mode
        else:
            logger.warning("Unknown discovery_mode in %s: %r, using default", path, mode)

    settings["timeout"] = parse_float_env("FORGELINK_TIMEOUT", settings["timeout"])
    return settings


# ---------------------------------------------------------------------------
# Save / mutate
# ---------------------------------------------------------------------------


def save_printer(
    name: str,
    host: str,
    *,
    serial: str | None = None,
    set_active: bool = True,
    config_path: Path | None = None,
) -> Path:
    """Add or update a printer in the config file.

    Returns the path to the config file.
    """
    host = host.strip()
    if not host:
        raise ValueError("host is required")

    path = config_path or get_config_path()
    raw = _read_config_file(path)
    printers = raw.setdefault("printers", {})
    if not isinstance(printers, dict):
        raw["printers"] = printers = {}

    entry: dict[str, Any] = {"host": host}
    if serial:
        entry["serial"] = serial
    printers[name] = entry

    if set_active or "active_printer" not in raw:
        raw["active_printer"] = name

    raw.setdefault("settings", dict(_DEFAULT_SETTINGS))
    _write_config_file(path, raw)
    return path


def set_active_printer(
    name: str,
    *,
    config_path: Path | None = None,
) -> None:
    """Set the active printer in the config file.

    Raises :class:`ValueError` if the printer doesn't exist.
    """
    path = config_path or get_config_path()
    raw = _read_config_file(path)
    printers = _printers_section(raw)

    if name not in printers:
        raise ValueError(f"Printer {name!r} not found.  Available: {', '.join(printers.keys()) or '(none)'}")

    raw["active_printer"] = name
    _write_config_file(path, raw)


def list_printers(
    *,
    config_path: Path | None = None,
) -> list[dict[str, Any]]:
    """Return a list of saved printers with name, host, active flag."""
    path = config_path or get_config_path()
    raw = _read_config_file(path)
    active = raw.get("active_printer", "")

    result: list[dict[str, Any]] = []
    for name, cfg in _printers_section(raw).items():
        if not isinstance(cfg, dict):
            continue
        result.append(
            {
                "name": name,
                "host": cfg.get("host", ""),
                "active": name == active,
            }
        )
    return result


def remove_printer(
    name: str,
    *,
    config_path: Path | None = None,
) -> None:
    """Remove a printer from the config file."""
    path = config_path or get_config_path()
    raw = _read_config_file(path)
    printers = _printers_section(raw)

    if name not in printers:
        raise ValueError(f"Printer {name!r} not found.")

    del printers[name]

    if raw.get("active_printer") == name:
        if printers:
            raw["active_printer"] = next(iter(printers))
        else:
            raw.pop("active_printer", None)

    _write_config_file(path, raw)

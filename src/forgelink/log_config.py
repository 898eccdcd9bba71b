"""Log rotation and device identifier scrubbing for forgelink.

Printer replies carry the machine serial number and MAC address, and debug
logging records every reply verbatim.  :class:`ScrubFilter` redacts both
before a record reaches a handler; :func:`configure_logging` installs it
together with an optional rotating log file.

Only stdlib modules are used.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

_LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_REDACTED = "***REDACTED***"

# Patterns that match device identifiers in log messages.
_SCRUB_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # M115 "SN: SNADVA1234567" line, plain or inside a repr'd payload.
    (re.compile(r"(SN:\s*)([^\s\\'\",]+)"), rf"\1{_REDACTED}"),
    (re.compile(r"(serial[\"']?\s*[:=]\s*[\"']?)([^\"'\s,}{\]]+)", re.IGNORECASE), rf"\1{_REDACTED}"),
    # MAC addresses in colon or dash notation.
    (re.compile(r"\b[0-9A-Fa-f]{2}(?:[:-][0-9A-Fa-f]{2}){5}\b"), _REDACTED),
]


class ScrubFilter(logging.Filter):
    """Logging filter that redacts serial numbers and MAC addresses.

    Applies to the format string and to string arguments.  Non-string
    arguments (e.g. the ``bytes`` of a raw frame) are rendered to text first
    so identifiers inside them are redacted too.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg and isinstance(record.msg, str):
            record.msg = _scrub(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: _scrub_arg(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(_scrub_arg(a) for a in record.args)
        return True


def _scrub(text: str) -> str:
    """Apply all scrub patterns to *text*."""
    for pattern, replacement in _SCRUB_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _scrub_arg(value: object) -> object:
    if isinstance(value, str):
        return _scrub(value)
    if isinstance(value, (bytes, bytearray)):
        scrubbed = _scrub(repr(bytes(value)))
        return value if scrubbed == repr(bytes(value)) else scrubbed
    return value


def configure_logging(
    log_dir: Optional[str] = None,
    *,
    max_bytes: int = 5_000_000,
    backup_count: int = 3,
    level: Optional[str] = None,
    verbose: bool = False,
) -> None:
    """Configure logging with optional rotation and identifier scrubbing.

    :param log_dir: Directory for ``forgelink.log``.  Reads
        ``FORGELINK_LOG_DIR`` when not given; without either, no file
        handler is installed.
    :param max_bytes: Maximum log file size before rotation (default 5 MB).
    :param backup_count: Number of rotated log files to keep (default 3).
    :param level: Log level name.  Reads ``FORGELINK_LOG_LEVEL``, then
        falls back to ``"DEBUG"`` when *verbose* and ``"WARNING"`` otherwise.
    :param verbose: Also log to stderr.
    """
    log_dir = log_dir or os.environ.get("FORGELINK_LOG_DIR") or None
    level = level or os.environ.get("FORGELINK_LOG_LEVEL") or ("DEBUG" if verbose else "WARNING")
    log_level = getattr(logging, level.upper(), logging.WARNING)

    scrub_filter = ScrubFilter()
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(log_level)

    if log_dir:
        has_rotating = any(isinstance(h, RotatingFileHandler) for h in root.handlers)
        if not has_rotating:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, "forgelink.log"),
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

    if verbose:
        has_stderr = any(
            type(h) is logging.StreamHandler and getattr(h, "stream", None) is sys.stderr
            for h in root.handlers
        )
        if not has_stderr:
            stream_handler = logging.StreamHandler(sys.stderr)
            stream_handler.setLevel(log_level)
            stream_handler.setFormatter(formatter)
            root.addHandler(stream_handler)

    # Install scrub filter on all existing handlers.
    for handler in root.handlers:
        if not any(isinstance(f, ScrubFilter) for f in handler.filters):
            handler.addFilter(scrub_filter)

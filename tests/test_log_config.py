"""Tests for forgelink.log_config: log rotation and identifier scrubbing."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

import pytest

from forgelink.log_config import ScrubFilter, _scrub, configure_logging


@pytest.fixture(autouse=True)
def _restore_root_logger(monkeypatch):
    """Undo handler and level changes made by configure_logging()."""
    monkeypatch.delenv("FORGELINK_LOG_DIR", raising=False)
    monkeypatch.delenv("FORGELINK_LOG_LEVEL", raising=False)
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
    for handler in handlers:
        for f in [f for f in handler.filters if isinstance(f, ScrubFilter)]:
            handler.removeFilter(f)


def _record(msg, args=()):
    return logging.LogRecord(
        name="test", level=logging.INFO, pathname="", lineno=0,
        msg=msg, args=args, exc_info=None,
    )


class TestScrubFilter:
    """Tests for the ScrubFilter logging filter."""

    def test_redacts_serial_line(self):
        result = _scrub("SN: SNADVA9501234")
        assert "SNADVA9501234" not in result
        assert result == "SN: ***REDACTED***"

    def test_redacts_serial_inside_repr(self):
        result = _scrub(repr("Firmware: v1.3.7\r\nSN: SNADVA9501234\r\nX: 150 Y: 150 Z: 150"))
        assert "SNADVA9501234" not in result
        assert "X: 150" in result

    def test_redacts_serial_key(self):
        result = _scrub("'serial': 'SNADVA9501234'")
        assert "SNADVA9501234" not in result

    def test_redacts_mac_address(self):
        result = _scrub("Mac Address: 88:A9:A7:90:12:34")
        assert "88:A9:A7:90:12:34" not in result
        assert "***REDACTED***" in result

    def test_redacts_dashed_mac_address(self):
        assert "88-a9" not in _scrub("mac 88-a9-a7-90-12-34")

    def test_preserves_non_sensitive(self):
        for msg in ("T0:205 /210 B:58/60", "Status: S:0 L:0 J:0 F:0", "X:-12.34 Y:0.5 Z:10 A:0 B:0"):
            assert _scrub(msg) == msg

    def test_filter_modifies_log_record(self):
        record = _record("SN: SNADVA9501234")
        ScrubFilter().filter(record)
        assert "SNADVA9501234" not in record.msg

    def test_filter_scrubs_tuple_args(self):
        record = _record("RX %s: %r", ("10.0.0.5:8899", "Mac Address: 88:A9:A7:90:12:34"))
        ScrubFilter().filter(record)
        assert "88:A9" not in record.getMessage()

    def test_filter_scrubs_bytes_args(self):
        record = _record("unknown reply: %r", (b"CMD M115 Received.\r\nSN: SNADVA9501234\r\n",))
        ScrubFilter().filter(record)
        assert "SNADVA9501234" not in record.getMessage()

    def test_filter_keeps_clean_bytes(self):
        raw = b"CMD M26 Received.\r\nok\r\n"
        record = _record("%r", (raw,))
        ScrubFilter().filter(record)
        assert record.args == (raw,)

    def test_filter_scrubs_dict_args(self):
        record = _record("%(reply)s", None)
        record.args = {"reply": "SN: SNADVA9501234"}
        ScrubFilter().filter(record)
        assert "SNADVA9501234" not in record.args["reply"]

    def test_filter_returns_true(self):
        assert ScrubFilter().filter(_record("hello")) is True


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def _rotating(self):
        return [h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)]

    def test_no_file_without_directory(self):
        configure_logging()
        assert self._rotating() == []

    def test_creates_log_directory(self, tmp_path):
        log_dir = str(tmp_path / "logs")
        configure_logging(log_dir)
        assert os.path.isdir(log_dir)
        assert self._rotating()[-1].baseFilename == os.path.join(log_dir, "forgelink.log")

    def test_default_rotation_params(self, tmp_path):
        configure_logging(str(tmp_path))
        handler = self._rotating()[-1]
        assert handler.maxBytes == 5_000_000
        assert handler.backupCount == 3

    def test_custom_rotation_params(self, tmp_path):
        configure_logging(str(tmp_path), max_bytes=1_000, backup_count=1)
        handler = self._rotating()[-1]
        assert handler.maxBytes == 1_000
        assert handler.backupCount == 1

    def test_env_log_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FORGELINK_LOG_DIR", str(tmp_path / "envlogs"))
        configure_logging()
        assert os.path.isdir(tmp_path / "envlogs")
        assert len(self._rotating()) == 1

    def test_single_file_handler(self, tmp_path):
        configure_logging(str(tmp_path))
        configure_logging(str(tmp_path))
        assert len(self._rotating()) == 1

    def test_installs_scrub_filter(self, tmp_path):
        configure_logging(str(tmp_path))
        assert any(isinstance(f, ScrubFilter) for f in self._rotating()[-1].filters)

    def test_default_level(self):
        configure_logging()
        assert logging.getLogger().level == logging.WARNING

    def test_respects_env_log_level(self, monkeypatch):
        monkeypatch.setenv("FORGELINK_LOG_LEVEL", "INFO")
        configure_logging(verbose=True)
        assert logging.getLogger().level == logging.INFO

    def test_verbose_logs_debug_to_stderr(self):
        configure_logging(verbose=True)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        stream_handlers = [
            h for h in root.handlers
            if type(h) is logging.StreamHandler and h.stream is sys.stderr
        ]
        assert len(stream_handlers) == 1
        assert any(isinstance(f, ScrubFilter) for f in stream_handlers[0].filters)

    def test_written_log_is_scrubbed(self, tmp_path):
        configure_logging(str(tmp_path), level="INFO")
        logging.getLogger("forgelink.test").info("reply %r", "SN: SNADVA9501234")
        for handler in self._rotating():
            handler.flush()
        content = (tmp_path / "forgelink.log").read_text()
        assert "reply" in content
        assert "SNADVA9501234" not in content

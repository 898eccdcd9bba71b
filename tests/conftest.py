"""Shared fixtures for the forgelink test suite.

Provides an in-memory stand-in for the printer's TCP stream, a helper that
builds reply frames, and sample payloads as the Adventurer 3 firmware
sends them.
"""

from __future__ import annotations

from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Sample payloads
# ---------------------------------------------------------------------------

INFO_PAYLOAD = (
    "Machine Type: FlashForge Adventurer III\r\n"
    "Machine Name: Workshop\r\n"
    "Firmware: v1.3.7\r\n"
    "SN: SNADVA9501234\r\n"
    "X: 150 Y: 150 Z: 150\r\n"
    "Tool Count: 1\r\n"
    "Mac Address: 88:A9:A7:90:12:34"
)

STATUS_PAYLOAD = (
    "Endstop: X-max:0 Y-max:0 Z-max:0\r\n"
    "MachineStatus: READY\r\n"
    "MoveMode: READY\r\n"
    "Status: S:0 L:0 J:0 F:0"
)

POSITION_PAYLOAD = "X:-12.34 Y:0.5 Z:10 A:0 B:0"

TEMPERATURES_PAYLOAD = "T0:205 /210 B:58/60"


def build_frame(token: str, payload: str = "") -> bytes:
    """Return the bytes the printer sends in reply to *token*."""
    if payload:
        return f"CMD {token} Received.\r\n{payload}\r\nok\r\n".encode()
    return f"CMD {token} Received.\r\nok\r\n".encode()


# ---------------------------------------------------------------------------
# Fake stream
# ---------------------------------------------------------------------------


class FakeStream:
    """Socket-like object replaying scripted ``recv`` results.

    Each queued item is either a ``bytes`` chunk returned by one ``recv``
    call or an exception instance raised by it.  Once the queue is empty,
    ``recv`` reports end of stream.
    """

    def __init__(self, *chunks: Any) -> None:
        self._chunks: list[Any] = list(chunks)
        self.sent: list[bytes] = []
        self.timeouts: list[float | None] = []
        # Timeout in effect at each sendall call.
        self.send_timeouts: list[Any] = []
        self.closed = False
        self.close_calls = 0
        self.send_error: Exception | None = None
        self.close_error: Exception | None = None

    def feed(self, *chunks: Any) -> None:
        self._chunks.extend(chunks)

    def sendall(self, data: bytes) -> None:
        self.send_timeouts.append(self.timeouts[-1] if self.timeouts else "unset")
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(bytes(data))

    def recv(self, size: int) -> bytes:
        if not self._chunks:
            return b""
        item = self._chunks.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def settimeout(self, value: float | None) -> None:
        self.timeouts.append(value)

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        if self.close_error is not None:
            raise self.close_error

    @property
    def commands(self) -> list[str]:
        """Sent command lines without the ``~`` marker and newline."""
        return [data.decode()[1:-1] for data in self.sent]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def frame():
    return build_frame


@pytest.fixture
def stream():
    return FakeStream()


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    """Point the CLI at an empty config file under *tmp_path*."""
    path = tmp_path / "config.yaml"
    monkeypatch.setenv("FORGELINK_CONFIG", str(path))
    monkeypatch.delenv("FORGELINK_PRINTER_HOST", raising=False)
    monkeypatch.delenv("FORGELINK_PRINTER", raising=False)
    monkeypatch.delenv("FORGELINK_TIMEOUT", raising=False)
    monkeypatch.delenv("FORGELINK_LOG_DIR", raising=False)
    return path

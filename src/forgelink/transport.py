"""TCP command transport for the Adventurer 3 control protocol.

The printer listens on TCP port 8899 and speaks a line-oriented dialect of
G-code.  Every command is sent as ``~<command>\\n`` and every reply is
wrapped::

    CMD <token> Received.\\r\\n
    <zero or more payload lines>\\r\\n
    ok\\r\\n

where ``<token>`` is the first word of the command.  A session must start
with ``M601 S1`` (take control) and should end with ``M602`` (release
control); the printer accepts a single controlling client at a time.

A :class:`Connection` carries one command at a time.  It is not
thread-safe: callers that share one must serialise access themselves.
"""

from __future__ import annotations

import enum
import logging
import socket
import time
from typing import Any

from forgelink.errors import (
    AlreadyControlled,
    CommandTimeout,
    ConnectFailure,
    ConnectionClosedError,
    FramingError,
    PrinterError,
    ProtocolViolation,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SERVICE_PORT = 8899
DEFAULT_CONNECT_TIMEOUT: float = 5.0

_HELLO_COMMAND = "M601 S1"
_HELLO_ACCEPTED = "Control Success."
_HELLO_REFUSED = "Control failed."
_BYE_COMMAND = "M602"
_BYE_ACCEPTED = "Control Release."

_FRAME_SUFFIX = b"\r\nok\r\n"
_OK_LINE = b"ok\r\n"
_CRLF = b"\r\n"
_READ_SIZE = 4096


class _State(enum.Enum):
    OPEN = "open"
    CLOSING = "closing"
    UNUSABLE = "unusable"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------


def command_token(command_line: str) -> str:
    """Return the leading word of *command_line* (``"M146"`` for ``"M146 r0"``)."""
    parts = command_line.split(None, 1)
    if not parts:
        raise ValueError("command must not be empty")
    return parts[0]


def frame_prefix(token: str) -> bytes:
    """Return the header the printer sends before answering *token*."""
    return f"CMD {token} Received.\r\n".encode("utf-8")


def frame_complete(prefix: bytes, buf: bytes) -> bool:
    """Whether *buf* holds a whole frame.

    An empty payload frame (``CMD M26 Received.\\r\\nok\\r\\n``) shares the
    prefix's trailing CRLF with the suffix, so the minimum length is the
    prefix plus ``ok\\r\\n``.
    """
    return len(buf) >= len(prefix) + len(_OK_LINE) and buf.endswith(_FRAME_SUFFIX)


def extract_payload(token: str, raw: bytes) -> str:
    """Validate the frame in *raw* and return its interior text.

    The interior is everything between the prefix and the final ``ok``
    line, with one trailing CRLF removed.

    Raises:
        FramingError: If the prefix or the suffix is missing.
    """
    prefix = frame_prefix(token)
    if not raw.startswith(prefix) or not frame_complete(prefix, raw):
        raise FramingError(f"unknown {token} reply: {raw!r}", raw=raw)
    interior = raw[len(prefix) : len(raw) - len(_OK_LINE)]
    if interior.endswith(_CRLF):
        interior = interior[: -len(_CRLF)]
    return interior.decode("utf-8", errors="replace")


def _prefix_diverged(prefix: bytes, buf: bytes) -> bool:
    n = min(len(prefix), len(buf))
    return buf[:n] != prefix[:n]


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class Connection:
    """One control session over a byte stream.

    Args:
        stream: A connected socket, or any object offering ``sendall``,
            ``recv``, ``settimeout`` and ``close`` with socket semantics.
        address: ``host:port`` label used in log and error messages.
        timeout: Default deadline in seconds for each reply; ``None`` waits
            indefinitely.

    After a timeout, a framing error or an I/O error the connection is
    unusable: :meth:`send` refuses further commands and :meth:`close` only
    releases the stream.
    """

    def __init__(self, stream: Any, address: str = "", *, timeout: float | None = None) -> None:
        self._stream = stream
        self._address = address
        self._timeout = timeout
        self._state = _State.OPEN

    @property
    def address(self) -> str:
        return self._address

    @property
    def is_open(self) -> bool:
        """Whether commands can still be sent."""
        return self._state is _State.OPEN

    @property
    def is_closed(self) -> bool:
        return self._state is _State.CLOSED

    # -- commands -----------------------------------------------------------

    def send(self, command_line: str, *, timeout: float | None = None) -> str:
        """Send one command and return the trimmed payload of its reply.

        Args:
            command_line: Command and arguments without the ``~`` marker,
                e.g. ``"M146 r0 g0 b0 F0"``.
            timeout: Overrides the connection's default deadline.

        Raises:
            ConnectionClosedError: If the connection is closed or unusable.
            FramingError: If the reply is not a well-formed frame.
            CommandTimeout: If no complete frame arrives in time.
            PrinterError: On socket errors.
        """
        if self._state is not _State.OPEN:
            raise ConnectionClosedError(
                f"cannot send {command_line!r}: connection to {self._address} is {self._state.value}"
            )
        return self._exchange(command_line, self._timeout if timeout is None else timeout)

    def take_control(self) -> None:
        """Send the hello command that must open every session.

        Raises:
            AlreadyControlled: If another client holds the session.
            ProtocolViolation: If the printer answers anything else.
        """
        payload = self.send(_HELLO_COMMAND)
        if payload == _HELLO_REFUSED:
            raise AlreadyControlled(
                "printer already has a connection; disconnect the other client first"
            )
        if payload != _HELLO_ACCEPTED:
            raise ProtocolViolation(f"failed to take control: {payload!r}", payload=payload)

    # -- teardown -----------------------------------------------------------

    def close(self) -> None:
        """Release control and close the stream.

        The stream is closed even when the bye command fails.  If both fail,
        the bye error is the one raised.

        Raises:
            ConnectionClosedError: If the connection was already closed.
            ProtocolViolation: If the printer does not acknowledge the release.
        """
        if self._state is _State.CLOSED:
            raise ConnectionClosedError(f"connection to {self._address} already closed")

        error: PrinterError | None = None
        if self._state is _State.OPEN:
            self._state = _State.CLOSING
            try:
                payload = self._exchange(_BYE_COMMAND, self._timeout)
                if payload != _BYE_ACCEPTED:
                    raise ProtocolViolation(f"failed to release control: {payload!r}", payload=payload)
            except PrinterError as exc:
                error = exc

        try:
            self._stream.close()
        except OSError as exc:
            if error is None:
                error = PrinterError(f"failed to close connection to {self._address}: {exc}", cause=exc)
            else:
                logger.debug("Failed to close stream to %s: %s", self._address, exc)
        finally:
            self._state = _State.CLOSED

        logger.info("Disconnected from printer at %s", self._address)
        if error is not None:
            raise error

    def abort(self) -> None:
        """Close the stream without releasing control.

        Used when the session never started or the stream can no longer be
        trusted.  Does nothing if the connection is already closed.
        """
        if self._state is _State.CLOSED:
            return
        try:
            self._stream.close()
        except OSError as exc:
            logger.debug("Failed to close stream to %s on abort: %s", self._address, exc)
        finally:
            self._state = _State.CLOSED

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._state is not _State.CLOSED:
            self.close()

    def __repr__(self) -> str:
        return f"<Connection address={self._address!r} state={self._state.value}>"

    # -- internals ----------------------------------------------------------

    def _exchange(self, command_line: str, timeout: float | None) -> str:
        if "\n" in command_line or "\r" in command_line:
            raise ValueError(f"command must be a single line: {command_line!r}")
        token = command_token(command_line)
        # One deadline covers both the write and the reply.
        deadline = None if timeout is None else time.monotonic() + timeout
        self._stream.settimeout(timeout)

        # "~" is required; a bare "\n" terminator is enough.
        try:
            self._stream.sendall(f"~{command_line}\n".encode("utf-8"))
        except socket.timeout as exc:
            self._state = _State.UNUSABLE
            raise CommandTimeout(
                f"timeout ({timeout}s) sending {command_line!r} to {self._address}",
                raw=b"",
                cause=exc,
            ) from exc
        except OSError as exc:
            self._state = _State.UNUSABLE
            raise PrinterError(
                f"failed to send {command_line!r} to {self._address}: {exc}",
                cause=exc,
            ) from exc
        logger.debug("TX %s: %s", self._address, command_line)

        raw = self._read_frame(command_line, token, timeout, deadline)
        try:
            payload = extract_payload(token, raw)
        except FramingError:
            self._state = _State.UNUSABLE
            raise
        logger.debug("RX %s: %r", self._address, payload)
        return payload

    def _read_frame(
        self,
        command_line: str,
        token: str,
        timeout: float | None,
        deadline: float | None,
    ) -> bytes:
        """Accumulate reads until a whole frame, a bad prefix, EOF or the deadline."""
        prefix = frame_prefix(token)
        buf = bytearray()

        while not frame_complete(prefix, buf):
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._state = _State.UNUSABLE
                    raise CommandTimeout(
                        f"timeout ({timeout}s) waiting for {token} reply; received so far: {bytes(buf)!r}",
                        raw=bytes(buf),
                    )
                self._stream.settimeout(remaining)
            try:
                chunk = self._stream.recv(_READ_SIZE)
            except socket.timeout as exc:
                self._state = _State.UNUSABLE
                raise CommandTimeout(
                    f"timeout ({timeout}s) waiting for {token} reply; received so far: {bytes(buf)!r}",
                    raw=bytes(buf),
                    cause=exc,
                ) from exc
            except OSError as exc:
                self._state = _State.UNUSABLE
                raise PrinterError(
                    f"read error after sending {command_line!r} to {self._address}: {exc}",
                    cause=exc,
                ) from exc

            if not chunk:
                self._state = _State.UNUSABLE
                raise FramingError(
                    f"connection closed before {token} reply completed: {bytes(buf)!r}",
                    raw=bytes(buf),
                )
            buf += chunk
            if _prefix_diverged(prefix, buf):
                self._state = _State.UNUSABLE
                raise FramingError(f"unknown {token} reply: {bytes(buf)!r}", raw=bytes(buf))

        return bytes(buf)


# ---------------------------------------------------------------------------
# Dialing
# ---------------------------------------------------------------------------


def connect(
    address: str,
    *,
    port: int = SERVICE_PORT,
    timeout: float | None = None,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> Connection:
    """Open a control session with the printer at *address*.

    Args:
        address: Printer IP address or hostname.
        port: TCP service port.
        timeout: Default per-command deadline for the returned connection.
        connect_timeout: Deadline for establishing the TCP connection.

    Raises:
        ConnectFailure: If the TCP connection cannot be established.
        AlreadyControlled: If another client holds the session.
        ProtocolViolation: If the hello handshake gets an unknown answer.

    The stream is closed before any handshake error propagates.
    """
    try:
        sock = socket.create_connection((address, port), timeout=connect_timeout)
    except OSError as exc:
        raise ConnectFailure(f"failed to connect to {address}:{port}: {exc}", cause=exc) from exc

    conn = Connection(sock, f"{address}:{port}", timeout=timeout)
    try:
        conn.take_control()
    except BaseException:
        conn.abort()
        raise
    logger.info("Connected to printer at %s:%d", address, port)
    return conn

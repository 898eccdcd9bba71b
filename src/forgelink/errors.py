"""Exceptions raised by forgelink.

Every error derives from :class:`PrinterError` so callers can catch the
whole family at once.  Errors that stem from an unexpected reply carry the
raw protocol text, which is usually enough to tell a firmware variant from
a transport bug without a packet capture.

Nothing in forgelink retries on its own: resending a command after an
unknown-state failure could repeat a physical action such as stopping a job.
"""

from __future__ import annotations

from typing import Any


class PrinterError(Exception):
    """Base exception for all printer-related errors.

    *cause* keeps the lower-level exception (socket error, decode error)
    that triggered this one, when there is one.
    """

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ConnectFailure(PrinterError):
    """The TCP connection to the printer could not be established."""


class AlreadyControlled(PrinterError):
    """Another client holds the printer's control session."""


class ProtocolViolation(PrinterError):
    """A handshake command returned an unrecognised payload."""

    def __init__(self, message: str, *, payload: str, cause: Exception | None = None) -> None:
        super().__init__(message, cause=cause)
        self.payload = payload


class FramingError(PrinterError):
    """A response was not wrapped in the ``CMD ... Received.`` / ``ok`` frame."""

    def __init__(self, message: str, *, raw: bytes, cause: Exception | None = None) -> None:
        super().__init__(message, cause=cause)
        self.raw = raw


class ParseFailure(PrinterError):
    """A framed payload did not match the grammar of its command."""

    def __init__(self, message: str, *, text: str, cause: Exception | None = None) -> None:
        super().__init__(message, cause=cause)
        self.text = text


class CommandTimeout(PrinterError):
    """No complete frame arrived before the caller's deadline.

    The connection is unusable afterwards; the wire format has no way to
    resynchronise in the middle of a frame.
    """

    def __init__(self, message: str, *, raw: bytes = b"", cause: Exception | None = None) -> None:
        super().__init__(message, cause=cause)
        self.raw = raw


class ConnectionClosedError(PrinterError):
    """The connection was used after it was closed or became unusable."""


class DiscoveryFailure(PrinterError):
    """A discovery socket could not be set up or the probe could not be sent."""


class NoPeersFound(PrinterError):
    """Discovery finished without any printer answering."""


class AmbiguousPeers(PrinterError):
    """Discovery found more than one printer where exactly one was required."""

    def __init__(self, message: str, *, peers: list[Any]) -> None:
        super().__init__(message)
        self.peers = peers

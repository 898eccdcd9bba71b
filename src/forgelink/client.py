"""High-level client for one Adventurer 3 printer.

:class:`Printer` groups the named commands on top of a
:class:`~forgelink.transport.Connection`: each method sends one command,
hands the payload to the matching parser in :mod:`forgelink.replies` and
returns the parsed record.

Example::

    from forgelink import Printer

    with Printer.open("192.168.1.50", timeout=10) as printer:
        print(printer.query_temperatures())
        printer.set_light(True)
"""

from __future__ import annotations

import logging
from typing import Any

from forgelink import replies
from forgelink.errors import PrinterError
from forgelink.models import (
    ExtruderPosition,
    JobStatus,
    PrinterInfo,
    PrinterStatus,
    Temperatures,
)
from forgelink.transport import SERVICE_PORT, Connection, connect

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

CMD_INFO = "M115"
CMD_STATUS = "M119"
CMD_POSITION = "M114"
CMD_TEMPERATURES = "M105"
CMD_JOB_STATUS = "M27"

# The firmware only accepts lowercase channel letters.
CMD_LIGHT_ON = "M146 r255 g255 b255 F0"
CMD_LIGHT_OFF = "M146 r0 g0 b0 F0"
CMD_FAN_ON = "M106 P0 S255"
CMD_FAN_OFF = "M107 P0"
CMD_STOP = "M26"


class Printer:
    """A controlled session with one printer.

    Args:
        connection: An open connection whose handshake already succeeded.
            The printer takes ownership and closes it in :meth:`close`.
    """

    def __init__(self, connection: Connection) -> None:
        self._conn = connection

    @classmethod
    def open(
        cls,
        address: str,
        *,
        port: int = SERVICE_PORT,
        timeout: float | None = None,
    ) -> Printer:
        """Connect to the printer at *address* and take control of it.

        Raises:
            ConnectFailure: If the printer is unreachable.
            AlreadyControlled: If another client holds the session.
        """
        return cls(connect(address, port=port, timeout=timeout))

    @property
    def connection(self) -> Connection:
        return self._conn

    @property
    def address(self) -> str:
        return self._conn.address

    # -- queries ------------------------------------------------------------

    def query_info(self) -> PrinterInfo:
        """Return identity, firmware and build volume (``M115``)."""
        return replies.parse_info(self._conn.send(CMD_INFO))

    def query_status(self) -> PrinterStatus:
        """Return endstops and machine state (``M119``)."""
        return replies.parse_status(self._conn.send(CMD_STATUS))

    def query_position(self) -> ExtruderPosition:
        """Return the current extruder position (``M114``)."""
        return replies.parse_position(self._conn.send(CMD_POSITION))

    def query_temperatures(self) -> Temperatures:
        """Return extruder and bed temperatures (``M105``)."""
        return replies.parse_temperatures(self._conn.send(CMD_TEMPERATURES))

    def query_job_status(self) -> JobStatus:
        """Return the SD print progress text (``M27``)."""
        return replies.parse_job_status(self._conn.send(CMD_JOB_STATUS))

    # -- actions ------------------------------------------------------------

    def set_light(self, on: bool) -> None:
        """Switch the chamber light fully on or off."""
        self._action(CMD_LIGHT_ON if on else CMD_LIGHT_OFF)

    def set_fan(self, on: bool) -> None:
        """Switch the part cooling fan fully on or off."""
        self._action(CMD_FAN_ON if on else CMD_FAN_OFF)

    def stop_job(self) -> None:
        """Stop the current print job."""
        self._action(CMD_STOP)

    def send_raw(self, command_line: str, *, timeout: float | None = None) -> str:
        """Send an arbitrary command and return its unparsed payload.

        The reply is still checked for correct framing.
        """
        return self._conn.send(command_line, timeout=timeout)

    def _action(self, command_line: str) -> None:
        replies.expect_empty(command_line, self._conn.send(command_line))
        logger.info("Sent %s to %s", command_line, self._conn.address)

    # -- lifecycle ----------------------------------------------------------

    def close(self) -> None:
        """Release control of the printer and close the connection."""
        self._conn.close()

    def __enter__(self) -> Printer:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if self._conn.is_closed:
            return
        if exc_type is None:
            self.close()
            return
        # The in-flight exception wins over a failed release.
        try:
            self.close()
        except PrinterError as close_exc:
            logger.debug("Failed to close %s after error: %s", self._conn.address, close_exc)

    def __repr__(self) -> str:
        return f"<Printer address={self._conn.address!r}>"

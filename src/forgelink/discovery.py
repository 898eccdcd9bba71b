"""Printer discovery over UDP.

The Adventurer 3 listens on the multicast address ``225.0.0.9:19000``.  A
probe of 8 bytes is sent there (local IPv4 address, listen port, two
reserved zero bytes) and every printer answers with a datagram holding its
NUL-padded name.  In practice the firmware seems to ignore the probe's
content and replies to the datagram's source address; the address/port
encoding and the listening strategy are therefore parameters rather than
fixed choices.

Each :func:`discover` call owns one background reader thread per socket,
and every one is joined before the call returns.
"""

from __future__ import annotations

import enum
import logging
import socket
import threading
from typing import Literal

from forgelink.errors import AmbiguousPeers, DiscoveryFailure, NoPeersFound
from forgelink.models import DiscoveredPeer

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MULTICAST_ADDRESS = "225.0.0.9"
DISCOVERY_PORT = 19000
DEFAULT_WINDOW: float = 1.0

_RECV_SIZE = 1024
# How often the reader wakes up to check whether it should stop.
_POLL_INTERVAL: float = 0.05


class DiscoveryMode(enum.Enum):
    """Which sockets send the probe and read the replies.

    ``SEND_ONLY`` uses one socket for both.  The other two modes add a
    dedicated listener whose address goes into the probe; the sending
    socket is read as well, since the firmware answers the datagram's
    source.  The listener is bound to an ephemeral port, so a multicast
    membership only delivers group traffic addressed to that port.
    """

    SEND_ONLY = "send_only"  # the sending socket also receives the replies
    BROADCAST_LISTEN = "broadcast_listen"  # dedicated listener, broadcast-enabled sender
    MULTICAST_JOIN = "multicast_join"  # dedicated listener joined to the multicast group


# ---------------------------------------------------------------------------
# Probe and reply encoding
# ---------------------------------------------------------------------------


def build_probe(ip: str, port: int, byteorder: Literal["big", "little"] = "big") -> bytes:
    """Return the 8-byte probe announcing *ip*:*port* as the reply target."""
    try:
        packed_ip = socket.inet_aton(ip)
    except OSError as exc:
        raise ValueError(f"not an IPv4 address: {ip!r}") from exc
    return packed_ip + port.to_bytes(2, byteorder) + b"\x00\x00"


def decode_name(payload: bytes) -> str:
    """Return the printer name carried by a reply datagram.

    The name stops at the first NUL byte.  Names that are not printable
    UTF-8 are returned hex-encoded.
    """
    raw = payload.split(b"\x00", 1)[0]
    try:
        name = raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.hex()
    return name if name.isprintable() else raw.hex()


def _local_ip(target: str) -> str:
    """Determine the local IPv4 address used to reach *target*."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            # Nothing is sent; this only selects the outbound interface.
            s.connect((target, DISCOVERY_PORT))
            return s.getsockname()[0]
    except OSError as exc:
        logger.debug("Local address detection failed: %s", exc)
        return "0.0.0.0"


# ---------------------------------------------------------------------------
# Sockets
# ---------------------------------------------------------------------------


def _open_sockets(mode: DiscoveryMode, group: str) -> tuple[socket.socket, socket.socket]:
    """Create and bind the ``(sender, listener)`` pair for *mode*.

    In :attr:`DiscoveryMode.SEND_ONLY` both items are the same socket.
    Nothing is left open when this raises.
    """
    try:
        sender = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    except OSError as exc:
        raise DiscoveryFailure(f"failed to create discovery socket: {exc}", cause=exc) from exc

    listener: socket.socket | None = None
    try:
        sender.bind(("", 0))
        if mode is DiscoveryMode.SEND_ONLY:
            return sender, sender
        if mode is DiscoveryMode.BROADCAST_LISTEN:
            sender.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)

        listener = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        listener.bind(("", 0))
        if mode is DiscoveryMode.MULTICAST_JOIN:
            membership = socket.inet_aton(group) + socket.inet_aton("0.0.0.0")
            listener.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
        return sender, listener
    except OSError as exc:
        if listener is not None:
            listener.close()
        sender.close()
        raise DiscoveryFailure(f"failed to set up {mode.value} discovery socket: {exc}", cause=exc) from exc


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------


class _ReplyCollector:
    """Background readers accumulating reply datagrams into peers.

    One thread per socket.  Collection is done when every reader has ended,
    or as soon as one peer arrived if *first* is set.
    """

    def __init__(self, socks: tuple[socket.socket, ...], *, first: bool) -> None:
        self._socks = socks
        self._first = first
        self._stop_event = threading.Event()
        self._done_event = threading.Event()
        self._lock = threading.Lock()
        self._peers: dict[str, DiscoveredPeer] = {}
        self._running = len(socks)
        self._threads = [
            threading.Thread(target=self._run, args=(sock,), daemon=True, name="forgelink-discovery")
            for sock in socks
        ]
        self._started: list[threading.Thread] = []

    @property
    def peers(self) -> list[DiscoveredPeer]:
        with self._lock:
            return list(self._peers.values())

    def start(self) -> None:
        for sock, thread in zip(self._socks, self._threads):
            sock.settimeout(_POLL_INTERVAL)
            thread.start()
            self._started.append(thread)

    def wait(self, window: float) -> None:
        """Block until the window elapses or the readers finished early."""
        self._done_event.wait(timeout=window)

    def stop(self) -> None:
        self._stop_event.set()
        for thread in self._started:
            thread.join()

    def _run(self, sock: socket.socket) -> None:
        try:
            while not self._stop_event.is_set():
                try:
                    data, source = sock.recvfrom(_RECV_SIZE)
                except socket.timeout:
                    continue
                except OSError as exc:
                    # A failing socket ends this reader; there is no retry.
                    logger.debug("Discovery reader stopped: %s", exc)
                    break

                peer = DiscoveredPeer(address=source[0], name=decode_name(data), payload=bytes(data))
                logger.debug("Discovery reply from %s: %r", source, data)
                with self._lock:
                    self._peers.setdefault(peer.address, peer)
                if self._first:
                    self._stop_event.set()
                    self._done_event.set()
                    break
        finally:
            with self._lock:
                self._running -= 1
                if self._running == 0:
                    self._done_event.set()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def discover(
    mode: DiscoveryMode = DiscoveryMode.SEND_ONLY,
    window: float = DEFAULT_WINDOW,
    *,
    first: bool = False,
    address: str = MULTICAST_ADDRESS,
    port: int = DISCOVERY_PORT,
    byteorder: Literal["big", "little"] = "big",
) -> list[DiscoveredPeer]:
    """Probe the network and collect the printers that answer.

    Args:
        mode: Which sockets send the probe and read the replies.
        window: Seconds to collect replies for.
        first: Return as soon as one printer answered.
        address: Destination of the probe.
        port: Destination port of the probe.
        byteorder: Encoding of the listen port inside the probe.

    Returns:
        One peer per answering address, in arrival order.  Arrival order
        says nothing about distance or preference.  An empty list means no
        printer answered in time.

    Raises:
        DiscoveryFailure: If a socket cannot be set up or the probe cannot
            be sent.
    """
    if window < 0:
        raise ValueError(f"window must not be negative: {window}")

    sender, listener = _open_sockets(mode, address)
    socks = (sender,) if sender is listener else (listener, sender)
    collector = _ReplyCollector(socks, first=first)
    try:
        listen_ip, listen_port = listener.getsockname()[:2]
        if listen_ip == "0.0.0.0":
            listen_ip = _local_ip(address)
        probe = build_probe(listen_ip, listen_port, byteorder)
        logger.debug("Listening on %s:%d (%s)", listen_ip, listen_port, mode.value)

        # Start reading before the probe leaves so no early reply is missed.
        collector.start()
        logger.debug("Sending probe %s to %s:%d", probe.hex(), address, port)
        try:
            sender.sendto(probe, (address, port))
        except OSError as exc:
            raise DiscoveryFailure(
                f"failed to send discovery probe to {address}:{port}: {exc}",
                cause=exc,
            ) from exc
        collector.wait(window)
    finally:
        collector.stop()
        listener.close()
        if sender is not listener:
            sender.close()

    peers = collector.peers
    logger.info("Discovered %d printer(s)", len(peers))
    return peers


def discover_one(
    mode: DiscoveryMode = DiscoveryMode.SEND_ONLY,
    window: float = DEFAULT_WINDOW,
    **kwargs: object,
) -> DiscoveredPeer:
    """Discover exactly one printer.

    Raises:
        NoPeersFound: If nobody answered.
        AmbiguousPeers: If more than one printer answered.
        DiscoveryFailure: See :func:`discover`.
    """
    peers = discover(mode, window, **kwargs)  # type: ignore[arg-type]
    if not peers:
        raise NoPeersFound("no printer found on network")
    if len(peers) > 1:
        listing = "\n".join(sorted(f"- {peer}" for peer in peers))
        raise AmbiguousPeers(
            f"more than one printer found on network; specify which one you want:\n{listing}",
            peers=peers,
        )
    return peers[0]

"""SSDP (UPnP multicast discovery) port and adapters.

Provides :class:`SsdpPort` (Protocol) and three implementations:

- :class:`SsdpAdvertiser` — real asyncio datagram adapter
- :class:`MockSsdpAdvertiser` — test double that records calls
- :class:`NullSsdpAdvertiser` — silent no-op adapter (dry-run)

Wire format (multicast group ``239.255.255.250:1900``)::

    NOTIFY * HTTP/1.1               NOTIFY * HTTP/1.1
    HOST: 239.255.255.250:1900      HOST: 239.255.255.250:1900
    NT: <search target>             NT: <search target>
    NTS: ssdp:alive                 NTS: ssdp:byebye
    USN: <usn>                      USN: <usn>
    LOCATION: <url>
    SERVER: <banner>
    CACHE-CONTROL: max-age=<ttl>

The real adapter also answers ``M-SEARCH`` queries whose ``ST`` is
``ssdp:all`` or the advertised search target with a unicast
``HTTP/1.1 200 OK``.  That responder only reads the immutable
:class:`AdvertisementRecord`.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from huebridge._errors import AdvertiseError
from huebridge._identity import BridgeIdentity

logger = logging.getLogger(__name__)

SSDP_MULTICAST_ADDRESS = "239.255.255.250"
SSDP_PORT = 1900
SEARCH_TARGET = "urn:schemas-upnp-org:device:Basic:1"
USN_PREFIX = "38323636-4558-4dda-9188-"
SERVER_BANNER = "FreeRTOS/6.0.5, UPnP/1.0, IpBridge/0.1"
DEFAULT_MAX_AGE = 1200
MULTICAST_TTL = 2

# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AdvertisementRecord:
    """Immutable set of values sent in every SSDP message."""

    search_target: str
    usn: str
    location: str
    server: str
    max_age: int

    @classmethod
    def from_identity(
        cls,
        identity: BridgeIdentity,
        *,
        http_port: int = 80,
        max_age: int = DEFAULT_MAX_AGE,
    ) -> AdvertisementRecord:
        """Build the record for *identity*.

        The location omits the port when it is the HTTP default.
        """
        host = identity.local_address
        if http_port != 80:
            host = f"{host}:{http_port}"
        return cls(
            search_target=SEARCH_TARGET,
            usn=f"{USN_PREFIX}{identity.compact_address}",
            location=f"http://{host}/description.xml",
            server=SERVER_BANNER,
            max_age=max_age,
        )


# ---------------------------------------------------------------------------
# Message codec
# ---------------------------------------------------------------------------


def _encode(start_line: str, headers: list[tuple[str, str]]) -> bytes:
    lines = [start_line]
    for name, value in headers:
        lines.append(f"{name}: {value}" if value else f"{name}:")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")


def build_alive(record: AdvertisementRecord) -> bytes:
    """``NOTIFY`` with ``NTS: ssdp:alive``."""
    return _encode(
        "NOTIFY * HTTP/1.1",
        [
            ("HOST", f"{SSDP_MULTICAST_ADDRESS}:{SSDP_PORT}"),
            ("NT", record.search_target),
            ("NTS", "ssdp:alive"),
            ("USN", record.usn),
            ("LOCATION", record.location),
            ("SERVER", record.server),
            ("CACHE-CONTROL", f"max-age={record.max_age}"),
        ],
    )


def build_byebye(record: AdvertisementRecord) -> bytes:
    """``NOTIFY`` with ``NTS: ssdp:byebye``."""
    return _encode(
        "NOTIFY * HTTP/1.1",
        [
            ("HOST", f"{SSDP_MULTICAST_ADDRESS}:{SSDP_PORT}"),
            ("NT", record.search_target),
            ("NTS", "ssdp:byebye"),
            ("USN", record.usn),
        ],
    )


def build_search_response(record: AdvertisementRecord) -> bytes:
    """Unicast answer to a matching ``M-SEARCH``."""
    return _encode(
        "HTTP/1.1 200 OK",
        [
            ("CACHE-CONTROL", f"max-age={record.max_age}"),
            ("EXT", ""),
            ("LOCATION", record.location),
            ("SERVER", record.server),
            ("ST", record.search_target),
            ("USN", record.usn),
        ],
    )


def parse_search_target(data: bytes) -> str | None:
    """Return the ``ST`` header of an ``M-SEARCH`` request.

    Returns ``None`` for anything that is not an ``M-SEARCH`` with an
    ``ST`` header (including NOTIFYs from other devices).
    """
    text = data.decode("utf-8", errors="replace")
    lines = text.split("\r\n") if "\r\n" in text else text.split("\n")
    if not lines or not lines[0].upper().startswith("M-SEARCH "):
        return None
    for line in lines[1:]:
        name, sep, value = line.partition(":")
        if sep and name.strip().upper() == "ST":
            return value.strip()
    return None


def search_matches(record: AdvertisementRecord, search_target: str) -> bool:
    """Whether an ``M-SEARCH`` for *search_target* should be answered."""
    return search_target == "ssdp:all" or search_target == record.search_target


# ---------------------------------------------------------------------------
# Port (Protocol)
# ---------------------------------------------------------------------------


@runtime_checkable
class SsdpPort(Protocol):
    """Port contract for the SSDP advertisement.

    ``start`` binds and joins the multicast group; ``alive`` / ``bye``
    multicast the NOTIFY messages; ``close`` releases the socket.
    """

    async def start(self, record: AdvertisementRecord, local_address: str) -> None: ...

    async def alive(self) -> None: ...

    async def bye(self) -> None: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Null adapter
# ---------------------------------------------------------------------------


@dataclass
class NullSsdpAdvertiser:
    """Silent no-op SSDP adapter used for ``--dry-run``."""

    async def start(self, record: AdvertisementRecord, local_address: str) -> None:
        """Log what would be advertised."""
        logger.debug(
            "NullSsdpAdvertiser.start(%s on %s) — discarded",
            record.usn,
            local_address,
        )

    async def alive(self) -> None:
        """Silently discard an alive notification."""
        logger.debug("NullSsdpAdvertiser.alive() — discarded")

    async def bye(self) -> None:
        """Silently discard a byebye notification."""
        logger.debug("NullSsdpAdvertiser.bye() — discarded")

    async def close(self) -> None:
        """Nothing to release."""
        logger.debug("NullSsdpAdvertiser.close() — discarded")


# ---------------------------------------------------------------------------
# Mock / test-double adapter
# ---------------------------------------------------------------------------


@dataclass
class MockSsdpAdvertiser:
    """In-memory test double that records SSDP interactions.

    Every call appends an entry (``"ssdp.start"``, ``"ssdp.alive"``,
    ``"ssdp.bye"``, ``"ssdp.close"``) to ``calls``.  Pass the same list
    to a :class:`~huebridge._mdns.MockMdnsPublisher` to assert the
    ordering across both adapters.

    Set ``start_error`` / ``alive_error`` / ``bye_error`` to make the
    corresponding call raise after recording it.
    """

    calls: list[str] = field(default_factory=list)
    record: AdvertisementRecord | None = None
    local_address: str | None = None
    start_error: Exception | None = None
    alive_error: Exception | None = None
    bye_error: Exception | None = None

    async def start(self, record: AdvertisementRecord, local_address: str) -> None:
        """Record the start call."""
        self.calls.append("ssdp.start")
        if self.start_error is not None:
            raise self.start_error
        self.record = record
        self.local_address = local_address

    async def alive(self) -> None:
        """Record an alive notification."""
        self.calls.append("ssdp.alive")
        if self.alive_error is not None:
            raise self.alive_error

    async def bye(self) -> None:
        """Record a byebye notification."""
        self.calls.append("ssdp.bye")
        if self.bye_error is not None:
            raise self.bye_error

    async def close(self) -> None:
        """Record the socket release."""
        self.calls.append("ssdp.close")

    # -- Test helpers -------------------------------------------------------

    def count(self, call: str) -> int:
        """Number of recorded ``ssdp.<call>`` entries."""
        return self.calls.count(f"ssdp.{call}")

    @property
    def alive_count(self) -> int:
        """Number of alive notifications sent."""
        return self.count("alive")

    @property
    def bye_count(self) -> int:
        """Number of byebye notifications sent."""
        return self.count("bye")

    @property
    def close_count(self) -> int:
        """Number of socket releases."""
        return self.count("close")


# ---------------------------------------------------------------------------
# Real adapter
# ---------------------------------------------------------------------------


class _SsdpProtocol(asyncio.DatagramProtocol):
    """Answers ``M-SEARCH`` queries for the advertised record."""

    def __init__(self, record: AdvertisementRecord) -> None:
        self._record = record
        self._response = build_search_response(record)
        self._transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        search_target = parse_search_target(data)
        if search_target is None or not search_matches(self._record, search_target):
            return
        logger.debug("M-SEARCH for %s from %s:%d", search_target, *addr)
        if self._transport is not None:
            self._transport.sendto(self._response, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning("SSDP socket error: %s", exc)


@dataclass
class SsdpAdvertiser:
    """Production SSDP adapter on an asyncio datagram endpoint.

    Binds ``0.0.0.0:1900`` with address reuse, joins the multicast
    group on *local_address* only, and sends NOTIFYs from that
    interface.
    """

    multicast_ttl: int = MULTICAST_TTL

    _record: AdvertisementRecord | None = field(default=None, init=False, repr=False)
    _transport: asyncio.DatagramTransport | None = field(
        default=None,
        init=False,
        repr=False,
    )

    async def start(self, record: AdvertisementRecord, local_address: str) -> None:
        """Bind the socket and join the SSDP multicast group.

        Raises:
            AdvertiseError: If the socket cannot be bound or the group
                cannot be joined (e.g. multicast not permitted).
        """
        try:
            sock = self._open_socket(local_address)
        except OSError as exc:
            msg = f"Cannot open SSDP socket on {local_address}:{SSDP_PORT}: {exc}"
            raise AdvertiseError(msg) from exc

        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _SsdpProtocol(record),
                sock=sock,
            )
        except OSError as exc:
            sock.close()
            msg = f"Cannot start SSDP endpoint: {exc}"
            raise AdvertiseError(msg) from exc

        self._record = record
        self._transport = transport
        logger.info("SSDP listening on %s:%d (%s)", local_address, SSDP_PORT, record.usn)

    def _open_socket(self, local_address: str) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            sock.bind(("", SSDP_PORT))
            membership = socket.inet_aton(SSDP_MULTICAST_ADDRESS) + socket.inet_aton(
                local_address,
            )
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
            sock.setsockopt(
                socket.IPPROTO_IP,
                socket.IP_MULTICAST_IF,
                socket.inet_aton(local_address),
            )
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.multicast_ttl)
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        return sock

    def _send(self, build: Callable[[AdvertisementRecord], bytes]) -> str:
        if self._transport is None or self._record is None:
            msg = "SsdpAdvertiser is not started"
            raise RuntimeError(msg)
        self._transport.sendto(build(self._record), (SSDP_MULTICAST_ADDRESS, SSDP_PORT))
        return self._record.usn

    async def alive(self) -> None:
        """Multicast ``ssdp:alive``."""
        usn = self._send(build_alive)
        logger.debug("Sent ssdp:alive for %s", usn)

    async def bye(self) -> None:
        """Multicast ``ssdp:byebye``."""
        usn = self._send(build_byebye)
        logger.debug("Sent ssdp:byebye for %s", usn)

    async def close(self) -> None:
        """Close the socket.  Idempotent."""
        if self._transport is not None:
            self._transport.close()
            self._transport = None

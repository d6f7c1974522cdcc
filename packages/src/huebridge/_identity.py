"""Bridge identity derived from host network state.

Provides the immutable :class:`BridgeIdentity` value object and
:func:`resolve_identity`, which builds it from an interface snapshot
plus a route probe.

Hardware-address selection walks the interfaces in enumeration order
and picks the first one that is

1. up,
2. carrying a non-empty, well-formed hardware address,
3. not locally administered (bit ``0x02`` of the first octet clear),
4. not named like a virtual adapter (Hyper-V ``vEthernet``, docker,
   libvirt, VMware, VirtualBox bridges).

The local address comes from a route probe (a UDP socket "connected"
to a public address, read back with ``getsockname()``), falling back
to the first non-loopback IPv4 address of an up interface.  The probe
never sends a packet.

Interface enumeration sits behind :class:`InterfaceSource` so tests
can feed a fixed snapshot (:class:`StaticInterfaceSource`) instead of
the host's real interfaces (:class:`PsutilInterfaceSource`).
"""

from __future__ import annotations

import ipaddress
import logging
import re
import socket
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import psutil

from huebridge._errors import ResolutionError, ResolutionErrorKind

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TARGET = "8.8.8.8"

_CANONICAL_ADDRESS = re.compile(r"^(?:[0-9a-f]{2}:){5}[0-9a-f]{2}$")
_RAW_ADDRESS_SEPARATORS = re.compile(r"[:\-]")
_VIRTUAL_ADAPTER_NAMES = re.compile(
    r"vEthernet|^docker|^veth|^virbr|^vmnet|^vboxnet|^br-",
)
_LOCALLY_ADMINISTERED_BIT = 0x02

AddressProbe = Callable[[], str]
"""Returns the local IPv4 address the OS would route from, or raises ``OSError``."""

# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NetworkInterface:
    """One host network interface as seen at enumeration time."""

    name: str
    is_up: bool
    hardware_address: str = ""
    ipv4_addresses: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class BridgeIdentity:
    """Immutable identity of the emulated bridge.

    Built once at startup and shared by reference with every consumer
    (renderer, advertiser, HTTP handlers); no locking is needed.

    Attributes:
        hardware_address: Canonical lowercase colon-separated MAC.
        local_address: IPv4 address other LAN hosts reach us on.
        short_id: Last six hex characters of the hardware address.
            Derived, never passed in.

    Raises:
        ValueError: If either address is malformed.
    """

    hardware_address: str
    local_address: str
    short_id: str = field(init=False)

    def __post_init__(self) -> None:
        if not _CANONICAL_ADDRESS.match(self.hardware_address):
            msg = f"hardware_address must be canonical (aa:bb:..), got {self.hardware_address!r}"
            raise ValueError(msg)
        try:
            ipaddress.IPv4Address(self.local_address)
        except ipaddress.AddressValueError as exc:
            msg = f"local_address must be an IPv4 address, got {self.local_address!r}"
            raise ValueError(msg) from exc
        object.__setattr__(self, "short_id", derive_short_id(self.hardware_address))

    @property
    def compact_address(self) -> str:
        """Hardware address without separators, e.g. ``aabbcc112233``."""
        return self.hardware_address.replace(":", "")


# ---------------------------------------------------------------------------
# Interface sources (port + adapters)
# ---------------------------------------------------------------------------


@runtime_checkable
class InterfaceSource(Protocol):
    """Port contract for enumerating host network interfaces."""

    def interfaces(self) -> list[NetworkInterface]: ...


class PsutilInterfaceSource:
    """Production interface source backed by :mod:`psutil`.

    Combines ``psutil.net_if_addrs()`` (addresses, in OS enumeration
    order) with ``psutil.net_if_stats()`` (up/down flag).
    """

    def interfaces(self) -> list[NetworkInterface]:
        """Return a snapshot of the host's interfaces."""
        stats = psutil.net_if_stats()
        snapshot: list[NetworkInterface] = []
        for name, addrs in psutil.net_if_addrs().items():
            stat = stats.get(name)
            hardware = next(
                (a.address for a in addrs if a.family == psutil.AF_LINK),
                "",
            )
            ipv4 = tuple(a.address for a in addrs if a.family == socket.AF_INET)
            snapshot.append(
                NetworkInterface(
                    name=name,
                    is_up=bool(stat and stat.isup),
                    hardware_address=hardware or "",
                    ipv4_addresses=ipv4,
                ),
            )
        return snapshot


@dataclass
class StaticInterfaceSource:
    """Interface source returning a fixed snapshot.

    Used by tests and by callers that already hold an enumeration.
    """

    snapshot: list[NetworkInterface] = field(default_factory=list)

    def interfaces(self) -> list[NetworkInterface]:
        """Return a copy of the fixed snapshot."""
        return list(self.snapshot)


# ---------------------------------------------------------------------------
# Hardware address
# ---------------------------------------------------------------------------


def canonical_hardware_address(raw: str) -> str | None:
    """Normalise *raw* to ``aa:bb:cc:dd:ee:ff`` form.

    Accepts ``:`` or ``-`` separators in either case.  Returns ``None``
    for empty, malformed, or all-zero addresses (psutil reports
    ``00:00:00:00:00:00`` for loopback).
    """
    if not raw:
        return None
    parts = _RAW_ADDRESS_SEPARATORS.split(raw.strip().lower())
    if len(parts) != 6 or any(len(p) != 2 for p in parts):
        return None
    try:
        octets = [int(p, 16) for p in parts]
    except ValueError:
        return None
    if not any(octets):
        return None
    return ":".join(parts)


def is_locally_administered(hardware_address: str) -> bool:
    """Whether the first octet has the locally-administered bit set."""
    first_octet = int(hardware_address[:2], 16)
    return bool(first_octet & _LOCALLY_ADMINISTERED_BIT)


def is_virtual_adapter(name: str) -> bool:
    """Whether *name* matches a known virtual-adapter naming pattern."""
    return _VIRTUAL_ADAPTER_NAMES.search(name) is not None


def select_hardware_address(interfaces: Iterable[NetworkInterface]) -> str:
    """Pick the stable vendor-assigned hardware address.

    Raises:
        ResolutionError: ``NO_HARDWARE_ADDRESS`` when no interface
            survives the filters.
    """
    for iface in interfaces:
        if not iface.is_up:
            continue
        address = canonical_hardware_address(iface.hardware_address)
        if address is None:
            continue
        if is_locally_administered(address):
            logger.debug("Skipping %s: locally administered %s", iface.name, address)
            continue
        if is_virtual_adapter(iface.name):
            logger.debug("Skipping %s: virtual adapter", iface.name)
            continue
        return address
    raise ResolutionError(ResolutionErrorKind.NO_HARDWARE_ADDRESS)


def derive_short_id(hardware_address: str) -> str:
    """Last six hex characters of the address, separators removed."""
    return hardware_address.replace(":", "")[-6:].lower()


# ---------------------------------------------------------------------------
# Local address
# ---------------------------------------------------------------------------


def route_probe(target: str = DEFAULT_PROBE_TARGET, port: int = 80) -> str:
    """Return the local address the OS would use to reach *target*.

    ``connect()`` on a UDP socket only selects a route; nothing is
    sent.

    Raises:
        OSError: When there is no route (e.g. no default gateway).
    """
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.connect((target, port))
        return sock.getsockname()[0]


def _usable(address: str) -> bool:
    try:
        ip = ipaddress.IPv4Address(address)
    except ipaddress.AddressValueError:
        return False
    return not (ip.is_loopback or ip.is_unspecified)


def select_local_address(
    interfaces: Iterable[NetworkInterface],
    probe: AddressProbe,
) -> str:
    """Route probe first, interface enumeration as the fallback.

    Raises:
        ResolutionError: ``NO_LOCAL_ADDRESS`` when both strategies fail.
    """
    try:
        probed = probe()
    except OSError as exc:
        logger.debug("Route probe failed: %s", exc)
    else:
        if _usable(probed):
            return probed
        logger.debug("Route probe returned unusable address %s", probed)

    for iface in interfaces:
        if not iface.is_up:
            continue
        for address in iface.ipv4_addresses:
            if _usable(address):
                return address
    raise ResolutionError(ResolutionErrorKind.NO_LOCAL_ADDRESS)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def resolve_identity(
    source: InterfaceSource | None = None,
    *,
    probe: AddressProbe | None = None,
    probe_target: str = DEFAULT_PROBE_TARGET,
) -> BridgeIdentity:
    """Derive the bridge identity from one interface snapshot.

    Args:
        source: Interface enumeration.  Defaults to
            :class:`PsutilInterfaceSource`.
        probe: Route probe.  Defaults to :func:`route_probe` aimed at
            *probe_target*.
        probe_target: Public address for the default probe.

    Raises:
        ResolutionError: If either the hardware or the local address
            cannot be determined.  There is no partial identity.
    """
    resolved_source = source if source is not None else PsutilInterfaceSource()
    resolved_probe = probe if probe is not None else (lambda: route_probe(probe_target))

    snapshot = resolved_source.interfaces()
    hardware_address = select_hardware_address(snapshot)
    local_address = select_local_address(snapshot, resolved_probe)

    identity = BridgeIdentity(
        hardware_address=hardware_address,
        local_address=local_address,
    )
    logger.info(
        "Resolved identity: mac=%s bridge_id=%s ip=%s",
        identity.hardware_address,
        identity.short_id,
        identity.local_address,
    )
    return identity

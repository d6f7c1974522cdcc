"""mDNS / DNS-SD service publication.

Provides :class:`MdnsPort` (Protocol) and three implementations:

- :class:`MdnsPublisher`: real adapter on :class:`zeroconf.asyncio.AsyncZeroconf`
- :class:`MockMdnsPublisher`: test double that records calls
- :class:`NullMdnsPublisher`: silent no-op adapter (dry-run)

Hue apps browse ``_hue._tcp.local.``.  The instance is named after the
short bridge ID so several emulated bridges on one LAN stay distinct.
zeroconf answers queries and refreshes the record on its own; the
publisher only registers once and unregisters on shutdown.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import zeroconf
from zeroconf import IPVersion
from zeroconf.asyncio import AsyncServiceInfo, AsyncZeroconf

from huebridge._errors import AdvertiseError
from huebridge._identity import BridgeIdentity

logger = logging.getLogger(__name__)

HUE_SERVICE_TYPE = "_hue._tcp.local."
INSTANCE_PREFIX = "Philips Hue - "


def local_host_name() -> str:
    """``<first label of the host name>.local.``"""
    label = socket.gethostname().split(".", 1)[0] or "huebridge"
    return f"{label}.local."


@dataclass(frozen=True, slots=True)
class ServiceRecord:
    """Immutable DNS-SD record for the bridge."""

    host_name: str
    service_type: str
    instance_name: str
    port: int
    address: str
    properties: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_identity(
        cls,
        identity: BridgeIdentity,
        *,
        port: int,
        host_name: str | None = None,
    ) -> ServiceRecord:
        """Build the ``_hue._tcp`` record for *identity*."""
        instance = f"{INSTANCE_PREFIX}{identity.short_id}"
        return cls(
            host_name=host_name or local_host_name(),
            service_type=HUE_SERVICE_TYPE,
            instance_name=f"{instance}.{HUE_SERVICE_TYPE}",
            port=port,
            address=identity.local_address,
            properties={"name": instance, "bridgeid": identity.short_id},
        )

    def to_service_info(self) -> AsyncServiceInfo:
        """Convert to the zeroconf service description."""
        return AsyncServiceInfo(
            self.service_type,
            self.instance_name,
            addresses=[socket.inet_aton(self.address)],
            port=self.port,
            properties=dict(self.properties),
            server=self.host_name,
        )


# ---------------------------------------------------------------------------
# Port (Protocol)
# ---------------------------------------------------------------------------


@runtime_checkable
class MdnsPort(Protocol):
    """Port contract for the mDNS service publication."""

    async def register(self, record: ServiceRecord) -> None: ...

    async def unregister(self) -> None: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Null adapter
# ---------------------------------------------------------------------------


@dataclass
class NullMdnsPublisher:
    """Silent no-op mDNS adapter used for ``--dry-run``."""

    async def register(self, record: ServiceRecord) -> None:
        """Log what would be published."""
        logger.debug("NullMdnsPublisher.register(%s) discarded", record.instance_name)

    async def unregister(self) -> None:
        """Nothing was published."""
        logger.debug("NullMdnsPublisher.unregister() discarded")

    async def close(self) -> None:
        """Nothing to release."""
        logger.debug("NullMdnsPublisher.close() discarded")


# ---------------------------------------------------------------------------
# Mock / test-double adapter
# ---------------------------------------------------------------------------


@dataclass
class MockMdnsPublisher:
    """In-memory test double that records mDNS interactions.

    Appends ``"mdns.register"``, ``"mdns.unregister"`` and
    ``"mdns.close"`` to ``calls``.  Share the list with a
    :class:`~huebridge._ssdp.MockSsdpAdvertiser` to check ordering.
    """

    calls: list[str] = field(default_factory=list)
    record: ServiceRecord | None = None
    register_error: Exception | None = None
    unregister_error: Exception | None = None

    async def register(self, record: ServiceRecord) -> None:
        """Record the registration."""
        self.calls.append("mdns.register")
        if self.register_error is not None:
            raise self.register_error
        self.record = record

    async def unregister(self) -> None:
        """Record the withdrawal."""
        self.calls.append("mdns.unregister")
        if self.unregister_error is not None:
            raise self.unregister_error

    async def close(self) -> None:
        """Record the release."""
        self.calls.append("mdns.close")

    def count(self, call: str) -> int:
        """Number of recorded ``mdns.<call>`` entries."""
        return self.calls.count(f"mdns.{call}")


# ---------------------------------------------------------------------------
# Real adapter
# ---------------------------------------------------------------------------


@dataclass
class MdnsPublisher:
    """Production mDNS adapter backed by :class:`AsyncZeroconf`.

    Zeroconf is bound to the record's address only, IPv4 only.
    """

    _zeroconf: AsyncZeroconf | None = field(default=None, init=False, repr=False)
    _info: AsyncServiceInfo | None = field(default=None, init=False, repr=False)

    async def register(self, record: ServiceRecord) -> None:
        """Start zeroconf and publish *record*.

        Raises:
            AdvertiseError: If zeroconf cannot bind or the name is
                already taken on the network.
        """
        info = record.to_service_info()
        try:
            aiozc = AsyncZeroconf(
                interfaces=[record.address],
                ip_version=IPVersion.V4Only,
            )
        except OSError as exc:
            msg = f"Cannot start mDNS responder on {record.address}: {exc}"
            raise AdvertiseError(msg) from exc

        try:
            await (await aiozc.async_register_service(info))
        except (OSError, zeroconf.Error) as exc:
            await aiozc.async_close()
            msg = f"Cannot register {record.instance_name}: {exc}"
            raise AdvertiseError(msg) from exc
        except BaseException:
            await aiozc.async_close()
            raise

        self._zeroconf = aiozc
        self._info = info
        logger.info(
            "mDNS registered %s on %s:%d",
            record.instance_name,
            record.address,
            record.port,
        )

    async def unregister(self) -> None:
        """Withdraw the published record (goodbye packets)."""
        if self._zeroconf is None or self._info is None:
            return
        await (await self._zeroconf.async_unregister_service(self._info))
        self._info = None
        logger.debug("mDNS record withdrawn")

    async def close(self) -> None:
        """Stop zeroconf.  Idempotent."""
        if self._zeroconf is not None:
            await self._zeroconf.async_close()
            self._zeroconf = None

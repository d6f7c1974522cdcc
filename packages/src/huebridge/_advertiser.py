"""Discovery advertiser: owns the SSDP and mDNS adapters.

State machine::

    UNREGISTERED ──register()──▶ ADVERTISED ──retire()──▶ RETIRED
         │                          │  ▲                     ▲
         │                          └──┘ reannounce()        │
         └───────────────retire() (no network I/O)───────────┘

``register`` is all-or-nothing: on failure every adapter already
started is closed before :class:`AdvertiseError` propagates.
``reannounce`` and ``retire`` never raise for network failures; they
log and carry on.

Either adapter may be ``None`` when that discovery mechanism is
disabled in settings.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Awaitable, Callable

from huebridge._errors import AdvertiseError, AdvertiserStateError
from huebridge._identity import BridgeIdentity
from huebridge._mdns import MdnsPort, ServiceRecord
from huebridge._ssdp import DEFAULT_MAX_AGE, AdvertisementRecord, SsdpPort

logger = logging.getLogger(__name__)


class AdvertiserState(enum.Enum):
    """Lifecycle state of :class:`DiscoveryAdvertiser`."""

    UNREGISTERED = "unregistered"
    ADVERTISED = "advertised"
    RETIRED = "retired"


class DiscoveryAdvertiser:
    """Announce the bridge over SSDP and mDNS.

    Args:
        ssdp: SSDP adapter, or ``None`` to skip SSDP.
        mdns: mDNS adapter, or ``None`` to skip mDNS.
        http_port: Port embedded in the SSDP ``LOCATION`` URL.
        mdns_port: Port published in the mDNS SRV record.
        max_age: SSDP ``CACHE-CONTROL`` max-age in seconds.
    """

    def __init__(
        self,
        ssdp: SsdpPort | None,
        mdns: MdnsPort | None,
        *,
        http_port: int = 80,
        mdns_port: int = 80,
        max_age: int = DEFAULT_MAX_AGE,
    ) -> None:
        self._ssdp = ssdp
        self._mdns = mdns
        self._http_port = http_port
        self._mdns_port = mdns_port
        self._max_age = max_age
        self._state = AdvertiserState.UNREGISTERED
        self._identity: BridgeIdentity | None = None
        self._advertisement: AdvertisementRecord | None = None
        self._service: ServiceRecord | None = None

    @property
    def state(self) -> AdvertiserState:
        """Current lifecycle state."""
        return self._state

    @property
    def identity(self) -> BridgeIdentity | None:
        """Identity passed to :meth:`register`, if any."""
        return self._identity

    @property
    def advertisement(self) -> AdvertisementRecord | None:
        """SSDP record built at registration."""
        return self._advertisement

    @property
    def service(self) -> ServiceRecord | None:
        """mDNS record built at registration."""
        return self._service

    async def register(self, identity: BridgeIdentity) -> None:
        """Start both adapters and send the first announcement.

        Raises:
            AdvertiserStateError: If not in ``UNREGISTERED``.
            AdvertiseError: If any adapter fails to start or register.
        """
        if self._state is not AdvertiserState.UNREGISTERED:
            msg = f"register() is invalid in state {self._state.value}"
            raise AdvertiserStateError(msg)

        advertisement = AdvertisementRecord.from_identity(
            identity,
            http_port=self._http_port,
            max_age=self._max_age,
        )
        service = ServiceRecord.from_identity(identity, port=self._mdns_port)

        ssdp_started = False
        mdns_registered = False
        try:
            if self._ssdp is not None:
                await self._ssdp.start(advertisement, identity.local_address)
                ssdp_started = True
            if self._mdns is not None:
                await self._mdns.register(service)
                mdns_registered = True
            if self._ssdp is not None:
                await self._ssdp.alive()
        except Exception as exc:
            await self._abort(ssdp_started=ssdp_started, mdns_registered=mdns_registered)
            if isinstance(exc, AdvertiseError):
                raise
            msg = f"Discovery registration failed: {exc}"
            raise AdvertiseError(msg) from exc
        except BaseException:
            # Cancelled (Ctrl-C during mDNS registration): release, then propagate.
            await self._abort(ssdp_started=ssdp_started, mdns_registered=mdns_registered)
            raise

        self._identity = identity
        self._advertisement = advertisement
        self._service = service
        self._state = AdvertiserState.ADVERTISED
        logger.info(
            "Advertising bridge %s at %s",
            identity.short_id,
            advertisement.location,
            extra={"bridge_id": identity.short_id},
        )

    async def _abort(self, *, ssdp_started: bool, mdns_registered: bool) -> None:
        if mdns_registered and self._mdns is not None:
            await self._best_effort("mDNS unregister", self._mdns.unregister)
        if self._mdns is not None:
            await self._best_effort("mDNS close", self._mdns.close)
        if ssdp_started and self._ssdp is not None:
            await self._best_effort("SSDP close", self._ssdp.close)

    async def reannounce(self) -> None:
        """Re-send the SSDP alive announcement with identical fields.

        Raises:
            AdvertiserStateError: If not in ``ADVERTISED``.
        """
        if self._state is not AdvertiserState.ADVERTISED:
            msg = f"reannounce() is invalid in state {self._state.value}"
            raise AdvertiserStateError(msg)
        if self._ssdp is None:
            return
        try:
            await self._ssdp.alive()
        except Exception:
            logger.warning("SSDP re-announcement failed", exc_info=True)

    async def retire(self) -> None:
        """Withdraw both advertisements and release the adapters.

        Idempotent.  From ``UNREGISTERED`` it only changes state.
        """
        if self._state is AdvertiserState.RETIRED:
            return
        if self._state is AdvertiserState.UNREGISTERED:
            self._state = AdvertiserState.RETIRED
            return

        self._state = AdvertiserState.RETIRED
        if self._ssdp is not None:
            await self._best_effort("SSDP byebye", self._ssdp.bye)
        if self._mdns is not None:
            await self._best_effort("mDNS unregister", self._mdns.unregister)
            await self._best_effort("mDNS close", self._mdns.close)
        if self._ssdp is not None:
            await self._best_effort("SSDP close", self._ssdp.close)
        logger.info("Discovery advertisements withdrawn")

    @staticmethod
    async def _best_effort(step: str, action: Callable[[], Awaitable[None]]) -> None:
        try:
            await action()
        except Exception:
            logger.warning("%s failed", step, exc_info=True)

"""Lifecycle controller: the composition root of the emulated bridge.

:class:`BridgeController` wires the pieces together and runs them
in a fixed order::

    configure logging
    resolve identity              (ResolutionError → abort)
    start HTTP listener(s)        (ListenError → abort)
    register discovery            (AdvertiseError → stop HTTP, abort)
    loop: wait(shutdown, interval) → reannounce on timeout
    retire discovery              (shielded, runs to completion)
    stop HTTP listener(s)

Typical usage::

    from huebridge import BridgeController

    BridgeController(version="1.0.0").run()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import Callable
from datetime import datetime

from huebridge._advertiser import DiscoveryAdvertiser
from huebridge._http import HttpServer, build_app
from huebridge._identity import AddressProbe, InterfaceSource, resolve_identity
from huebridge._logging import configure_logging
from huebridge._mdns import MdnsPort, MdnsPublisher, NullMdnsPublisher
from huebridge._settings import BridgeSettings
from huebridge._ssdp import NullSsdpAdvertiser, SsdpAdvertiser, SsdpPort

logger = logging.getLogger(__name__)


class BridgeController:
    """Run one emulated bridge from startup to clean shutdown.

    Args:
        name: Service name used in logs.
        version: Application version used in logs.
        settings_class: Settings model instantiated when no settings
            are injected.
        dry_run: Use the Null discovery adapters.  HTTP still runs.
    """

    def __init__(
        self,
        name: str = "huebridge",
        version: str = "0.0.0",
        *,
        settings_class: type[BridgeSettings] = BridgeSettings,
        dry_run: bool = False,
    ) -> None:
        self._name = name
        self._version = version
        self._settings_class = settings_class
        self._dry_run = dry_run
        self._advertiser: DiscoveryAdvertiser | None = None

    @property
    def advertiser(self) -> DiscoveryAdvertiser | None:
        """Advertiser of the current (or last) run."""
        return self._advertiser

    def run(
        self,
        *,
        settings: BridgeSettings | None = None,
        source: InterfaceSource | None = None,
        probe: AddressProbe | None = None,
        ssdp: SsdpPort | None = None,
        mdns: MdnsPort | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Start the bridge (blocking, synchronous entrypoint).

        Wraps :meth:`_run_async` in :func:`asyncio.run`; Ctrl-C ends
        the run quietly.  All parameters are optional overrides for
        programmatic or test use.
        """
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(
                self._run_async(
                    settings=settings,
                    source=source,
                    probe=probe,
                    ssdp=ssdp,
                    mdns=mdns,
                    shutdown_event=shutdown_event,
                    clock=clock,
                ),
            )

    def cli(self) -> None:
        """Start the bridge with CLI argument parsing.

        See :func:`huebridge._cli.build_cli` for the options.
        """
        from huebridge._cli import build_cli

        cli = build_cli(self)
        cli(standalone_mode=True)

    async def _run_async(
        self,
        *,
        settings: BridgeSettings | None = None,
        source: InterfaceSource | None = None,
        probe: AddressProbe | None = None,
        ssdp: SsdpPort | None = None,
        mdns: MdnsPort | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Async orchestration.

        Args:
            settings: Override settings (skip env loading).
            source: Override interface enumeration.
            probe: Override the route probe.
            ssdp: Override the SSDP adapter.
            mdns: Override the mDNS adapter.
            shutdown_event: Override shutdown event (skip signal handlers).
            clock: Override the clock behind the ``UTC`` config field.
        """
        resolved_settings = settings if settings is not None else self._settings_class()
        configure_logging(
            resolved_settings.logging,
            service=self._name,
            version=self._version,
        )
        discovery = resolved_settings.discovery

        identity = resolve_identity(
            source,
            probe=probe,
            probe_target=discovery.probe_target,
        )

        http = HttpServer(
            build_app(identity, resolved_settings, clock=clock),
            resolved_settings.http,
        )
        await http.start()

        advertiser = DiscoveryAdvertiser(
            self._create_ssdp(ssdp, resolved_settings),
            self._create_mdns(mdns, resolved_settings),
            http_port=http.port,
            mdns_port=discovery.published_mdns_port(http.port),
            max_age=discovery.max_age,
        )
        self._advertiser = advertiser

        try:
            await advertiser.register(identity)
        except BaseException:
            await http.stop()
            raise

        shutdown_event = self._install_signal_handlers(shutdown_event)
        try:
            await self._serve(advertiser, shutdown_event, discovery.reannounce_interval)
        finally:
            await self._retire(advertiser)
            await http.stop()

        logger.info("Shutdown complete")

    # --- _run_async helpers ------------------------------------------------

    def _create_ssdp(
        self,
        ssdp: SsdpPort | None,
        settings: BridgeSettings,
    ) -> SsdpPort | None:
        """Return the injected adapter, or build one from settings."""
        if ssdp is not None:
            return ssdp
        if not settings.discovery.ssdp_enabled:
            return None
        return NullSsdpAdvertiser() if self._dry_run else SsdpAdvertiser()

    def _create_mdns(
        self,
        mdns: MdnsPort | None,
        settings: BridgeSettings,
    ) -> MdnsPort | None:
        """Return the injected adapter, or build one from settings."""
        if mdns is not None:
            return mdns
        if not settings.discovery.mdns_enabled:
            return None
        return NullMdnsPublisher() if self._dry_run else MdnsPublisher()

    @staticmethod
    async def _serve(
        advertiser: DiscoveryAdvertiser,
        shutdown_event: asyncio.Event,
        interval: float,
    ) -> None:
        """Re-announce every *interval* seconds until shutdown."""
        logger.info("Bridge running; re-announcing every %.0f s", interval)
        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
            except TimeoutError:
                await advertiser.reannounce()
        logger.info("Shutdown requested")

    @staticmethod
    async def _retire(advertiser: DiscoveryAdvertiser) -> None:
        """Retire under :func:`asyncio.shield`; finish even if cancelled."""
        task = asyncio.ensure_future(advertiser.retire())
        cancelled = False
        # Every cancel lands on the shield, never on the retire task.
        while not task.done():
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                cancelled = True
        if cancelled:
            raise asyncio.CancelledError

    def _install_signal_handlers(
        self,
        shutdown_event: asyncio.Event | None,
    ) -> asyncio.Event:
        """Install SIGTERM/SIGINT handlers. Returns the shutdown event."""
        if shutdown_event is not None:
            return shutdown_event
        event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, event.set)
        return event

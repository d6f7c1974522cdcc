"""Integration tests — full lifecycle validation.

Runs the real controller with real HTTP listeners on loopback and
mock discovery adapters: resolve identity → serve HTTP → register
discovery → re-announce → retire → stop.  Clients fetch the
documents a Hue app reads while discovering a bridge.

Test Techniques Used:
    - Integration Testing: end-to-end lifecycle via BridgeHarness.
    - State-based Testing: discovery call order and served documents.
    - Test Doubles: Null adapters in dry-run, mock adapters otherwise.
"""

from __future__ import annotations

import asyncio
import re

import aiohttp
import pytest

from huebridge._advertiser import AdvertiserState
from huebridge.testing import BridgeHarness, StaticInterfaceSource, eligible_interface

pytestmark = [pytest.mark.integration, pytest.mark.usefixtures("_restore_root_logger")]


async def _wait_until_advertised(harness: BridgeHarness) -> int:
    """Wait for the first alive; return the advertised HTTP port."""

    async def poll() -> None:
        while "ssdp.alive" not in harness.calls:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), 5.0)
    assert harness.ssdp.record is not None
    match = re.search(r":(\d+)/description\.xml$", harness.ssdp.record.location)
    assert match is not None
    return int(match.group(1))


class TestDiscoveryFlow:
    """A client following the advertisement.

    Technique: Integration Testing.
    """

    async def test_client_reads_description_and_config(self) -> None:
        """LOCATION leads to a description and config for the same bridge."""
        harness = BridgeHarness.create(bridge={"name": "Attic"})
        task = asyncio.create_task(harness.run())
        port = await _wait_until_advertised(harness)
        base = f"http://127.0.0.1:{port}"

        async with aiohttp.ClientSession() as session:
            async with session.get(f"{base}/description.xml") as resp:
                description = await resp.text()
            async with session.get(f"{base}/api/nouser/config") as resp:
                config = await resp.json()
            async with session.post(f"{base}/api", json={"devicetype": "app#x"}) as resp:
                pairing = await resp.json()

        harness.trigger_shutdown()
        await task

        assert f"<URLBase>http://192.0.2.10:{port}/</URLBase>" in description
        assert "<serialNumber>001788112233</serialNumber>" in description
        assert config["bridgeid"] == "112233"
        assert config["mac"] == "001788112233"
        assert config["name"] == "Attic"
        assert config["UTC"] == "2024-01-01T12:00:00"
        assert pairing == [{"success": {"username": "nouser"}}]

    async def test_mdns_record_matches_identity(self) -> None:
        """The mDNS instance and TXT record carry the short id."""
        harness = BridgeHarness.create()
        task = asyncio.create_task(harness.run())
        port = await _wait_until_advertised(harness)
        harness.trigger_shutdown()
        await task

        record = harness.mdns.record
        assert record is not None
        assert record.instance_name == "Philips Hue - 112233._hue._tcp.local."
        assert record.properties["bridgeid"] == "112233"
        assert record.port == port

    async def test_http_stops_with_the_bridge(self) -> None:
        """After shutdown the listener refuses connections."""
        harness = BridgeHarness.create()
        task = asyncio.create_task(harness.run())
        port = await _wait_until_advertised(harness)
        harness.trigger_shutdown()
        await task

        async with aiohttp.ClientSession() as session:
            with pytest.raises(aiohttp.ClientConnectionError):
                await session.get(f"http://127.0.0.1:{port}/")

        assert harness.controller.advertiser is not None
        assert harness.controller.advertiser.state is AdvertiserState.RETIRED


class TestRunModes:
    """Dry-run and disabled discovery.

    Technique: Test Doubles.
    """

    async def test_dry_run_serves_http_without_discovery(self) -> None:
        """Null adapters are used; HTTP is still up."""
        harness = BridgeHarness.create(dry_run=True)
        harness.trigger_shutdown()

        await harness.controller._run_async(
            settings=harness.settings,
            source=harness.source,
            probe=harness.probe,
            shutdown_event=harness.shutdown_event,
        )

        assert harness.calls == []
        assert harness.controller.advertiser is not None
        assert harness.controller.advertiser.state is AdvertiserState.RETIRED

    async def test_all_discovery_disabled(self) -> None:
        """With both mechanisms off the bridge only serves HTTP."""
        harness = BridgeHarness.create(
            discovery={"ssdp_enabled": False, "mdns_enabled": False},
        )
        harness.source = StaticInterfaceSource([eligible_interface(name="enp3s0")])
        harness.trigger_shutdown()

        await harness.controller._run_async(
            settings=harness.settings,
            source=harness.source,
            probe=harness.probe,
            shutdown_event=harness.shutdown_event,
        )

        assert harness.calls == []

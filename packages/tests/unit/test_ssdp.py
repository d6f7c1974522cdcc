"""Unit tests for huebridge._ssdp — SSDP records, codec and adapters.

Test Techniques Used:
    - Specification-based Testing: NOTIFY / response wire format
    - Equivalence Partitioning: M-SEARCH targets that match or not
    - Test Doubles: Fake datagram transport, patched socket factory
    - Error Condition Testing: Socket failures become AdvertiseError
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from huebridge._errors import AdvertiseError
from huebridge._identity import BridgeIdentity
from huebridge._ssdp import (
    SSDP_MULTICAST_ADDRESS,
    SSDP_PORT,
    AdvertisementRecord,
    MockSsdpAdvertiser,
    NullSsdpAdvertiser,
    SsdpAdvertiser,
    SsdpPort,
    _SsdpProtocol,
    build_alive,
    build_byebye,
    build_search_response,
    parse_search_target,
    search_matches,
)


@pytest.fixture
def record(bridge_identity: BridgeIdentity) -> AdvertisementRecord:
    return AdvertisementRecord.from_identity(bridge_identity)


def _lines(message: bytes) -> list[str]:
    text = message.decode()
    assert text.endswith("\r\n\r\n")
    return text[: -len("\r\n\r\n")].split("\r\n")


def _m_search(st: str) -> bytes:
    return (
        "M-SEARCH * HTTP/1.1\r\n"
        "HOST: 239.255.255.250:1900\r\n"
        'MAN: "ssdp:discover"\r\n'
        "MX: 2\r\n"
        f"ST: {st}\r\n\r\n"
    ).encode()


class TestAdvertisementRecord:
    """Record values derived from the identity.

    Technique: Specification-based Testing.
    """

    def test_default_port_location(self, record: AdvertisementRecord) -> None:
        """Port 80 is left out of the location URL."""
        assert record.location == "http://192.0.2.10/description.xml"

    def test_usn_and_server(self, record: AdvertisementRecord) -> None:
        """USN ends in the compact hardware address."""
        assert record.usn == "38323636-4558-4dda-9188-aabbcc112233"
        assert record.server == "FreeRTOS/6.0.5, UPnP/1.0, IpBridge/0.1"
        assert record.search_target == "urn:schemas-upnp-org:device:Basic:1"
        assert record.max_age == 1200

    def test_non_default_port_in_location(self, bridge_identity: BridgeIdentity) -> None:
        """Other HTTP ports are written explicitly."""
        record = AdvertisementRecord.from_identity(bridge_identity, http_port=8080, max_age=60)
        assert record.location == "http://192.0.2.10:8080/description.xml"
        assert record.max_age == 60


class TestMessages:
    """NOTIFY and search-response encoding.

    Technique: Specification-based Testing.
    """

    def test_alive(self, record: AdvertisementRecord) -> None:
        """ssdp:alive carries location, server and max-age."""
        assert _lines(build_alive(record)) == [
            "NOTIFY * HTTP/1.1",
            "HOST: 239.255.255.250:1900",
            "NT: urn:schemas-upnp-org:device:Basic:1",
            "NTS: ssdp:alive",
            "USN: 38323636-4558-4dda-9188-aabbcc112233",
            "LOCATION: http://192.0.2.10/description.xml",
            "SERVER: FreeRTOS/6.0.5, UPnP/1.0, IpBridge/0.1",
            "CACHE-CONTROL: max-age=1200",
        ]

    def test_byebye(self, record: AdvertisementRecord) -> None:
        """ssdp:byebye carries only the identifying headers."""
        assert _lines(build_byebye(record)) == [
            "NOTIFY * HTTP/1.1",
            "HOST: 239.255.255.250:1900",
            "NT: urn:schemas-upnp-org:device:Basic:1",
            "NTS: ssdp:byebye",
            "USN: 38323636-4558-4dda-9188-aabbcc112233",
        ]

    def test_search_response(self, record: AdvertisementRecord) -> None:
        """200 OK with an empty EXT header."""
        lines = _lines(build_search_response(record))
        assert lines[0] == "HTTP/1.1 200 OK"
        assert "EXT:" in lines
        assert "ST: urn:schemas-upnp-org:device:Basic:1" in lines
        assert "LOCATION: http://192.0.2.10/description.xml" in lines

    def test_messages_are_identical_across_sends(self, record: AdvertisementRecord) -> None:
        """Re-announcements repeat the exact same bytes."""
        assert build_alive(record) == build_alive(record)


class TestSearchMatching:
    """Which M-SEARCH queries are answered.

    Technique: Equivalence Partitioning.
    """

    @pytest.mark.parametrize(
        ("data", "expected"),
        [
            (_m_search("ssdp:all"), "ssdp:all"),
            (_m_search("upnp:rootdevice"), "upnp:rootdevice"),
            (b"M-SEARCH * HTTP/1.1\nst: ssdp:all\n\n", "ssdp:all"),
            (b"NOTIFY * HTTP/1.1\r\nNT: ssdp:all\r\n\r\n", None),
            (b"M-SEARCH * HTTP/1.1\r\nMX: 1\r\n\r\n", None),
            (b"", None),
        ],
    )
    def test_parse_search_target(self, data: bytes, expected: str | None) -> None:
        """ST is read from M-SEARCH requests only."""
        assert parse_search_target(data) == expected

    @pytest.mark.parametrize(
        ("st", "matches"),
        [
            ("ssdp:all", True),
            ("urn:schemas-upnp-org:device:Basic:1", True),
            ("upnp:rootdevice", False),
            ("urn:schemas-upnp-org:device:MediaRenderer:1", False),
        ],
    )
    def test_search_matches(self, record: AdvertisementRecord, st: str, matches: bool) -> None:
        """ssdp:all and the advertised target are answered."""
        assert search_matches(record, st) is matches


class TestSsdpProtocol:
    """The datagram responder.

    Technique: Test Doubles (fake transport).
    """

    def test_answers_matching_query(self, record: AdvertisementRecord) -> None:
        """A matching M-SEARCH gets a unicast response."""
        protocol = _SsdpProtocol(record)
        transport = MagicMock()
        protocol.connection_made(transport)

        protocol.datagram_received(_m_search("ssdp:all"), ("192.0.2.50", 50000))

        transport.sendto.assert_called_once_with(
            build_search_response(record),
            ("192.0.2.50", 50000),
        )

    def test_ignores_other_queries(self, record: AdvertisementRecord) -> None:
        """Non-matching targets and NOTIFYs are ignored."""
        protocol = _SsdpProtocol(record)
        transport = MagicMock()
        protocol.connection_made(transport)

        protocol.datagram_received(_m_search("upnp:rootdevice"), ("192.0.2.50", 50000))
        protocol.datagram_received(build_alive(record), ("192.0.2.51", 1900))

        transport.sendto.assert_not_called()


class TestNullAndMockAdapters:
    """Dry-run and test-double adapters.

    Technique: Test Doubles.
    """

    def test_adapters_satisfy_port(self) -> None:
        """All three adapters are SsdpPort implementations."""
        assert isinstance(SsdpAdvertiser(), SsdpPort)
        assert isinstance(NullSsdpAdvertiser(), SsdpPort)
        assert isinstance(MockSsdpAdvertiser(), SsdpPort)

    async def test_null_adapter_does_nothing(self, record: AdvertisementRecord) -> None:
        """Every call completes without I/O."""
        adapter = NullSsdpAdvertiser()
        await adapter.start(record, "192.0.2.10")
        await adapter.alive()
        await adapter.bye()
        await adapter.close()

    async def test_mock_records_calls(self, record: AdvertisementRecord) -> None:
        """Calls and the started record are captured."""
        mock = MockSsdpAdvertiser()
        await mock.start(record, "192.0.2.10")
        await mock.alive()
        await mock.alive()
        await mock.bye()
        await mock.close()

        assert mock.calls == ["ssdp.start", "ssdp.alive", "ssdp.alive", "ssdp.bye", "ssdp.close"]
        assert mock.record == record
        assert mock.local_address == "192.0.2.10"
        assert (mock.alive_count, mock.bye_count, mock.close_count) == (2, 1, 1)

    async def test_mock_raises_configured_error(self, record: AdvertisementRecord) -> None:
        """Errors fire after the call is recorded."""
        mock = MockSsdpAdvertiser(alive_error=OSError("no route"))
        with pytest.raises(OSError, match="no route"):
            await mock.alive()
        assert mock.calls == ["ssdp.alive"]


class TestSsdpAdvertiser:
    """Real adapter with the socket layer patched out.

    Technique: Test Doubles + Error Condition Testing.
    """

    async def test_bind_failure_becomes_advertise_error(
        self, record: AdvertisementRecord
    ) -> None:
        """OSError while opening the socket -> AdvertiseError."""
        adapter = SsdpAdvertiser()
        with (
            patch.object(adapter, "_open_socket", side_effect=OSError("address in use")),
            pytest.raises(AdvertiseError, match="address in use"),
        ):
            await adapter.start(record, "192.0.2.10")

    async def test_send_before_start_raises(self) -> None:
        """alive() without start() is a programming error."""
        with pytest.raises(RuntimeError, match="not started"):
            await SsdpAdvertiser().alive()

    async def test_alive_and_bye_multicast(self, record: AdvertisementRecord) -> None:
        """NOTIFYs go to the multicast group; close is idempotent."""
        adapter = SsdpAdvertiser()
        transport = MagicMock()
        loop = asyncio.get_running_loop()

        async def fake_endpoint(factory, sock):  # noqa: ANN001, ANN202
            return transport, factory()

        with (
            patch.object(adapter, "_open_socket", return_value=MagicMock()),
            patch.object(loop, "create_datagram_endpoint", side_effect=fake_endpoint),
        ):
            await adapter.start(record, "192.0.2.10")

        await adapter.alive()
        await adapter.bye()
        await adapter.close()
        await adapter.close()

        group = (SSDP_MULTICAST_ADDRESS, SSDP_PORT)
        assert [c.args for c in transport.sendto.call_args_list] == [
            (build_alive(record), group),
            (build_byebye(record), group),
        ]
        transport.close.assert_called_once()

"""Tests for the UDP and static discovery sources."""

import asyncio

import pytest

from stromlink.plugins.devices.mystrom.device_config import DeviceConfiguration
from stromlink.plugins.devices.mystrom.discovery import StaticDiscovery, UdpDiscovery

from conftest import RecordingListener


ADDR = ("192.168.1.50", 7979)


class TestDatagramParsing:
    def test_valid_datagram_becomes_sighting(self, clock, listener):
        discovery = UdpDiscovery(clock=clock)
        discovery.add_listener(listener)

        discovery.handle_datagram(bytes.fromhex("30aea40011226a00"), ADDR)

        sightings = listener.of("sighting")
        assert len(sightings) == 1
        sighting = sightings[0]
        assert sighting.id == "30aea4001122"
        assert sighting.ip == "192.168.1.50"
        assert sighting.type == "WS2"
        assert sighting.timestamp == clock.now
        assert sighting.name is None

    @pytest.mark.parametrize(
        "code,expected",
        [(101, "WSW"), (102, "WRB"), (103, "WBP"), (104, "WBS"), (105, "WRS"), (106, "WS2"), (107, "WSE")],
    )
    def test_device_type_codes(self, listener, code, expected):
        discovery = UdpDiscovery()
        discovery.add_listener(listener)

        discovery.handle_datagram(bytes([0x30, 0xAE, 0xA4, 0, 0, 1, code, 0]), ADDR)

        assert listener.of("sighting")[0].type == expected

    def test_unknown_type_code_has_no_type(self, listener):
        discovery = UdpDiscovery()
        discovery.add_listener(listener)

        discovery.handle_datagram(bytes([0x30, 0xAE, 0xA4, 0, 0, 1, 0x99, 0]), ADDR)

        assert listener.of("sighting")[0].type is None

    @pytest.mark.parametrize("size", [0, 6, 7, 9, 16])
    def test_wrong_size_is_dropped(self, listener, caplog, size):
        discovery = UdpDiscovery()
        discovery.add_listener(listener)

        discovery.handle_datagram(b"\x01" * size, ADDR)

        assert listener.events == []
        assert "Ignoring invalid discovery message" in caplog.text

    def test_failing_listener_does_not_block_others(self, listener):
        class Broken(RecordingListener):
            def on_sighting(self, sighting):
                raise RuntimeError("boom")

        discovery = UdpDiscovery()
        discovery.add_listener(Broken())
        discovery.add_listener(listener)

        discovery.handle_datagram(bytes.fromhex("30aea40011226a00"), ADDR)

        assert len(listener.of("sighting")) == 1


class TestUdpSocket:
    async def _send(self, port: int, payload: bytes) -> None:
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            asyncio.DatagramProtocol,
            remote_addr=("127.0.0.1", port),
        )
        try:
            transport.sendto(payload)
        finally:
            transport.close()

    async def test_receives_broadcast(self, listener):
        received = asyncio.Event()

        class Waiter(RecordingListener):
            def on_sighting(self, sighting):
                received.set()

        discovery = UdpDiscovery("127.0.0.1", 0)
        discovery.add_listener(listener)
        discovery.add_listener(Waiter())

        await discovery.start()
        try:
            assert discovery.running
            assert listener.of("started") == [None]

            await self._send(discovery.address[1], bytes.fromhex("30aea40011226a00"))
            await asyncio.wait_for(received.wait(), timeout=2)
        finally:
            await discovery.stop()

        sighting = listener.of("sighting")[0]
        assert sighting.id == "30aea4001122"
        assert sighting.ip == "127.0.0.1"
        assert not discovery.running
        assert listener.of("stopped") == [None]

    async def test_start_twice_is_noop(self, listener):
        discovery = UdpDiscovery("127.0.0.1", 0)
        discovery.add_listener(listener)

        await discovery.start()
        address = discovery.address
        await discovery.start()

        try:
            assert discovery.address == address
            assert len(listener.of("started")) == 1
        finally:
            await discovery.stop()

    async def test_stop_when_not_running_is_noop(self, listener):
        discovery = UdpDiscovery("127.0.0.1", 0)
        discovery.add_listener(listener)

        await discovery.stop()

        assert listener.events == []

    async def test_bind_failure_is_reported_not_raised(self, listener):
        first = UdpDiscovery("127.0.0.1", 0)
        await first.start()

        try:
            second = UdpDiscovery("127.0.0.1", first.address[1])
            second.add_listener(listener)

            await second.start()

            assert not second.running
            assert len(listener.of("error")) == 1
            assert isinstance(listener.of("error")[0], OSError)
            assert listener.of("started") == []
        finally:
            await first.stop()

    async def test_socket_error_stops_discovery(self, listener):
        discovery = UdpDiscovery("127.0.0.1", 0)
        discovery.add_listener(listener)
        await discovery.start()

        error = OSError("network down")
        discovery._handle_error(error)
        await asyncio.sleep(0)

        assert listener.of("error")[0] is error
        assert listener.of("stopped") == [None]
        assert not discovery.running


class TestStaticDiscovery:
    def _configuration(self):
        return DeviceConfiguration([
            {"id": "30aea4001122", "name": "Office", "host": "192.168.1.180"},
            {"id": "30aea4001144", "name": "TV"},
            {"id": "30aea4001166", "host": "10.0.0.7", "type": "WSE"},
        ])

    def test_announce_emits_devices_with_host(self, clock, listener):
        discovery = StaticDiscovery(self._configuration(), clock=clock)
        discovery.add_listener(listener)

        assert discovery.announce() == 2

        sightings = {sighting.id: sighting for sighting in listener.of("sighting")}
        assert set(sightings) == {"30aea4001122", "30aea4001166"}
        assert sightings["30aea4001122"].ip == "192.168.1.180"
        assert sightings["30aea4001122"].type == "WS2"
        assert sightings["30aea4001122"].name == "Office"
        assert sightings["30aea4001166"].type == "WSE"
        assert all(sighting.timestamp == clock.now for sighting in sightings.values())

    async def test_start_announces_immediately_and_repeats(self, listener):
        discovery = StaticDiscovery(self._configuration(), interval=0.01)
        discovery.add_listener(listener)

        await discovery.start()
        try:
            await asyncio.sleep(0.05)
        finally:
            await discovery.stop()

        assert listener.of("started") == [None]
        assert len(listener.of("sighting")) >= 4
        assert listener.of("stopped") == [None]
        assert not discovery.running

    async def test_start_without_hosts_warns(self, listener, caplog):
        discovery = StaticDiscovery(DeviceConfiguration([{"id": "30aea4001144", "name": "TV"}]))
        discovery.add_listener(listener)

        await discovery.start()
        await asyncio.sleep(0)
        await discovery.stop()

        assert "doesn't define any devices with a host" in caplog.text
        assert listener.of("sighting") == []

    async def test_announce_failure_stops_source(self, listener):
        configuration = self._configuration()
        discovery = StaticDiscovery(configuration, interval=0.01)
        discovery.add_listener(listener)

        def broken():
            raise OSError("disk gone")

        configuration.reload_if_changed = broken

        await discovery.start()
        await asyncio.sleep(0.02)

        assert not discovery.running
        assert isinstance(listener.of("error")[0], OSError)
        assert listener.of("stopped") == [None]

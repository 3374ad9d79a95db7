"""myStrom discovery sources: UDP broadcast listener and static device list."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

from .device_config import DeviceConfiguration
from .events import ListenerRegistry
from .models import (
    DEVICE_TYPE_CODES,
    DISCOVERY_MESSAGE_SIZE,
    DISCOVERY_PORT,
    DiscoverySighting,
)


logger = logging.getLogger(__name__)


class DiscoverySource(ListenerRegistry, ABC):
    """
    Base class for discovery sources.

    A source reports ``on_started`` once it is running, ``on_sighting`` at
    least once per live device and announce interval, and ``on_stopped``
    when it halts. Transport problems are reported through ``on_error`` and
    stop the source; they are never raised to the caller.
    """

    @property
    @abstractmethod
    def running(self) -> bool:
        """Whether the source is currently emitting sightings."""

    @abstractmethod
    async def start(self) -> None:
        """Start emitting sightings. Does nothing if already running."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop emitting sightings. Does nothing if not running."""


class _DiscoveryProtocol(asyncio.DatagramProtocol):
    """asyncio protocol forwarding socket callbacks to a UdpDiscovery."""

    def __init__(self, discovery: "UdpDiscovery"):
        self._discovery = discovery

    def datagram_received(self, data: bytes, addr: Tuple) -> None:
        self._discovery.handle_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        self._discovery._handle_error(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._discovery._handle_closed(exc)


class UdpDiscovery(DiscoverySource):
    """
    Auto discovery of myStrom devices by their UDP broadcasts on port 7979.

    Devices broadcast an 8 byte datagram every few seconds: bytes 0-5 are
    the MAC address, byte 6 the device type code, byte 7 is reserved.
    WiFi Switch v1 devices do not broadcast and need static configuration.
    """

    def __init__(
        self,
        listen_address: Optional[str] = None,
        port: int = DISCOVERY_PORT,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__()
        self.listen_address = listen_address or "0.0.0.0"
        self.port = port
        self._clock = clock
        self._transport: Optional[asyncio.DatagramTransport] = None

    @property
    def running(self) -> bool:
        return self._transport is not None

    @property
    def address(self) -> Optional[Tuple]:
        """Local socket address while listening."""
        if not self._transport:
            return None
        return self._transport.get_extra_info("sockname")

    async def start(self) -> None:
        if self._transport is not None:
            return

        loop = asyncio.get_running_loop()

        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _DiscoveryProtocol(self),
                local_addr=(self.listen_address, self.port),
            )
        except OSError as e:
            logger.error(f"Cannot listen for myStrom broadcasts on {self.listen_address}:{self.port}: {e}")
            self._notify("on_error", e)
            return

        self._transport = transport
        address = self.address
        logger.info(f"Listening for myStrom UDP broadcast on {address[0]}:{address[1]}")
        self._notify("on_started")

    async def stop(self) -> None:
        if self._transport is None:
            return

        transport = self._transport
        transport.close()
        # Give the transport a chance to report connection_lost
        await asyncio.sleep(0)

    def handle_datagram(self, data: bytes, addr: Tuple) -> None:
        """Turn a discovery datagram into a sighting."""
        if len(data) != DISCOVERY_MESSAGE_SIZE:
            logger.warning(
                f"Ignoring invalid discovery message of size {len(data)} from {addr[0]}: {data.hex()}"
            )
            return

        sighting = DiscoverySighting(
            id=data[:6].hex(),
            ip=addr[0],
            type=DEVICE_TYPE_CODES.get(data[6]),
            timestamp=self._clock(),
        )
        self._notify("on_sighting", sighting)

    def _handle_error(self, exc: Exception) -> None:
        logger.error(f"Discovery socket error, stopping UDP discovery: {exc}")
        self._notify("on_error", exc)
        if self._transport:
            self._transport.close()

    def _handle_closed(self, exc: Optional[Exception]) -> None:
        self._transport = None
        if exc is not None:
            logger.error(f"Discovery socket closed with error: {exc}")
            self._notify("on_error", exc)
        self._notify("on_stopped")


class StaticDiscovery(DiscoverySource):
    """
    Discovery of manually configured devices.

    Announces every configured device with a ``host`` on start and then
    every ``interval`` seconds, the same cadence as the UDP broadcasts, so
    reachability timeouts behave the same for both sources.
    """

    def __init__(
        self,
        configuration: DeviceConfiguration,
        interval: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__()
        self.configuration = configuration
        self.interval = interval
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if self._task is not None:
            return

        source = self.configuration.file_path or "plugin configuration"
        logger.info(f"Reading myStrom devices from {source}")

        if not self.configuration.get_static_devices():
            logger.warning("Device configuration doesn't define any devices with a host property")

        self._task = asyncio.create_task(self._announce_loop())
        self._notify("on_started")

    async def stop(self) -> None:
        if self._task is None:
            return

        task = self._task
        self._task = None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        self._notify("on_stopped")

    def announce(self) -> int:
        """
        Emit one sighting per configured device with a host.

        Returns:
            Number of sightings emitted
        """
        self.configuration.reload_if_changed()

        devices = self.configuration.get_static_devices()
        now = self._clock()

        for entry in devices:
            self._notify(
                "on_sighting",
                DiscoverySighting(
                    id=entry.id,
                    ip=entry.host,
                    type=entry.type,
                    timestamp=now,
                    name=entry.name,
                ),
            )

        return len(devices)

    async def _announce_loop(self) -> None:
        while True:
            try:
                self.announce()
            except Exception as e:
                logger.error(f"Static discovery failed, stopping: {e}", exc_info=True)
                self._task = None
                self._notify("on_error", e)
                self._notify("on_stopped")
                return

            await asyncio.sleep(self.interval)

"""Bundles several discovery sources into a single source."""

import asyncio
import logging
from typing import List

from .discovery import DiscoverySource
from .events import DiscoveryListener
from .models import DiscoverySighting


logger = logging.getLogger(__name__)


class _SourceForwarder(DiscoveryListener):
    """Forwards events of one source to the aggregator's listeners."""

    def __init__(self, aggregator: "DiscoveryAggregator", forward_lifecycle: bool):
        self._aggregator = aggregator
        self._forward_lifecycle = forward_lifecycle

    def on_sighting(self, sighting: DiscoverySighting) -> None:
        self._aggregator._notify("on_sighting", sighting)

    def on_error(self, error: Exception) -> None:
        self._aggregator._notify("on_error", error)

    def on_started(self) -> None:
        if self._forward_lifecycle:
            self._aggregator._notify("on_started")

    def on_stopped(self) -> None:
        if self._forward_lifecycle:
            self._aggregator._notify("on_stopped")


class DiscoveryAggregator(DiscoverySource):
    """
    Merges multiple discovery sources.

    Sightings and errors of all sources are forwarded unmodified. Start and
    stop events are only used for logging, so only those of the first
    source are forwarded.
    """

    def __init__(self):
        super().__init__()
        self.sources: List[DiscoverySource] = []
        self._started = False

    @property
    def running(self) -> bool:
        return any(source.running for source in self.sources)

    def add_source(self, source: DiscoverySource) -> None:
        """
        Add a discovery source. Must be called before ``start()``.

        Raises:
            RuntimeError: If the aggregator was already started
        """
        if self._started:
            raise RuntimeError("Discovery sources must be added before the aggregator is started")

        source.add_listener(_SourceForwarder(self, forward_lifecycle=not self.sources))
        self.sources.append(source)

    async def start(self) -> None:
        self._started = True
        await asyncio.gather(*(source.start() for source in self.sources))

    async def stop(self) -> None:
        results = await asyncio.gather(
            *(source.stop() for source in self.sources),
            return_exceptions=True,
        )

        for source, result in zip(self.sources, results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping {type(source).__name__}: {result}", exc_info=result)

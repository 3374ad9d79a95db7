"""Discovery event interface and listener fan-out."""

import logging
from typing import List

from .models import DiscoverySighting, TrackedDevice


logger = logging.getLogger(__name__)


class DiscoveryListener:
    """
    Receiver of discovery events.

    Discovery sources report ``on_sighting``, ``on_started``, ``on_stopped``
    and ``on_error``. The reachability tracker additionally reports
    ``on_discovered``, ``on_filtered``, ``on_reachable`` and ``on_unreachable``.
    Subclasses override the callbacks they are interested in.
    """

    def on_sighting(self, sighting: DiscoverySighting) -> None:
        pass

    def on_started(self) -> None:
        pass

    def on_stopped(self) -> None:
        pass

    def on_error(self, error: Exception) -> None:
        pass

    def on_discovered(self, device: TrackedDevice) -> None:
        pass

    def on_filtered(self, sighting: DiscoverySighting) -> None:
        pass

    def on_reachable(self, device: TrackedDevice) -> None:
        pass

    def on_unreachable(self, device: TrackedDevice) -> None:
        pass


class ListenerRegistry:
    """Observer list delivering events to every registered listener in order."""

    def __init__(self):
        self._listeners: List[DiscoveryListener] = []

    def add_listener(self, listener: DiscoveryListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: DiscoveryListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: str, *args) -> None:
        """Call ``event`` on all listeners; a failing listener does not stop the others."""
        for listener in list(self._listeners):
            try:
                getattr(listener, event)(*args)
            except Exception as e:
                logger.error(f"Error in {type(listener).__name__}.{event}: {e}", exc_info=True)

"""Plugin base classes and types."""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .rabbitmq_bus import RabbitMQEventBus


class PluginType(str, Enum):
    """Plugin type enumeration."""

    DEVICE = "device"
    SERVICE = "service"


class PluginState(str, Enum):
    """Plugin state enumeration."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


class PluginMetadata:
    """Plugin metadata."""

    def __init__(
        self,
        name: str,
        version: str,
        plugin_type: PluginType,
        description: str,
        capabilities: Optional[List[str]] = None,
    ):
        self.name = name
        self.version = version
        self.plugin_type = plugin_type
        self.description = description
        self.capabilities = capabilities or []


class PluginBase(ABC):
    """
    Base class for all plugins.

    Plugins talk to the rest of the hub through the event bus and implement
    the ``initialize`` / ``start`` / ``stop`` lifecycle. The ``run_*``
    wrappers track the plugin state and publish every change.
    """

    def __init__(
        self,
        plugin_id: str,
        metadata: PluginMetadata,
        config: Dict[str, Any],
        event_bus: RabbitMQEventBus,
    ):
        self.plugin_id = plugin_id
        self.metadata = metadata
        self.config = config
        self.event_bus = event_bus

        self._state = PluginState.UNINITIALIZED
        self._logger = logging.getLogger(f"plugin.{plugin_id}")
        self._background_tasks: List[asyncio.Task] = []

    @property
    def state(self) -> PluginState:
        return self._state

    async def _set_state(self, new_state: PluginState, details: Optional[Dict] = None) -> None:
        """Set plugin state and publish it."""
        old_state = self._state
        self._state = new_state

        self._logger.info(f"State changed: {old_state.value} -> {new_state.value}")

        await self.event_bus.publish_plugin_status(
            self.plugin_id,
            new_state.value,
            {"previous_state": old_state.value, **(details or {})},
        )

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the plugin.

        Validate configuration and build internal components, without
        touching the network yet.
        """

    @abstractmethod
    async def start(self) -> None:
        """
        Start the plugin.

        Open sockets, start background tasks, subscribe to bus topics.
        """

    @abstractmethod
    async def stop(self) -> None:
        """
        Stop the plugin.

        Stop background tasks and release network resources.
        """

    async def destroy(self) -> None:
        """Final cleanup before the plugin is dropped. Override if needed."""
        await self._cancel_background_tasks()

    async def health_check(self) -> Dict[str, Any]:
        """Health status of the plugin. Override to add details."""
        return {
            "healthy": self._state == PluginState.RUNNING,
            "state": self._state.value,
        }

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        """Run a coroutine in the background, keeping a reference until it is done."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.append(task)
        task.add_done_callback(self._background_task_done)
        return task

    def _background_task_done(self, task: asyncio.Task) -> None:
        if task in self._background_tasks:
            self._background_tasks.remove(task)

        if not task.cancelled() and task.exception() is not None:
            self._logger.error(f"Background task failed: {task.exception()}", exc_info=task.exception())

    async def _cancel_background_tasks(self) -> None:
        tasks = list(self._background_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_lifecycle(
        self,
        method: Callable[[], Awaitable[None]],
        starting_state: PluginState,
        success_state: PluginState,
    ) -> None:
        """Run a lifecycle method with state management and error handling."""
        try:
            await self._set_state(starting_state)
            await method()
            await self._set_state(success_state)

        except Exception as e:
            self._logger.error(f"Error during {method.__name__}: {e}", exc_info=True)
            await self._set_state(PluginState.ERROR, {"error": str(e), "method": method.__name__})
            raise

    async def run_initialize(self) -> None:
        await self._run_lifecycle(self.initialize, PluginState.INITIALIZING, PluginState.INITIALIZED)

    async def run_start(self) -> None:
        await self._run_lifecycle(self.start, PluginState.STARTING, PluginState.RUNNING)

    async def run_stop(self) -> None:
        await self._run_lifecycle(self.stop, PluginState.STOPPING, PluginState.STOPPED)

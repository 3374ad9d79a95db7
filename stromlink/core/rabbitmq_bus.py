"""RabbitMQ event bus connecting device plugins with the rest of the hub."""

import asyncio
import json
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import aio_pika
from aio_pika import ExchangeType, Message
from aio_pika.abc import AbstractIncomingMessage


logger = logging.getLogger(__name__)


class RabbitMQEventBus:
    """
    RabbitMQ topic exchange based event bus.

    Routing keys (prefixed with the exchange name):
        device.{device_id}.state        state attributes of a device
        device.{device_id}.available    availability (reachable / unreachable)
        device.{device_id}.command      commands for a device
        device.{device_id}.error        failed commands
        device.discovery.{device_id}    newly discovered device
        device.removed.{device_id}      removed device
        discovery.{plugin_id}.{event}   discovery lifecycle (started, stopped, error, filtered)
        plugin.{plugin_id}.status       plugin state changes
        system.{event_type}             system events
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5672,
        username: Optional[str] = "guest",
        password: Optional[str] = "guest",
        vhost: str = "/",
        exchange_name: str = "stromlink",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.vhost = vhost
        self.exchange_name = exchange_name

        self.connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self.channel: Optional[aio_pika.abc.AbstractChannel] = None
        self.exchange: Optional[aio_pika.abc.AbstractExchange] = None
        self.queue: Optional[aio_pika.abc.AbstractQueue] = None

        self._subscriptions: Dict[str, List[Callable]] = defaultdict(list)
        self._consumer_tag: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.connection is not None and not self.connection.is_closed

    async def connect(self) -> None:
        """Connect to the broker and declare the topic exchange."""
        logger.info(f"Connecting to RabbitMQ at {self.host}:{self.port}")

        vhost = self.vhost.lstrip("/")
        self.connection = await aio_pika.connect_robust(
            f"amqp://{self.username}:{self.password}@{self.host}:{self.port}/{vhost}",
            timeout=10,
        )

        self.channel = await self.connection.channel()
        await self.channel.set_qos(prefetch_count=10)

        self.exchange = await self.channel.declare_exchange(
            self.exchange_name,
            ExchangeType.TOPIC,
            durable=True,
        )

        # Exclusive queue for this hub instance, removed on disconnect
        self.queue = await self.channel.declare_queue(
            f"{self.exchange_name}_consumer_{id(self)}",
            auto_delete=True,
        )

        logger.info("Connected to RabbitMQ broker")

    async def disconnect(self) -> None:
        """Disconnect from the broker."""
        logger.info("Disconnecting from RabbitMQ broker")

        if self.channel and not self.channel.is_closed:
            await self.channel.close()

        if self.connection and not self.connection.is_closed:
            await self.connection.close()

        self._consumer_tag = None
        logger.info("Disconnected from RabbitMQ broker")

    async def publish(
        self,
        routing_key: str,
        payload: Dict[str, Any],
        persistent: bool = False,
    ) -> None:
        """
        Publish a JSON message.

        Args:
            routing_key: Routing key without exchange prefix
            payload: Message payload, a ``timestamp`` is added
            persistent: Survive a broker restart
        """
        if not self.exchange:
            raise RuntimeError("Not connected to RabbitMQ broker")

        full_routing_key = f"{self.exchange_name}.{routing_key}"

        body = json.dumps({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **payload,
        })

        await self.exchange.publish(
            Message(
                body=body.encode(),
                content_type="application/json",
                delivery_mode=(
                    aio_pika.DeliveryMode.PERSISTENT if persistent else aio_pika.DeliveryMode.NOT_PERSISTENT
                ),
            ),
            routing_key=full_routing_key,
        )

        logger.debug(f"Published to {full_routing_key}: {body[:100]}")

    async def subscribe(self, routing_pattern: str, callback: Callable[[str, Dict[str, Any]], Any]) -> None:
        """
        Subscribe to a routing pattern.

        Args:
            routing_pattern: Pattern without exchange prefix
                * matches exactly one word
                # matches zero or more words
            callback: Sync or async callback(routing_key, payload)
        """
        if not self.queue or not self.exchange:
            raise RuntimeError("Not connected to RabbitMQ broker")

        full_pattern = f"{self.exchange_name}.{routing_pattern}"

        await self.queue.bind(self.exchange, routing_key=full_pattern)
        self._subscriptions[full_pattern].append(callback)

        if self._consumer_tag is None:
            self._consumer_tag = await self.queue.consume(self._on_message)

        logger.info(f"Subscribed to {full_pattern}")

    async def unsubscribe(self, routing_pattern: str) -> None:
        """Unsubscribe all callbacks of a routing pattern."""
        if not self.queue or not self.exchange:
            return

        full_pattern = f"{self.exchange_name}.{routing_pattern}"
        self._subscriptions.pop(full_pattern, None)

        await self.queue.unbind(self.exchange, routing_key=full_pattern)
        logger.info(f"Unsubscribed from {full_pattern}")

    async def _on_message(self, message: AbstractIncomingMessage) -> None:
        async with message.process():
            try:
                payload = json.loads(message.body.decode())
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.error(f"Failed to decode payload on {message.routing_key}: {e}")
                return

            await self._dispatch_message(message.routing_key, payload)

    async def _dispatch_message(self, routing_key: str, payload: Dict[str, Any]) -> None:
        """Dispatch a message to all matching subscribers."""
        short_key = routing_key.replace(f"{self.exchange_name}.", "", 1)

        for pattern, callbacks in list(self._subscriptions.items()):
            if not self._pattern_matches(routing_key, pattern):
                continue

            for callback in callbacks:
                try:
                    if asyncio.iscoroutinefunction(callback):
                        await callback(short_key, payload)
                    else:
                        callback(short_key, payload)

                except Exception as e:
                    logger.error(f"Error in callback for {routing_key}: {e}", exc_info=True)

    @staticmethod
    def _pattern_matches(routing_key: str, pattern: str) -> bool:
        """
        Check if a routing key matches an AMQP topic pattern.

        * matches exactly one word, # matches zero or more words.
        """
        return RabbitMQEventBus._match_words(routing_key.split("."), pattern.split("."))

    @staticmethod
    def _match_words(words: List[str], pattern: List[str]) -> bool:
        if not pattern:
            return not words

        head, rest = pattern[0], pattern[1:]

        if head == "#":
            return any(
                RabbitMQEventBus._match_words(words[i:], rest)
                for i in range(len(words) + 1)
            )

        if not words:
            return False

        if head == "*" or head == words[0]:
            return RabbitMQEventBus._match_words(words[1:], rest)

        return False

    # Convenience methods for common routing keys

    async def publish_device_state(self, device_id: str, state: Dict[str, Any]) -> None:
        await self.publish(f"device.{device_id}.state", {"state": state})

    async def publish_device_available(self, device_id: str, available: bool) -> None:
        await self.publish(f"device.{device_id}.available", {"available": available}, persistent=True)

    async def publish_device_discovery(self, device_id: str, device: Dict[str, Any], plugin_id: str) -> None:
        await self.publish(f"device.discovery.{device_id}", {"device": device, "plugin_id": plugin_id})

    async def publish_device_removed(self, device_id: str, plugin_id: str) -> None:
        await self.publish(f"device.removed.{device_id}", {"plugin_id": plugin_id})

    async def publish_device_error(self, device_id: str, error: str, command: Optional[str] = None) -> None:
        await self.publish(f"device.{device_id}.error", {"error": error, "command": command})

    async def publish_discovery_event(self, plugin_id: str, event: str, data: Optional[Dict] = None) -> None:
        await self.publish(f"discovery.{plugin_id}.{event}", data or {})

    async def publish_plugin_status(self, plugin_id: str, status: str, details: Optional[Dict] = None) -> None:
        await self.publish(
            f"plugin.{plugin_id}.status",
            {"status": status, "details": details or {}},
        )

    async def publish_system_event(self, event_type: str, data: Optional[Dict] = None) -> None:
        await self.publish(f"system.{event_type}", data or {})

    async def subscribe_device_commands(self, device_id: str, callback: Callable) -> None:
        await self.subscribe(f"device.{device_id}.command", callback)

    async def unsubscribe_device_commands(self, device_id: str) -> None:
        await self.unsubscribe(f"device.{device_id}.command")

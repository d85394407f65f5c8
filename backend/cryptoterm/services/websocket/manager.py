"""
WebSocket manager for terminal subscribers.

Provides:
- Initial snapshot on connect, before the subscriber joins any broadcast
- Per-message command handling (refresh, details, whales, signals, help)
- Periodic broadcast of market, sentiment and signals to every subscriber
"""
import asyncio
import logging
from typing import Optional, Set

from fastapi import WebSocket

from ..external_data import ExternalDataService
from .messages import (
    Command,
    CommandError,
    DetailsCommand,
    DetailsMessage,
    ErrorMessage,
    HelpCommand,
    HelpMessage,
    InitialMessage,
    OutboundMessage,
    RefreshCommand,
    SignalsCommand,
    SignalsMessage,
    UpdateMessage,
    WhalesCommand,
    WhalesMessage,
    parse_command,
)
from .registry import Subscriber, SubscriberRegistry

logger = logging.getLogger(__name__)

DEFAULT_BROADCAST_INTERVAL = 30.0


class BroadcastScheduler:
    """Cancellable periodic broadcast loop.

    Each tick refreshes the fast-changing views and pushes an ``update`` to
    every registered subscriber. With nobody registered a tick does nothing,
    not even an upstream call.
    """

    def __init__(
        self,
        data_service: ExternalDataService,
        registry: SubscriberRegistry,
        interval: float = DEFAULT_BROADCAST_INTERVAL,
    ):
        self._data = data_service
        self._registry = registry
        self.interval = interval
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Broadcast scheduler started (every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Broadcast scheduler stopped")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Broadcast tick error: {e}")

    async def tick(self) -> int:
        """Run one broadcast pass.

        Returns:
            Number of subscribers reached (0 when the registry is empty).
        """
        if len(self._registry) == 0:
            logger.debug("Broadcast tick skipped, no subscribers")
            return 0

        update = await self._data.get_update()
        delivered = await self._registry.broadcast(UpdateMessage(data=update))
        logger.debug(f"Broadcast update to {delivered} subscriber(s), {len(update.signals)} signal(s)")
        return delivered


class WebSocketManager:
    """
    Central manager for terminal WebSocket operations.

    Handles:
    - Subscriber connect / disconnect
    - Command dispatch and replies
    - Broadcast scheduler lifecycle
    """

    def __init__(
        self,
        data_service: ExternalDataService,
        registry: Optional[SubscriberRegistry] = None,
        interval: float = DEFAULT_BROADCAST_INTERVAL,
    ):
        self._data = data_service
        self.registry = registry or SubscriberRegistry()
        self.scheduler = BroadcastScheduler(data_service, self.registry, interval=interval)
        self._command_tasks: Set[asyncio.Task] = set()

    async def start(self) -> None:
        await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()

        for task in list(self._command_tasks):
            task.cancel()
        self._command_tasks.clear()

        for subscriber in self.registry.snapshot():
            self.registry.remove(subscriber)
            try:
                await subscriber.channel.close()
            except Exception as e:
                logger.debug(f"Error closing subscriber {subscriber.id}: {e}")

        logger.info("WebSocketManager stopped")

    async def connect_client(self, websocket: WebSocket) -> Subscriber:
        """Accept a connection, send the full snapshot, then register it.

        Registration happens only after ``initial`` went out, so a broadcast
        can never reach a subscriber that has not seen the full view.
        """
        await websocket.accept()
        subscriber = Subscriber(channel=websocket)
        await self.send_snapshot(subscriber)
        self.registry.add(subscriber)
        return subscriber

    async def disconnect_client(self, subscriber: Subscriber) -> None:
        self.registry.remove(subscriber)

    async def send_snapshot(self, subscriber: Subscriber) -> None:
        snapshot = await self._data.get_snapshot()
        await subscriber.send(InitialMessage(data=snapshot))

    def dispatch(self, subscriber: Subscriber, raw: str) -> asyncio.Task:
        """Handle one inbound message in its own task."""
        task = asyncio.create_task(self.handle_client_message(subscriber, raw))
        self._command_tasks.add(task)
        task.add_done_callback(self._command_tasks.discard)
        return task

    async def handle_client_message(self, subscriber: Subscriber, raw: str) -> None:
        """Decode and execute a client command, replying to that client only."""
        try:
            command = parse_command(raw)
        except CommandError as e:
            logger.warning(f"Rejected message from subscriber {subscriber.id}: {e}")
            await self._reply(subscriber, ErrorMessage(data=str(e)))
            return

        try:
            reply = await self.execute(command)
        except Exception as e:
            logger.error(f"Error executing {command.type.value} for subscriber {subscriber.id}: {e}")
            reply = ErrorMessage(data="Error executing command")

        await self._reply(subscriber, reply)

    async def execute(self, command: Command) -> OutboundMessage:
        """Produce the reply for a decoded command."""
        if isinstance(command, RefreshCommand):
            return InitialMessage(data=await self._data.get_snapshot())
        if isinstance(command, DetailsCommand):
            return DetailsMessage(data=await self._data.market.get_asset_details(command.symbol))
        if isinstance(command, WhalesCommand):
            return WhalesMessage(data=await self._data.whales.get_recent_transfers())
        if isinstance(command, SignalsCommand):
            return SignalsMessage(data=await self._data.get_signals())
        if isinstance(command, HelpCommand):
            return HelpMessage()
        raise CommandError(f"Unknown command: {command}")

    async def _reply(self, subscriber: Subscriber, message: OutboundMessage) -> None:
        if not subscriber.alive:
            return
        try:
            await subscriber.send(message)
        except Exception as e:
            logger.warning(f"Reply to subscriber {subscriber.id} failed: {e}")
            self.registry.remove(subscriber)

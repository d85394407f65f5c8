"""Registry of connected terminal subscribers."""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import WebSocket

from .messages import OutboundMessage, encode_message

logger = logging.getLogger(__name__)

_subscriber_ids = itertools.count(1)

# A send slower than this counts as failed and drops the subscriber
DEFAULT_SEND_TIMEOUT = 10.0


@dataclass(eq=False)
class Subscriber:
    """One connected consumer.

    A subscriber is never reconnected: once ``alive`` is False the object is
    dead and a new connection gets a new Subscriber.
    """
    channel: WebSocket
    id: int = field(default_factory=lambda: next(_subscriber_ids))
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    alive: bool = True
    send_timeout: float = DEFAULT_SEND_TIMEOUT
    _send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def send(self, message: OutboundMessage) -> None:
        await self.send_payload(encode_message(message))

    async def send_payload(self, payload: Dict[str, Any]) -> None:
        """Send an already-encoded message; sends on one socket never interleave.

        Raises:
            asyncio.TimeoutError: the channel did not take the message within
                ``send_timeout`` seconds (a stuck peer).
        """
        await asyncio.wait_for(self._send_locked(payload), timeout=self.send_timeout)

    async def _send_locked(self, payload: Dict[str, Any]) -> None:
        async with self._send_lock:
            await self.channel.send_json(payload)


class SubscriberRegistry:
    """Set of live subscribers keyed by channel.

    Broadcasts iterate over a snapshot of the membership, so connects and
    disconnects during a broadcast neither block it nor break iteration.
    """

    def __init__(self):
        self._subscribers: Dict[WebSocket, Subscriber] = {}

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: Subscriber) -> bool:
        return self._subscribers.get(subscriber.channel) is subscriber

    def add(self, subscriber: Subscriber) -> None:
        self._subscribers[subscriber.channel] = subscriber
        logger.info(f"Subscriber {subscriber.id} connected. Total subscribers: {len(self)}")

    def remove(self, subscriber: Subscriber) -> bool:
        """Mark a subscriber dead and drop it. Returns False if it was not registered."""
        subscriber.alive = False
        if self._subscribers.get(subscriber.channel) is not subscriber:
            return False
        del self._subscribers[subscriber.channel]
        logger.info(f"Subscriber {subscriber.id} disconnected. Total subscribers: {len(self)}")
        return True

    def snapshot(self) -> List[Subscriber]:
        return list(self._subscribers.values())

    async def broadcast(self, message: OutboundMessage) -> int:
        """Send a message to every current subscriber.

        A failed or timed-out send drops that subscriber and never affects
        the others, so one stuck socket cannot stall the broadcast.

        Returns:
            Number of subscribers the message was delivered to.
        """
        members = self.snapshot()
        if not members:
            return 0

        payload = encode_message(message)
        results = await asyncio.gather(
            *(member.send_payload(payload) for member in members),
            return_exceptions=True,
        )

        delivered = 0
        for member, result in zip(members, results):
            if isinstance(result, BaseException):
                logger.warning(f"Dropping subscriber {member.id} after failed send: {result!r}")
                self.remove(member)
            else:
                delivered += 1
        return delivered

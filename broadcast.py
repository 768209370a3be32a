"""In-memory fan-out of room events to push subscribers (WebSocket and SSE).

Delivery is best-effort and at-most-once. ``publish`` only enqueues onto each
subscriber's bounded queue, in call order, so a slow socket never blocks a
writer; a subscriber that is closed or has fallen a full queue behind is
dropped and gets nothing further. There is no retry.
"""
import asyncio
import json
from collections import defaultdict
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, Optional, Set, Union

from constants import HEARTBEAT_INTERVAL_SECONDS, SUBSCRIBER_QUEUE_SIZE
from logging_config import get_logger

logger = get_logger(__name__)

EVENT_INIT = "init"
EVENT_FILE_UPDATE = "file:update"
EVENT_FILE_CREATE = "file:create"
EVENT_FILE_DELETE = "file:delete"
EVENT_FILE_RENAME = "file:rename"
EVENT_PRESENCE = "presence"

EVENT_TYPES = (EVENT_INIT, EVENT_FILE_UPDATE, EVENT_FILE_CREATE, EVENT_FILE_DELETE, EVENT_FILE_RENAME, EVENT_PRESENCE)


@dataclass(frozen=True)
class Event:
    type: str
    data: dict


class Heartbeat:
    """Keep-alive marker yielded by idle subscriptions. Carries no payload."""

    def __repr__(self) -> str:
        return "HEARTBEAT"


HEARTBEAT = Heartbeat()


def format_sse(item: Union[Event, Heartbeat]) -> str:
    if item is HEARTBEAT:
        # comment line, ignored by EventSource
        return ": heartbeat\n\n"
    return f"event: {item.type}\ndata: {json.dumps(item.data)}\n\n"


def format_ws(item: Union[Event, Heartbeat]) -> str:
    if item is HEARTBEAT:
        return json.dumps({"type": "heartbeat"})
    return json.dumps({"type": item.type, "data": item.data})


@dataclass(eq=False)
class Subscription:
    room_id: str
    user_name: str
    queue: asyncio.Queue
    closed: bool = False

    def deliver(self, event: Event) -> bool:
        if self.closed:
            return False
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        self.closed = True

    async def events(self, heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS) -> AsyncIterator[Union[Event, Heartbeat]]:
        """Yield queued events in order, or HEARTBEAT after ``heartbeat_interval`` idle seconds."""
        while not self.closed:
            try:
                event = await asyncio.wait_for(self.queue.get(), timeout=heartbeat_interval)
            except asyncio.TimeoutError:
                if self.closed:
                    return
                yield HEARTBEAT
                continue
            yield event


class BroadcastHub:
    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: Dict[str, Set[Subscription]] = defaultdict(set)
        # Guards the subscriber sets only; never held across store writes or socket I/O
        self._lock = asyncio.Lock()

    async def subscribe(self, room_id: str, user_name: str, snapshot_fn: Callable[[], dict]) -> Subscription:
        """Register a subscriber and queue its ``init`` snapshot ahead of any other event.

        ``snapshot_fn`` is called after the lock is taken, with no await between
        the read and the registration, so no publish can slip in between them.
        """
        subscription = Subscription(room_id, user_name, asyncio.Queue(maxsize=self.queue_size))
        async with self._lock:
            subscription.deliver(Event(EVENT_INIT, snapshot_fn()))
            self._subscribers[room_id].add(subscription)
            count = len(self._subscribers[room_id])
        logger.info(f"{user_name} subscribed to room {room_id} (local subscribers: {count})")
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        async with self._lock:
            self._discard(subscription)
        logger.info(f"{subscription.user_name} unsubscribed from room {subscription.room_id}")

    async def publish(self, room_id: str, event_type: str, payload: dict, exclude_user: Optional[str] = None) -> int:
        """Queue an event for every subscriber of ``room_id`` except those of ``exclude_user``.

        Returns how many subscribers it was queued for.
        """
        event = Event(event_type, payload)
        delivered = 0
        async with self._lock:
            for subscription in list(self._subscribers.get(room_id, ())):
                if exclude_user is not None and subscription.user_name == exclude_user:
                    continue
                if subscription.deliver(event):
                    delivered += 1
                else:
                    logger.warning(f"Dropping subscriber {subscription.user_name} in room {room_id}: channel closed or too far behind")
                    subscription.close()
                    self._discard(subscription)
        logger.debug(f"Published {event_type} to {delivered} subscribers in room {room_id}")
        return delivered

    def subscribers(self, room_id: str) -> Set[Subscription]:
        return set(self._subscribers.get(room_id, ()))

    def _discard(self, subscription: Subscription) -> None:
        room_subscribers = self._subscribers.get(subscription.room_id)
        if room_subscribers is None:
            return
        room_subscribers.discard(subscription)
        if not room_subscribers:
            del self._subscribers[subscription.room_id]

import asyncio
import logging
import uuid
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from festfm_models.events import BroadcastEvent, EventType

from festfm_backend.core.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class EventBroadcaster:
    """
    Fans out sequenced tally/queue/playback snapshots to subscriber queues.

    Sequence numbers are strictly increasing for the lifetime of the
    broadcaster. Recent events are kept in a bounded replay buffer so a
    client that noticed a gap can resubscribe with ``since`` and catch up.
    """

    def __init__(self, queue_maxsize: int = 100, replay_size: int = 256, clock: Clock = utc_now):
        """
        Initialize the event broadcaster.

        Args:
            queue_maxsize: Maximum number of undelivered events per subscriber
            replay_size: Number of recent events kept for gap recovery
            clock: Source of event timestamps
        """
        self.queue_maxsize = queue_maxsize
        self.clock = clock
        self._subscribers: Dict[str, asyncio.Queue] = {}
        self._replay: Deque[BroadcastEvent] = deque(maxlen=replay_size)
        self._sequence = 0
        self._running = False
        self._lock = asyncio.Lock()

    @property
    def last_sequence(self) -> int:
        return self._sequence

    async def start(self) -> None:
        """Start the broadcaster and initialize subscriber registry."""
        async with self._lock:
            if self._running:
                logger.warning("Broadcaster is already running")
                return

            self._running = True
            self._subscribers = {}
            logger.info("Event broadcaster started")

    async def stop(self) -> None:
        """Stop the broadcaster and close all subscriber queues."""
        async with self._lock:
            if not self._running:
                return

            self._running = False

            subscriber_count = len(self._subscribers)
            for queue in self._subscribers.values():
                # None tells the stream generator to finish
                try:
                    queue.put_nowait(None)
                except asyncio.QueueFull:
                    pass

            self._subscribers.clear()
            logger.info(f"Event broadcaster stopped. Cleaned up {subscriber_count} subscribers")

    async def publish(self, event_type: EventType, payload: Dict[str, Any]) -> Optional[BroadcastEvent]:
        """
        Assign the next sequence number to a payload and fan it out.
        Drops slow subscribers whose queues are full.

        Args:
            event_type: Kind of snapshot being published
            payload: JSON-serializable snapshot body

        Returns:
            The published event, or None if the broadcaster is not running
        """
        if not self._running:
            logger.warning("Broadcaster not running, ignoring event", extra={"type": event_type.value})
            return None

        async with self._lock:
            self._sequence += 1
            event = BroadcastEvent(
                sequence_number=self._sequence,
                type=event_type,
                payload=payload,
                emitted_at=self.clock(),
            )
            self._replay.append(event)
            subscribers = dict(self._subscribers)

        dropped_subscribers = []
        for subscriber_id, queue in subscribers.items():
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Subscriber {subscriber_id} queue is full, dropping subscriber")
                dropped_subscribers.append(subscriber_id)

        if dropped_subscribers:
            async with self._lock:
                for subscriber_id in dropped_subscribers:
                    if self._subscribers.pop(subscriber_id, None) is not None:
                        logger.info(f"Removed subscriber {subscriber_id} (total subscribers: {len(self._subscribers)})")

        return event

    async def events_since(self, since: int) -> List[BroadcastEvent]:
        async with self._lock:
            return [event for event in self._replay if event.sequence_number > since]

    async def subscribe(self, since: Optional[int] = None) -> Tuple[str, asyncio.Queue]:
        """
        Subscribe a new client, optionally replaying buffered events after ``since``.

        Returns:
            Tuple of (subscriber_id, queue) where queue yields BroadcastEvent items
        """
        if not self._running:
            raise RuntimeError("Broadcaster is not running")

        subscriber_id = str(uuid.uuid4())
        async with self._lock:
            backlog = [event for event in self._replay if since is not None and event.sequence_number > since]
            queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_maxsize + len(backlog))
            for event in backlog:
                queue.put_nowait(event)
            self._subscribers[subscriber_id] = queue
            logger.info(f"Subscriber {subscriber_id} connected (total subscribers: {len(self._subscribers)})")

        return subscriber_id, queue

    async def unsubscribe(self, subscriber_id: str) -> None:
        async with self._lock:
            if self._subscribers.pop(subscriber_id, None) is not None:
                logger.info(f"Subscriber {subscriber_id} disconnected (total subscribers: {len(self._subscribers)})")

    async def get_subscriber_count(self) -> int:
        async with self._lock:
            return len(self._subscribers)

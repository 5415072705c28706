import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from festfm_models.events import EventType
from festfm_models.playback import WAITING_FOR_VOTES, PlaybackSnapshot, PlaybackState
from festfm_models.queue import QueueEntryStatus

from festfm_backend.core.broadcaster import EventBroadcaster
from festfm_backend.core.clock import Clock, utc_now
from festfm_backend.core.queue import QueueEngine
from festfm_backend.errors import QueueEmpty, Unauthorized

logger = logging.getLogger(__name__)

AdvanceListener = Callable[[PlaybackSnapshot], Awaitable[None]]


class PlaybackSession:
    """
    Owns the "now playing" slot for one stage.

    Every transition runs under the session lock. A finish or skip request
    remembers which entry was playing when it arrived; if another advance
    has replaced that entry by the time the lock is acquired, the request
    is a no-op and returns the current state.
    """

    def __init__(
        self,
        queue: QueueEngine,
        clock: Clock = utc_now,
        broadcaster: Optional[EventBroadcaster] = None,
    ):
        self.queue = queue
        self.clock = clock
        self.broadcaster = broadcaster
        self._lock = asyncio.Lock()
        self._state = PlaybackState.EMPTY
        self._current_entry_id: Optional[str] = None
        self._advance_listeners: List[AdvanceListener] = []

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def current_entry_id(self) -> Optional[str]:
        return self._current_entry_id

    def add_advance_listener(self, listener: AdvanceListener) -> None:
        self._advance_listeners.append(listener)

    async def restore(self) -> PlaybackSnapshot:
        """Pick up a playing entry left in the store by a previous process."""
        async with self._lock:
            playing = await self.queue.entry_with_status(QueueEntryStatus.PLAYING)
            if playing is not None:
                self._current_entry_id = playing.entry_id
                self._state = PlaybackState.PLAYING
                logger.info("Restored playback", extra={"entryId": playing.entry_id, "trackId": playing.track_id})
        return await self.snapshot()

    async def refill(self) -> PlaybackSnapshot:
        """Start playback from empty, or fill an empty next slot while playing."""
        advanced = False
        promoted = False
        async with self._lock:
            if self._state == PlaybackState.EMPTY:
                advanced = await self._advance_locked("start")
            elif await self.queue.entry_with_status(QueueEntryStatus.NEXT) is None:
                try:
                    await self.queue.promote_top()
                    promoted = True
                except QueueEmpty:
                    pass
        if promoted:
            await self.queue.publish()
        return await self._after_transition(advanced)

    async def track_finished(self, entry_id: Optional[str] = None) -> PlaybackSnapshot:
        return await self._request_advance("finished", entry_id)

    async def skip(self, authorized: bool, entry_id: Optional[str] = None) -> PlaybackSnapshot:
        if not authorized:
            raise Unauthorized()
        return await self._request_advance("skip", entry_id)

    async def _request_advance(self, reason: str, entry_id: Optional[str]) -> PlaybackSnapshot:
        observed = self._current_entry_id
        advanced = False
        async with self._lock:
            current = self._current_entry_id
            if self._state == PlaybackState.EMPTY or current is None:
                logger.info("Advance ignored, nothing playing", extra={"reason": reason})
            elif current != observed or (entry_id is not None and entry_id != current):
                logger.info(
                    "Advance ignored, already advanced",
                    extra={"reason": reason, "requested": entry_id or observed, "current": current},
                )
            else:
                advanced = await self._advance_locked(reason)
        return await self._after_transition(advanced)

    async def _advance_locked(self, reason: str) -> bool:
        """Returns False when nothing changed (empty session and empty queue)."""
        previous_state = self._state
        self._state = PlaybackState.ADVANCING
        try:
            return await self._advance_steps(reason, previous_state)
        except Exception:
            # A store failure leaves the slot as it was so a retry can advance it.
            self._state = previous_state
            raise

    async def _advance_steps(self, reason: str, previous_state: PlaybackState) -> bool:
        now = self.clock()

        finished = None
        if self._current_entry_id is not None:
            finished = await self.queue.entry_with_status(QueueEntryStatus.PLAYING)
            if finished is not None:
                await self.queue.mark_played(finished, now)

        upcoming = await self.queue.entry_with_status(QueueEntryStatus.NEXT)
        if upcoming is None:
            try:
                upcoming = await self.queue.promote_top()
            except QueueEmpty:
                upcoming = None

        if upcoming is None:
            self._state = PlaybackState.EMPTY
            self._current_entry_id = None
            logger.info("Queue empty, waiting for votes", extra={"reason": reason})
            return finished is not None or previous_state != PlaybackState.EMPTY

        await self.queue.mark_playing(upcoming, now)
        self._current_entry_id = upcoming.entry_id
        self._state = PlaybackState.PLAYING
        logger.info(
            "Now playing",
            extra={"reason": reason, "entryId": upcoming.entry_id, "trackId": upcoming.track_id},
        )

        try:
            await self.queue.promote_top()
        except QueueEmpty:
            logger.info("Next slot empty, waiting for votes")
        return True

    async def _after_transition(self, advanced: bool) -> PlaybackSnapshot:
        snapshot = await self.snapshot()
        if advanced:
            if self.broadcaster is not None:
                await self.broadcaster.publish(EventType.PLAYBACK, snapshot.model_dump(by_alias=True, mode="json"))
            await self.queue.publish()
            for listener in self._advance_listeners:
                await listener(snapshot)
        return snapshot

    async def snapshot(self) -> PlaybackSnapshot:
        playing = await self.queue.entry_with_status(QueueEntryStatus.PLAYING)
        upcoming = await self.queue.entry_with_status(QueueEntryStatus.NEXT)
        now_playing = await self.queue.item_for(playing)
        next_up = await self.queue.item_for(upcoming)

        elapsed = 0.0
        remaining = 0.0
        started_at = playing.started_at if playing else None
        if started_at is not None:
            elapsed = max(0.0, (self.clock() - started_at).total_seconds())
            if now_playing and now_playing.track:
                elapsed = min(elapsed, float(now_playing.track.duration_seconds))
                remaining = float(now_playing.track.duration_seconds) - elapsed

        return PlaybackSnapshot(
            state=self._state,
            now_playing=now_playing,
            next_up=next_up,
            started_at=started_at,
            elapsed_seconds=elapsed,
            remaining_seconds=remaining,
            message=WAITING_FOR_VOTES if self._state == PlaybackState.EMPTY else None,
        )

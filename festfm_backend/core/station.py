import asyncio
import logging
from typing import Dict, List, Optional

from festfm_models.playback import PlaybackSnapshot
from festfm_models.queue import QueueEntry, QueueSnapshot
from festfm_models.round import RoundStatus, VoteResult, VotingRound
from festfm_models.track import Track, TrackCreate

from festfm_backend.config import Settings
from festfm_backend.core.broadcaster import EventBroadcaster
from festfm_backend.core.catalog import TrackCatalog
from festfm_backend.core.clock import Clock, utc_now
from festfm_backend.core.playback import PlaybackSession
from festfm_backend.core.queue import QueueEngine
from festfm_backend.core.voting import VotingService
from festfm_backend.errors import FestFMError, Unauthorized
from festfm_backend.services.repository import Repository

logger = logging.getLogger(__name__)


class Station:
    """Wires catalog, voting, queue and playback together and runs the round and track timers."""

    def __init__(
        self,
        repository: Repository,
        settings: Settings,
        clock: Clock = utc_now,
        broadcaster: Optional[EventBroadcaster] = None,
    ):
        self.repository = repository
        self.settings = settings
        self.clock = clock
        self.broadcaster = broadcaster or EventBroadcaster(
            queue_maxsize=settings.subscriber_queue_size,
            replay_size=settings.replay_buffer_size,
            clock=clock,
        )
        self.catalog = TrackCatalog(repository, clock)
        self.queue = QueueEngine(repository, clock, self.broadcaster)
        self.voting = VotingService(
            repository,
            self.queue,
            clock,
            self.broadcaster,
            default_duration_seconds=settings.round_duration_seconds,
        )
        self.playback = PlaybackSession(self.queue, clock, self.broadcaster)
        self.voting.add_close_listener(self._on_round_closed)
        self.playback.add_advance_listener(self._on_advanced)

        self._is_running = False
        self._close_task: Optional[asyncio.Task] = None
        self._finish_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self._is_running:
            logger.warning("Station is already running")
            return

        self._is_running = True
        await self.broadcaster.start()

        current = await self.voting.current_round()
        if current and current.status == RoundStatus.OPEN:
            self._schedule_close(current)

        snapshot = await self.playback.restore()
        self._schedule_finish(snapshot)
        await self.playback.refill()
        logger.info("Station started")

    async def stop(self) -> None:
        if not self._is_running:
            return

        for task in (self._close_task, self._finish_task):
            await _cancel_and_wait(task)
        self._close_task = None
        self._finish_task = None
        await self.broadcaster.stop()
        self._is_running = False
        logger.info("Station stopped")

    # Catalog

    async def add_track(self, payload: TrackCreate, authorized: bool) -> Track:
        if not authorized:
            raise Unauthorized()
        return await self.catalog.add_track(payload)

    async def delete_track(self, track_id: str, authorized: bool) -> None:
        await self.catalog.delete_track(track_id, authorized)

    async def list_tracks(self, search: Optional[str] = None) -> List[Track]:
        return await self.catalog.list_tracks(search)

    # Voting

    async def open_round(
        self,
        candidate_track_ids: List[str],
        duration_seconds: Optional[int],
        authorized: bool,
    ) -> VotingRound:
        voting_round = await self.voting.open_round(candidate_track_ids, duration_seconds, authorized)
        self._schedule_close(voting_round)
        return voting_round

    async def submit_vote(self, round_id: str, voter_id: str, track_id: str) -> VoteResult:
        return await self.voting.cast_vote(round_id, voter_id, track_id)

    async def force_close(self, round_id: str, authorized: bool) -> Dict[str, int]:
        return await self.voting.force_close(round_id, authorized)

    # Queue and playback

    async def enqueue(self, track_id: str, authorized: bool) -> QueueEntry:
        if not authorized:
            raise Unauthorized()
        entry = await self.queue.enqueue(track_id)
        await self.queue.publish()
        await self.playback.refill()
        return entry

    async def queue_snapshot(self) -> QueueSnapshot:
        return await self.queue.snapshot()

    async def skip(self, authorized: bool, entry_id: Optional[str] = None) -> PlaybackSnapshot:
        return await self.playback.skip(authorized, entry_id)

    async def track_finished(self, authorized: bool, entry_id: Optional[str] = None) -> PlaybackSnapshot:
        if not authorized:
            raise Unauthorized()
        return await self.playback.track_finished(entry_id)

    async def playback_snapshot(self) -> PlaybackSnapshot:
        return await self.playback.snapshot()

    # Timers

    async def _on_round_closed(self, voting_round: VotingRound) -> None:
        await self.playback.refill()

    async def _on_advanced(self, snapshot: PlaybackSnapshot) -> None:
        self._schedule_finish(snapshot)

    def _schedule_close(self, voting_round: VotingRound) -> None:
        if not self._is_running:
            return
        _cancel(self._close_task)
        delay = max(0.0, (voting_round.ends_at - self.clock()).total_seconds())
        self._close_task = asyncio.create_task(self._close_when_due(voting_round.round_id, delay))
        logger.info("Scheduled round close", extra={"roundId": voting_round.round_id, "delaySeconds": delay})

    async def _close_when_due(self, round_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        while self._is_running:
            try:
                await self.voting.close_round(round_id)
                return
            except asyncio.CancelledError:
                raise
            except FestFMError as e:
                logger.error(f"Scheduled close of round {round_id} rejected: {e.message}")
                return
            except Exception as e:
                logger.error(f"Error closing round {round_id}: {e}", exc_info=True)
                await asyncio.sleep(self.settings.timer_retry_seconds)

    def _schedule_finish(self, snapshot: PlaybackSnapshot) -> None:
        _cancel(self._finish_task)
        self._finish_task = None
        if not self._is_running or not self.settings.auto_advance or snapshot.now_playing is None:
            return
        entry_id = snapshot.now_playing.entry.entry_id
        self._finish_task = asyncio.create_task(self._finish_when_due(entry_id, snapshot.remaining_seconds))

    async def _finish_when_due(self, entry_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        while self._is_running:
            try:
                snapshot = await self.playback.track_finished(entry_id)
                if self._finish_task is asyncio.current_task():
                    # No listener rescheduled us, e.g. an earlier attempt already advanced.
                    self._schedule_finish(snapshot)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error finishing entry {entry_id}: {e}", exc_info=True)
                await asyncio.sleep(self.settings.timer_retry_seconds)


def _cancel(task: Optional[asyncio.Task]) -> None:
    # A timer may end up rescheduling itself through a listener.
    if task is not None and not task.done() and task is not asyncio.current_task():
        task.cancel()


async def _cancel_and_wait(task: Optional[asyncio.Task]) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass

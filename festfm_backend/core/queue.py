import asyncio
import logging
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from festfm_models.events import EventType
from festfm_models.queue import QueueEntry, QueueEntryStatus, QueueItem, QueueSnapshot
from festfm_models.round import RoundStatus, VotingRound
from festfm_models.track import Track

from festfm_backend.core.broadcaster import EventBroadcaster
from festfm_backend.core.clock import Clock, utc_now
from festfm_backend.core.ranking import effective_votes, rank_entries
from festfm_backend.errors import QueueEmpty, UnknownTrack
from festfm_backend.services.repository import Repository

logger = logging.getLogger(__name__)


class QueueEngine:
    """Ranks queued entries and moves them through queued -> next -> playing -> played."""

    def __init__(
        self,
        repository: Repository,
        clock: Clock = utc_now,
        broadcaster: Optional[EventBroadcaster] = None,
    ):
        self.repository = repository
        self.clock = clock
        self.broadcaster = broadcaster
        self._lock = asyncio.Lock()

    async def open_round(self) -> Optional[VotingRound]:
        round_id = await self.repository.get_current_round_id()
        if not round_id:
            return None
        voting_round = await self.repository.get_round(round_id)
        if voting_round is None or voting_round.status != RoundStatus.OPEN:
            return None
        return voting_round

    async def recompute_order(self, voting_round: Optional[VotingRound] = None) -> List[str]:
        entries = await self.repository.list_entries()
        tally = voting_round.tally if voting_round else None
        return [entry.track_id for entry in rank_entries(entries, tally)]

    async def entry_with_status(self, status: QueueEntryStatus) -> Optional[QueueEntry]:
        matches = [entry for entry in await self.repository.list_entries() if entry.status == status]
        if not matches:
            return None
        return min(matches, key=lambda entry: (entry.promoted_at or entry.added_at, entry.entry_id))

    async def active_entry(self, track_id: str) -> Optional[QueueEntry]:
        for entry in await self.repository.list_entries():
            if entry.track_id == track_id and entry.is_active:
                return entry
        return None

    async def enqueue(self, track_id: str) -> QueueEntry:
        if await self.repository.get_track(track_id) is None:
            raise UnknownTrack(f"Track {track_id} not found")
        async with self._lock:
            entries = await self._ensure_queued([track_id])
        return entries[0]

    async def ensure_candidates(self, track_ids: Iterable[str]) -> List[QueueEntry]:
        async with self._lock:
            return await self._ensure_queued(track_ids)

    async def _ensure_queued(self, track_ids: Iterable[str]) -> List[QueueEntry]:
        entries = await self.repository.list_entries()
        result = []
        for track_id in track_ids:
            existing = next((entry for entry in entries if entry.track_id == track_id and entry.is_active), None)
            if existing is not None:
                result.append(existing)
                continue
            entry = QueueEntry(entry_id=str(uuid.uuid4()), track_id=track_id, added_at=self.clock())
            await self.repository.save_entry(entry)
            entries.append(entry)
            result.append(entry)
            logger.info("Queued track", extra={"trackId": track_id, "entryId": entry.entry_id})
        return result

    async def apply_tally(self, voting_round: VotingRound) -> None:
        """Copy a closed round's final tally onto the candidates still waiting in the queue."""
        async with self._lock:
            for entry in await self.repository.list_entries():
                if entry.status == QueueEntryStatus.QUEUED and entry.track_id in voting_round.tally:
                    entry.vote_count = voting_round.tally[entry.track_id]
                    await self.repository.save_entry(entry)

    async def promote_top(self) -> QueueEntry:
        async with self._lock:
            entries = await self.repository.list_entries()
            current_next = [entry for entry in entries if entry.status == QueueEntryStatus.NEXT]
            if current_next:
                return current_next[0]

            open_round = await self.open_round()
            tally = open_round.tally if open_round else None
            ranked = rank_entries(entries, tally)
            if not ranked:
                raise QueueEmpty()

            top = ranked[0]
            top.vote_count_at_promotion = effective_votes(top, tally)
            top.status = QueueEntryStatus.NEXT
            top.promoted_at = self.clock()
            await self.repository.save_entry(top)
            logger.info(
                "Promoted track to next",
                extra={"trackId": top.track_id, "entryId": top.entry_id, "votes": top.vote_count_at_promotion},
            )
            return top

    async def mark_playing(self, entry: QueueEntry, now: datetime) -> QueueEntry:
        async with self._lock:
            entry.status = QueueEntryStatus.PLAYING
            entry.started_at = now
            await self.repository.save_entry(entry)
            return entry

    async def mark_played(self, entry: QueueEntry, now: datetime) -> QueueEntry:
        async with self._lock:
            entry.status = QueueEntryStatus.PLAYED
            entry.finished_at = now
            await self.repository.save_entry(entry)
            return entry

    async def item_for(self, entry: Optional[QueueEntry], tally: Optional[Dict[str, int]] = None) -> Optional[QueueItem]:
        if entry is None:
            return None
        track = await self.repository.get_track(entry.track_id)
        votes = entry.vote_count_at_promotion if entry.vote_count_at_promotion is not None else effective_votes(entry, tally)
        return QueueItem(entry=entry, track=track, votes=votes)

    async def snapshot(self, voting_round: Optional[VotingRound] = None) -> QueueSnapshot:
        if voting_round is None:
            voting_round = await self.open_round()
        tally = voting_round.tally if voting_round and voting_round.status == RoundStatus.OPEN else None

        entries = await self.repository.list_entries()
        tracks: Dict[str, Optional[Track]] = {}
        for entry in entries:
            if entry.is_active and entry.track_id not in tracks:
                tracks[entry.track_id] = await self.repository.get_track(entry.track_id)

        queued = [
            QueueItem(entry=entry, track=tracks.get(entry.track_id), votes=effective_votes(entry, tally), position=index)
            for index, entry in enumerate(rank_entries(entries, tally), start=1)
        ]
        playing = next((entry for entry in entries if entry.status == QueueEntryStatus.PLAYING), None)
        next_up = next((entry for entry in entries if entry.status == QueueEntryStatus.NEXT), None)

        return QueueSnapshot(
            now_playing=await self.item_for(playing, tally),
            next_up=await self.item_for(next_up, tally),
            queued=queued,
            played_count=sum(1 for entry in entries if entry.status == QueueEntryStatus.PLAYED),
            round_id=voting_round.round_id if voting_round else None,
        )

    async def publish(self, voting_round: Optional[VotingRound] = None) -> None:
        if self.broadcaster is None:
            return
        snapshot = await self.snapshot(voting_round)
        await self.broadcaster.publish(EventType.QUEUE, snapshot.model_dump(by_alias=True, mode="json"))

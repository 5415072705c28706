import abc
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from festfm_models.queue import QueueEntry
from festfm_models.round import RoundStatus, VotingRound
from festfm_models.track import Track


class VoteRecordStatus(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    CLOSED = "closed"
    UNKNOWN_CANDIDATE = "unknown_candidate"


@dataclass(frozen=True)
class VoteRecord:
    status: VoteRecordStatus
    tally: Dict[str, int] = field(default_factory=dict)


class Repository(abc.ABC):
    """Storage boundary for tracks, rounds and queue entries.

    ``record_vote`` and ``close_round`` must be atomic with respect to each
    other for the same round: a vote counts only if the round is still open
    and ``now`` is before its end at the moment the ledger and tally change.
    """

    # Tracks

    @abc.abstractmethod
    async def add_track(self, track: Track) -> None: ...

    @abc.abstractmethod
    async def get_track(self, track_id: str) -> Optional[Track]: ...

    @abc.abstractmethod
    async def list_tracks(self) -> List[Track]: ...

    @abc.abstractmethod
    async def delete_track(self, track_id: str) -> bool: ...

    # Rounds

    @abc.abstractmethod
    async def create_round(self, voting_round: VotingRound) -> None:
        """Store a new open round and make it the current one."""

    @abc.abstractmethod
    async def get_round(self, round_id: str) -> Optional[VotingRound]: ...

    @abc.abstractmethod
    async def get_current_round_id(self) -> Optional[str]: ...

    @abc.abstractmethod
    async def record_vote(self, round_id: str, voter_id: str, track_id: str, now: datetime) -> VoteRecord: ...

    @abc.abstractmethod
    async def close_round(self, round_id: str, closed_at: datetime) -> Tuple[Optional[VotingRound], bool]:
        """Freeze a round. Returns the stored round and whether this call closed it."""

    # Queue

    @abc.abstractmethod
    async def save_entry(self, entry: QueueEntry) -> None: ...

    @abc.abstractmethod
    async def get_entry(self, entry_id: str) -> Optional[QueueEntry]: ...

    @abc.abstractmethod
    async def list_entries(self) -> List[QueueEntry]: ...


class InMemoryRepository(Repository):
    """Process-local store. Nothing here awaits, so each call runs without interleaving."""

    def __init__(self) -> None:
        self._tracks: Dict[str, Track] = {}
        self._rounds: Dict[str, VotingRound] = {}
        self._current_round_id: Optional[str] = None
        self._entries: Dict[str, QueueEntry] = {}

    async def add_track(self, track: Track) -> None:
        self._tracks[track.id] = track

    async def get_track(self, track_id: str) -> Optional[Track]:
        return self._tracks.get(track_id)

    async def list_tracks(self) -> List[Track]:
        return list(self._tracks.values())

    async def delete_track(self, track_id: str) -> bool:
        return self._tracks.pop(track_id, None) is not None

    async def create_round(self, voting_round: VotingRound) -> None:
        self._rounds[voting_round.round_id] = voting_round.model_copy(deep=True)
        self._current_round_id = voting_round.round_id

    async def get_round(self, round_id: str) -> Optional[VotingRound]:
        stored = self._rounds.get(round_id)
        return stored.model_copy(deep=True) if stored else None

    async def get_current_round_id(self) -> Optional[str]:
        return self._current_round_id

    async def record_vote(self, round_id: str, voter_id: str, track_id: str, now: datetime) -> VoteRecord:
        stored = self._rounds.get(round_id)
        if stored is None or not stored.accepts_votes_at(now):
            return VoteRecord(VoteRecordStatus.CLOSED, dict(stored.tally) if stored else {})
        if track_id not in stored.tally:
            return VoteRecord(VoteRecordStatus.UNKNOWN_CANDIDATE, dict(stored.tally))
        if voter_id in stored.voter_ledger:
            return VoteRecord(VoteRecordStatus.DUPLICATE, dict(stored.tally))
        stored.voter_ledger.add(voter_id)
        stored.tally[track_id] += 1
        return VoteRecord(VoteRecordStatus.ACCEPTED, dict(stored.tally))

    async def close_round(self, round_id: str, closed_at: datetime) -> Tuple[Optional[VotingRound], bool]:
        stored = self._rounds.get(round_id)
        if stored is None:
            return None, False
        closed_now = stored.status == RoundStatus.OPEN
        if closed_now:
            stored.status = RoundStatus.CLOSED
            stored.closed_at = closed_at
        return stored.model_copy(deep=True), closed_now

    async def save_entry(self, entry: QueueEntry) -> None:
        self._entries[entry.entry_id] = entry.model_copy()

    async def get_entry(self, entry_id: str) -> Optional[QueueEntry]:
        stored = self._entries.get(entry_id)
        return stored.model_copy() if stored else None

    async def list_entries(self) -> List[QueueEntry]:
        return [entry.model_copy() for entry in self._entries.values()]

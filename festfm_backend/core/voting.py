import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Dict, List, Optional

from festfm_models.events import EventType
from festfm_models.queue import QueueEntryStatus
from festfm_models.round import RoundStatus, VoteOutcome, VoteResult, VotingRound

from festfm_backend.core.broadcaster import EventBroadcaster
from festfm_backend.core.clock import Clock, utc_now
from festfm_backend.core.queue import QueueEngine
from festfm_backend.errors import (
    InvalidCandidateSet,
    RoundAlreadyOpen,
    RoundClosed,
    Unauthorized,
    UnknownCandidate,
    UnknownRound,
)
from festfm_backend.services.repository import Repository, VoteRecordStatus

logger = logging.getLogger(__name__)

DUPLICATE_VOTE_MESSAGE = "already voted this round"

CloseListener = Callable[[VotingRound], Awaitable[None]]


class VotingService:
    """Opens rounds, records votes once per voter per round, and closes rounds."""

    def __init__(
        self,
        repository: Repository,
        queue: QueueEngine,
        clock: Clock = utc_now,
        broadcaster: Optional[EventBroadcaster] = None,
        default_duration_seconds: int = 150,
    ):
        self.repository = repository
        self.queue = queue
        self.clock = clock
        self.broadcaster = broadcaster
        self.default_duration_seconds = default_duration_seconds
        self._open_lock = asyncio.Lock()
        self._round_locks: Dict[str, asyncio.Lock] = {}
        self._close_listeners: List[CloseListener] = []

    def add_close_listener(self, listener: CloseListener) -> None:
        self._close_listeners.append(listener)

    def _round_lock(self, round_id: str) -> asyncio.Lock:
        return self._round_locks.setdefault(round_id, asyncio.Lock())

    async def get_round(self, round_id: str) -> VotingRound:
        voting_round = await self.repository.get_round(round_id)
        if voting_round is None:
            raise UnknownRound(f"Round {round_id} not found")
        return voting_round

    async def current_round(self) -> Optional[VotingRound]:
        round_id = await self.repository.get_current_round_id()
        if not round_id:
            return None
        return await self.repository.get_round(round_id)

    async def open_round(
        self,
        candidate_track_ids: List[str],
        duration_seconds: Optional[int] = None,
        authorized: bool = True,
    ) -> VotingRound:
        if not authorized:
            raise Unauthorized()
        duration = self.default_duration_seconds if duration_seconds is None else duration_seconds
        if duration <= 0:
            raise InvalidCandidateSet("Round duration must be positive")
        if not candidate_track_ids:
            raise InvalidCandidateSet("Candidate set is empty")
        if len(set(candidate_track_ids)) != len(candidate_track_ids):
            raise InvalidCandidateSet("Candidate set contains duplicates")

        async with self._open_lock:
            for track_id in candidate_track_ids:
                if await self.repository.get_track(track_id) is None:
                    raise InvalidCandidateSet(f"Unknown track {track_id}")

            current = await self.current_round()
            if current and current.status == RoundStatus.OPEN:
                if current.accepts_votes_at(self.clock()):
                    raise RoundAlreadyOpen(f"Round {current.round_id} is still open")
                await self.close_round(current.round_id)

            for track_id in candidate_track_ids:
                entry = await self.queue.active_entry(track_id)
                if entry and entry.status in (QueueEntryStatus.NEXT, QueueEntryStatus.PLAYING):
                    raise InvalidCandidateSet(f"Track {track_id} is already {entry.status.value}")

            voting_round = VotingRound(
                round_id=str(uuid.uuid4()),
                candidate_track_ids=list(candidate_track_ids),
                started_at=self.clock(),
                duration_seconds=duration,
                tally={track_id: 0 for track_id in candidate_track_ids},
            )
            await self.repository.create_round(voting_round)
            await self.queue.ensure_candidates(candidate_track_ids)
            # Earlier rounds are all closed at this point.
            self._round_locks = {voting_round.round_id: asyncio.Lock()}

        logger.info(
            "Opened round",
            extra={"roundId": voting_round.round_id, "candidates": len(candidate_track_ids), "durationSeconds": duration},
        )
        await self._publish_tally(voting_round)
        await self.queue.publish(voting_round)
        return voting_round

    async def cast_vote(self, round_id: str, voter_id: str, track_id: str) -> VoteResult:
        voting_round = await self.get_round(round_id)
        expired = False

        async with self._round_lock(round_id):
            record = await self.repository.record_vote(round_id, voter_id, track_id, self.clock())
            if record.status == VoteRecordStatus.CLOSED:
                expired = voting_round.status == RoundStatus.OPEN

        if record.status == VoteRecordStatus.CLOSED:
            logger.info("Vote after cutoff", extra={"roundId": round_id, "voterId": voter_id})
            if expired:
                await self.close_round(round_id)
            raise RoundClosed(f"Round {round_id} is closed")

        if record.status == VoteRecordStatus.UNKNOWN_CANDIDATE:
            logger.info("Invalid candidate", extra={"roundId": round_id, "trackId": track_id})
            raise UnknownCandidate(f"Track {track_id} is not a candidate in round {round_id}")

        if record.status == VoteRecordStatus.DUPLICATE:
            logger.info("Duplicate vote", extra={"roundId": round_id, "voterId": voter_id})
            return VoteResult(
                success=False,
                outcome=VoteOutcome.DUPLICATE_VOTE,
                round_id=round_id,
                tally=record.tally,
                reason=VoteOutcome.DUPLICATE_VOTE.value,
                message=DUPLICATE_VOTE_MESSAGE,
            )

        logger.info("Vote accepted", extra={"roundId": round_id, "voterId": voter_id, "trackId": track_id})
        voting_round.tally = record.tally
        await self._publish_tally(voting_round)
        await self.queue.publish(voting_round)
        return VoteResult(success=True, outcome=VoteOutcome.ACCEPTED, round_id=round_id, tally=record.tally)

    async def close_round(self, round_id: str) -> Dict[str, int]:
        await self.get_round(round_id)
        async with self._round_lock(round_id):
            closed_round, closed_now = await self.repository.close_round(round_id, self.clock())
        if closed_round is None:
            raise UnknownRound(f"Round {round_id} not found")

        if closed_now:
            logger.info("Closed round", extra={"roundId": round_id, "totalVotes": closed_round.total_votes})
            await self.queue.apply_tally(closed_round)
            await self._publish_tally(closed_round)
            await self.queue.publish(closed_round)
            for listener in self._close_listeners:
                await listener(closed_round)
        return dict(closed_round.tally)

    async def force_close(self, round_id: str, authorized: bool) -> Dict[str, int]:
        if not authorized:
            raise Unauthorized()
        return await self.close_round(round_id)

    async def _publish_tally(self, voting_round: VotingRound) -> None:
        if self.broadcaster is None:
            return
        await self.broadcaster.publish(EventType.TALLY, voting_round.to_out().model_dump(by_alias=True, mode="json"))

import json
import logging
from datetime import datetime
from typing import List, Optional, Tuple

import redis.asyncio as redis

from festfm_models.queue import QueueEntry
from festfm_models.round import RoundStatus, VotingRound
from festfm_models.track import Track
from festfm_redis.client import (
    VOTE_ACCEPTED,
    VOTE_DUPLICATE,
    VOTE_ROUND_CLOSED,
    VOTE_UNKNOWN_CANDIDATE,
    close_round_atomic,
    current_round_key,
    get_round_tally,
    get_round_voters,
    init_round_atomic,
    queue_entries_key,
    record_vote_atomic,
    round_state_key,
    tracks_key,
)

from festfm_backend.core.clock import to_ms
from festfm_backend.services.repository import Repository, VoteRecord, VoteRecordStatus

logger = logging.getLogger(__name__)

_VOTE_STATUSES = {
    VOTE_ACCEPTED: VoteRecordStatus.ACCEPTED,
    VOTE_DUPLICATE: VoteRecordStatus.DUPLICATE,
    VOTE_ROUND_CLOSED: VoteRecordStatus.CLOSED,
    VOTE_UNKNOWN_CANDIDATE: VoteRecordStatus.UNKNOWN_CANDIDATE,
}


class RedisRepository(Repository):
    """Repository backed by Redis hashes and sets; votes and closes run as Lua scripts."""

    def __init__(self, client: redis.Redis):
        self.client = client

    async def add_track(self, track: Track) -> None:
        await self.client.hset(tracks_key(), track.id, track.model_dump_json())  # type: ignore[misc]

    async def get_track(self, track_id: str) -> Optional[Track]:
        raw = await self.client.hget(tracks_key(), track_id)  # type: ignore[misc]
        return Track.model_validate_json(raw) if raw else None

    async def list_tracks(self) -> List[Track]:
        raw = await self.client.hvals(tracks_key())  # type: ignore[misc]
        return [Track.model_validate_json(item) for item in raw]

    async def delete_track(self, track_id: str) -> bool:
        return (await self.client.hdel(tracks_key(), track_id)) == 1  # type: ignore[misc]

    async def create_round(self, voting_round: VotingRound) -> None:
        await init_round_atomic(
            self.client,
            voting_round.round_id,
            voting_round.started_at.isoformat(),
            voting_round.duration_seconds,
            to_ms(voting_round.ends_at),
            list(voting_round.candidate_track_ids),
        )

    async def get_round(self, round_id: str) -> Optional[VotingRound]:
        state = await self.client.hgetall(round_state_key(round_id))  # type: ignore[misc]
        if not state:
            return None
        tally = await get_round_tally(self.client, round_id)
        voters = await get_round_voters(self.client, round_id)
        closed_at = state.get("closedAt") or None
        return VotingRound(
            round_id=round_id,
            candidate_track_ids=json.loads(state["candidates"]),
            started_at=datetime.fromisoformat(state["startedAt"]),
            duration_seconds=int(state["durationSeconds"]),
            status=RoundStatus(state.get("status", RoundStatus.OPEN.value)),
            closed_at=datetime.fromisoformat(closed_at) if closed_at else None,
            tally=tally,
            voter_ledger=voters,
        )

    async def get_current_round_id(self) -> Optional[str]:
        return await self.client.get(current_round_key())

    async def record_vote(self, round_id: str, voter_id: str, track_id: str, now: datetime) -> VoteRecord:
        result, tally = await record_vote_atomic(self.client, round_id, voter_id, track_id, to_ms(now))
        if result not in _VOTE_STATUSES:
            raise ValueError(f"Unexpected vote script result: {result}")
        return VoteRecord(_VOTE_STATUSES[result], tally)

    async def close_round(self, round_id: str, closed_at: datetime) -> Tuple[Optional[VotingRound], bool]:
        result = await close_round_atomic(self.client, round_id, closed_at.isoformat())
        if result < 0:
            logger.warning("Close requested for unknown round", extra={"roundId": round_id})
            return None, False
        return await self.get_round(round_id), result == 1

    async def save_entry(self, entry: QueueEntry) -> None:
        await self.client.hset(queue_entries_key(), entry.entry_id, entry.model_dump_json())  # type: ignore[misc]

    async def get_entry(self, entry_id: str) -> Optional[QueueEntry]:
        raw = await self.client.hget(queue_entries_key(), entry_id)  # type: ignore[misc]
        return QueueEntry.model_validate_json(raw) if raw else None

    async def list_entries(self) -> List[QueueEntry]:
        raw = await self.client.hvals(queue_entries_key())  # type: ignore[misc]
        return [QueueEntry.model_validate_json(item) for item in raw]

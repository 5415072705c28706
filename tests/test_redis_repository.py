import asyncio
from datetime import timedelta

import pytest
from fakeredis import aioredis

from festfm_models.queue import QueueEntry, QueueEntryStatus
from festfm_models.round import RoundStatus, VotingRound
from festfm_models.track import Track
from festfm_redis.client import VOTE_DUPLICATE, record_vote_atomic, round_tally_key, round_voted_key
from festfm_backend.core.clock import to_ms
from festfm_backend.errors import RoundClosed
from festfm_backend.services.redis_repository import RedisRepository
from festfm_backend.services.repository import VoteRecordStatus
from tests.conftest import Engine, FakeClock


def _repository() -> RedisRepository:
    return RedisRepository(aioredis.FakeRedis(decode_responses=True))


def _round(clock: FakeClock, candidates=("t1", "t2"), duration_seconds=60) -> VotingRound:
    return VotingRound(
        round_id="r1",
        candidate_track_ids=list(candidates),
        started_at=clock(),
        duration_seconds=duration_seconds,
        tally={track_id: 0 for track_id in candidates},
    )


def test_track_storage_roundtrip(clock):
    async def scenario():
        repository = _repository()
        track = Track(id="t1", title="Summer Vibes", artist="DJ Pulse", duration_seconds=204, created_at=clock())
        await repository.add_track(track)

        assert await repository.get_track("t1") == track
        assert await repository.list_tracks() == [track]
        assert await repository.delete_track("t1") is True
        assert await repository.delete_track("t1") is False
        assert await repository.get_track("t1") is None

    asyncio.run(scenario())


def test_create_round_sets_current_and_zero_tally(clock):
    async def scenario():
        repository = _repository()
        await repository.create_round(_round(clock))

        assert await repository.get_current_round_id() == "r1"
        stored = await repository.get_round("r1")
        assert stored.status == RoundStatus.OPEN
        assert stored.tally == {"t1": 0, "t2": 0}
        assert stored.voter_ledger == set()
        assert stored.ends_at == clock() + timedelta(seconds=60)
        assert await repository.get_round("missing") is None

    asyncio.run(scenario())


def test_vote_script_dedupes_and_validates(clock):
    async def scenario():
        repository = _repository()
        await repository.create_round(_round(clock))

        accepted = await repository.record_vote("r1", "v1", "t1", clock())
        duplicate = await repository.record_vote("r1", "v1", "t2", clock())
        unknown = await repository.record_vote("r1", "v2", "t9", clock())

        assert accepted.status == VoteRecordStatus.ACCEPTED
        assert duplicate.status == VoteRecordStatus.DUPLICATE
        assert unknown.status == VoteRecordStatus.UNKNOWN_CANDIDATE
        assert duplicate.tally == {"t1": 1, "t2": 0}
        assert await repository.client.smembers(round_voted_key("r1")) == {"v1"}

    asyncio.run(scenario())


def test_vote_script_enforces_cutoff(clock):
    async def scenario():
        repository = _repository()
        await repository.create_round(_round(clock, duration_seconds=30))

        late = await repository.record_vote("r1", "v1", "t1", clock() + timedelta(seconds=30))
        assert late.status == VoteRecordStatus.CLOSED

        await repository.close_round("r1", clock())
        after_close = await repository.record_vote("r1", "v2", "t1", clock())
        assert after_close.status == VoteRecordStatus.CLOSED
        assert await repository.client.hgetall(round_tally_key("r1")) == {"t1": "0", "t2": "0"}

    asyncio.run(scenario())


def test_close_script_is_idempotent(clock):
    async def scenario():
        repository = _repository()
        await repository.create_round(_round(clock))
        await repository.record_vote("r1", "v1", "t2", clock())

        first, closed_now = await repository.close_round("r1", clock())
        second, closed_again = await repository.close_round("r1", clock() + timedelta(seconds=5))

        assert closed_now is True
        assert closed_again is False
        assert first.tally == second.tally == {"t1": 0, "t2": 1}
        assert second.status == RoundStatus.CLOSED
        assert second.closed_at == clock()
        assert await repository.close_round("missing", clock()) == (None, False)

    asyncio.run(scenario())


def test_queue_entry_roundtrip(clock):
    async def scenario():
        repository = _repository()
        entry = QueueEntry(entry_id="e1", track_id="t1", added_at=clock())
        await repository.save_entry(entry)
        entry.status = QueueEntryStatus.NEXT
        entry.vote_count_at_promotion = 3
        await repository.save_entry(entry)

        stored = await repository.get_entry("e1")
        assert stored.status == QueueEntryStatus.NEXT
        assert stored.vote_count_at_promotion == 3
        assert await repository.list_entries() == [stored]

    asyncio.run(scenario())


def test_voting_engine_on_redis_store():
    async def scenario():
        engine = await Engine(repository=_repository()).start()
        t1, t2 = await engine.add_tracks("Summer Vibes", "Electric Dreams")
        voting_round = await engine.voting.open_round([t1, t2], duration_seconds=30)

        results = await asyncio.gather(
            *(engine.voting.cast_vote(voting_round.round_id, f"v{i % 5}", t1 if i % 2 else t2) for i in range(20))
        )
        assert sum(1 for result in results if result.success) == 5

        engine.clock.advance(30)
        with pytest.raises(RoundClosed):
            await engine.voting.cast_vote(voting_round.round_id, "late", t1)

        stored = await engine.voting.get_round(voting_round.round_id)
        assert stored.status == RoundStatus.CLOSED
        assert sum(stored.tally.values()) == len(stored.voter_ledger) == 5

        promoted = await engine.queue.promote_top()
        assert promoted.track_id == max(stored.tally, key=stored.tally.get)

    asyncio.run(scenario())


def test_vote_tally_is_snapshot_of_that_vote(clock):
    async def scenario():
        repository = _repository()
        await repository.create_round(_round(clock))

        records = await asyncio.gather(
            *(repository.record_vote("r1", f"v{i}", "t1" if i % 2 else "t2", clock()) for i in range(12))
        )

        assert all(record.status == VoteRecordStatus.ACCEPTED for record in records)
        assert sorted(sum(record.tally.values()) for record in records) == list(range(1, 13))

        code, tally = await record_vote_atomic(repository.client, "r1", "v0", "t1", to_ms(clock()))
        assert code == VOTE_DUPLICATE
        assert tally == {"t1": 6, "t2": 6}

    asyncio.run(scenario())

import asyncio

import pytest

from festfm_models.track import TrackCreate
from festfm_backend.errors import TrackInUse, Unauthorized, UnknownTrack
from tests.conftest import Engine


def test_add_and_search_tracks():
    async def scenario():
        engine = await Engine().start()
        await engine.catalog.add_track(TrackCreate(title="Summer Vibes", artist="DJ Pulse", duration_seconds=204))
        await engine.catalog.add_track(TrackCreate(title="Electric Dreams", artist="Beat Master", duration_seconds=252))
        await engine.catalog.add_track(TrackCreate(title="Neon Lights", artist="Synth Wave", duration_seconds=230))

        titles = [track.title for track in await engine.catalog.list_tracks()]
        assert titles == ["Electric Dreams", "Neon Lights", "Summer Vibes"]

        by_artist = await engine.catalog.list_tracks("pulse")
        assert [track.title for track in by_artist] == ["Summer Vibes"]
        by_title = await engine.catalog.list_tracks("NEON")
        assert [track.title for track in by_title] == ["Neon Lights"]

    asyncio.run(scenario())


def test_track_rejects_non_positive_duration():
    with pytest.raises(ValueError):
        TrackCreate(title="Silence", artist="Nobody", duration_seconds=0)


def test_get_unknown_track_raises():
    async def scenario():
        engine = await Engine().start()
        with pytest.raises(UnknownTrack):
            await engine.catalog.get_track("missing")

    asyncio.run(scenario())


def test_delete_requires_operator():
    async def scenario():
        engine = await Engine().start()
        (track_id,) = await engine.add_tracks("Crowd Pleaser")
        with pytest.raises(Unauthorized):
            await engine.catalog.delete_track(track_id, authorized=False)
        assert await engine.catalog.find_track(track_id) is not None

    asyncio.run(scenario())


def test_cannot_delete_queued_or_candidate_track():
    async def scenario():
        engine = await Engine().start()
        queued, candidate, free = await engine.add_tracks("Dance Floor", "Bassline Groove", "Ambient Chill")
        await engine.queue.enqueue(queued)
        await engine.voting.open_round([candidate])

        with pytest.raises(TrackInUse):
            await engine.catalog.delete_track(queued, authorized=True)
        with pytest.raises(TrackInUse):
            await engine.catalog.delete_track(candidate, authorized=True)

        await engine.catalog.delete_track(free, authorized=True)
        assert await engine.catalog.find_track(free) is None

    asyncio.run(scenario())


def test_played_track_can_be_deleted():
    async def scenario():
        engine = await Engine().start()
        (track_id,) = await engine.add_tracks("Midnight Drop")
        await engine.queue.enqueue(track_id)
        await engine.playback.refill()
        await engine.playback.track_finished()

        await engine.catalog.delete_track(track_id, authorized=True)
        with pytest.raises(UnknownTrack):
            await engine.catalog.get_track(track_id)

    asyncio.run(scenario())

import asyncio
import logging

from festfm_models.playback import PlaybackState
from festfm_models.round import RoundStatus
from festfm_models.track import TrackCreate
from festfm_backend.config import Settings
from festfm_backend.core.station import Station
from festfm_backend.services.repository import InMemoryRepository
from tests.conftest import FakeClock


class FlakyRepository(InMemoryRepository):
    """Fails the next ``failures`` entry listings or ``close_failures`` round closes, then recovers."""

    def __init__(self):
        super().__init__()
        self.failures = 0
        self.close_failures = 0

    async def close_round(self, round_id, closed_at):
        if self.close_failures:
            self.close_failures -= 1
            raise ConnectionError("store down")
        return await super().close_round(round_id, closed_at)

    async def list_entries(self):
        if self.failures:
            self.failures -= 1
            raise ConnectionError("store down")
        return await super().list_entries()


def _station(auto_advance: bool, repository=None) -> Station:
    settings = Settings(
        jwt_secret="test-secret",
        auto_advance=auto_advance,
        round_duration_seconds=1,
        timer_retry_seconds=0.1,
    )
    return Station(repository or InMemoryRepository(), settings, clock=FakeClock())


async def _add(station: Station, title: str) -> str:
    track = await station.add_track(TrackCreate(title=title, artist="DJ Pulse", duration_seconds=1), authorized=True)
    return track.id


def test_round_closes_when_timer_fires():
    async def scenario():
        station = _station(auto_advance=False)
        await station.start()
        t1 = await _add(station, "Summer Vibes")
        t2 = await _add(station, "Electric Dreams")

        voting_round = await station.open_round([t1, t2], None, authorized=True)
        await station.submit_vote(voting_round.round_id, "v1", t2)
        await asyncio.sleep(1.3)

        closed = await station.voting.get_round(voting_round.round_id)
        playback = await station.playback_snapshot()
        await station.stop()

        assert closed.status == RoundStatus.CLOSED
        assert playback.state == PlaybackState.PLAYING
        assert playback.now_playing.track.id == t2

    asyncio.run(scenario())


def test_playing_track_finishes_on_its_own():
    async def scenario():
        station = _station(auto_advance=True)
        await station.start()
        first = await station.enqueue(await _add(station, "Midnight Drive"), authorized=True)
        second = await station.enqueue(await _add(station, "Bass Drop"), authorized=True)
        assert station.playback.current_entry_id == first.entry_id

        await asyncio.sleep(1.4)
        current = station.playback.current_entry_id
        await station.stop()

        assert current == second.entry_id

    asyncio.run(scenario())


def test_stop_cancels_pending_timers():
    async def scenario():
        station = _station(auto_advance=True)
        await station.start()
        t1 = await _add(station, "Summer Vibes")
        await station.open_round([t1], None, authorized=True)
        await station.enqueue(await _add(station, "Bass Drop"), authorized=True)

        await station.stop()
        await asyncio.sleep(1.2)

        current = await station.voting.current_round()
        assert current.status == RoundStatus.OPEN
        assert station.playback.state == PlaybackState.PLAYING

    asyncio.run(scenario())


def test_finish_timer_survives_store_failure(caplog):
    async def scenario():
        repository = FlakyRepository()
        station = _station(auto_advance=True, repository=repository)
        await station.start()
        first = await station.enqueue(await _add(station, "Midnight Drive"), authorized=True)
        second = await station.enqueue(await _add(station, "Bass Drop"), authorized=True)
        assert station.playback.current_entry_id == first.entry_id

        repository.failures = 1
        await asyncio.sleep(1.4)
        current = station.playback.current_entry_id
        state = station.playback.state
        await station.stop()
        return second.entry_id, current, state

    with caplog.at_level(logging.ERROR, logger="festfm_backend.core.station"):
        expected, current, state = asyncio.run(scenario())

    assert current == expected
    assert state == PlaybackState.PLAYING
    assert any("Error finishing entry" in record.getMessage() for record in caplog.records)


def test_close_timer_survives_store_failure(caplog):
    async def scenario():
        repository = FlakyRepository()
        station = _station(auto_advance=False, repository=repository)
        await station.start()
        t1 = await _add(station, "Summer Vibes")
        voting_round = await station.open_round([t1], None, authorized=True)

        repository.close_failures = 1
        await asyncio.sleep(1.4)
        closed = await station.voting.get_round(voting_round.round_id)
        await station.stop()
        return closed

    with caplog.at_level(logging.ERROR, logger="festfm_backend.core.station"):
        closed = asyncio.run(scenario())

    assert closed.status == RoundStatus.CLOSED
    assert any("Error closing round" in record.getMessage() for record in caplog.records)

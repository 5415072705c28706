import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from festfm_models.track import TrackCreate
from festfm_backend.config import Settings
from festfm_backend.core.broadcaster import EventBroadcaster
from festfm_backend.core.catalog import TrackCatalog
from festfm_backend.core.playback import PlaybackSession
from festfm_backend.core.queue import QueueEngine
from festfm_backend.core.voting import VotingService
from festfm_backend.services.repository import InMemoryRepository


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 7, 4, 18, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class SlowRepository(InMemoryRepository):
    """Yields to the event loop on every write so concurrent callers interleave."""

    async def save_entry(self, entry):
        await asyncio.sleep(0.01)
        await super().save_entry(entry)


class Engine:
    def __init__(self, repository=None, clock=None):
        self.clock = clock or FakeClock()
        self.repository = repository or InMemoryRepository()
        self.broadcaster = EventBroadcaster(clock=self.clock)
        self.catalog = TrackCatalog(self.repository, self.clock)
        self.queue = QueueEngine(self.repository, self.clock, self.broadcaster)
        self.voting = VotingService(self.repository, self.queue, self.clock, self.broadcaster, default_duration_seconds=60)
        self.playback = PlaybackSession(self.queue, self.clock, self.broadcaster)

    async def start(self) -> "Engine":
        await self.broadcaster.start()
        return self

    async def add_tracks(self, *titles: str, duration_seconds: int = 180) -> list[str]:
        ids = []
        for title in titles:
            track = await self.catalog.add_track(
                TrackCreate(title=title, artist="DJ Pulse", duration_seconds=duration_seconds)
            )
            ids.append(track.id)
        return ids


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jwt_secret="test-secret",
        operator_key="stage-key",
        cookie_secure=False,
        auto_advance=False,
        round_duration_seconds=60,
    )

import logging
import uuid
from typing import List, Optional

from festfm_models.round import RoundStatus
from festfm_models.track import Track, TrackCreate

from festfm_backend.core.clock import Clock, utc_now
from festfm_backend.errors import TrackInUse, Unauthorized, UnknownTrack
from festfm_backend.services.repository import Repository

logger = logging.getLogger(__name__)


class TrackCatalog:
    """Track metadata that rounds and the queue refer to. Reads take no locks."""

    def __init__(self, repository: Repository, clock: Clock = utc_now):
        self.repository = repository
        self.clock = clock

    async def add_track(self, payload: TrackCreate) -> Track:
        track = Track(
            id=str(uuid.uuid4()),
            title=payload.title.strip(),
            artist=payload.artist.strip(),
            duration_seconds=payload.duration_seconds,
            genre=payload.genre,
            created_at=self.clock(),
        )
        await self.repository.add_track(track)
        logger.info("Added track", extra={"trackId": track.id, "title": track.title})
        return track

    async def get_track(self, track_id: str) -> Track:
        track = await self.repository.get_track(track_id)
        if track is None:
            raise UnknownTrack(f"Track {track_id} not found")
        return track

    async def find_track(self, track_id: str) -> Optional[Track]:
        return await self.repository.get_track(track_id)

    async def list_tracks(self, search: Optional[str] = None) -> List[Track]:
        tracks = await self.repository.list_tracks()
        if search and search.strip():
            tracks = [track for track in tracks if track.matches(search)]
        return sorted(tracks, key=lambda track: (track.title.lower(), track.id))

    async def delete_track(self, track_id: str, authorized: bool) -> None:
        if not authorized:
            raise Unauthorized()
        await self.get_track(track_id)
        if await self._is_referenced(track_id):
            logger.info("Refused to delete track in use", extra={"trackId": track_id})
            raise TrackInUse(f"Track {track_id} is in use")
        await self.repository.delete_track(track_id)
        logger.info("Deleted track", extra={"trackId": track_id})

    async def _is_referenced(self, track_id: str) -> bool:
        round_id = await self.repository.get_current_round_id()
        if round_id:
            current = await self.repository.get_round(round_id)
            if current and current.status == RoundStatus.OPEN and track_id in current.candidate_track_ids:
                return True
        entries = await self.repository.list_entries()
        return any(entry.track_id == track_id and entry.is_active for entry in entries)

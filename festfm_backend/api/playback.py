from typing import Optional

from fastapi import APIRouter, Depends

from festfm_models.playback import PlaybackSnapshot, SkipRequest
from festfm_backend.api.deps import get_station, operator_flag
from festfm_backend.api.errors import to_http_error
from festfm_backend.core.station import Station
from festfm_backend.errors import FestFMError

router = APIRouter(prefix="/playback", tags=["playback"])


@router.get("", response_model=PlaybackSnapshot)
async def get_playback(station: Station = Depends(get_station)):
    return await station.playback_snapshot()


@router.post("/skip", response_model=PlaybackSnapshot)
async def skip(
    payload: Optional[SkipRequest] = None,
    station: Station = Depends(get_station),
    authorized: bool = Depends(operator_flag),
):
    try:
        return await station.skip(authorized, payload.entry_id if payload else None)
    except FestFMError as exc:
        raise to_http_error(exc)


@router.post("/finished", response_model=PlaybackSnapshot)
async def finished(
    payload: Optional[SkipRequest] = None,
    station: Station = Depends(get_station),
    authorized: bool = Depends(operator_flag),
):
    try:
        return await station.track_finished(authorized, payload.entry_id if payload else None)
    except FestFMError as exc:
        raise to_http_error(exc)

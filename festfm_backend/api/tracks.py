from typing import List, Optional

from fastapi import APIRouter, Depends, status

from festfm_models.track import Track, TrackCreate
from festfm_backend.api.deps import get_station, operator_flag
from festfm_backend.api.errors import to_http_error
from festfm_backend.core.station import Station
from festfm_backend.errors import FestFMError

router = APIRouter(prefix="/tracks", tags=["tracks"])


@router.get("", response_model=List[Track])
async def list_tracks(search: Optional[str] = None, station: Station = Depends(get_station)):
    return await station.list_tracks(search)


@router.post("", response_model=Track, status_code=status.HTTP_201_CREATED)
async def add_track(
    payload: TrackCreate,
    station: Station = Depends(get_station),
    authorized: bool = Depends(operator_flag),
):
    try:
        return await station.add_track(payload, authorized)
    except FestFMError as exc:
        raise to_http_error(exc)


@router.get("/{track_id}", response_model=Track)
async def get_track(track_id: str, station: Station = Depends(get_station)):
    try:
        return await station.catalog.get_track(track_id)
    except FestFMError as exc:
        raise to_http_error(exc)


@router.delete("/{track_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_track(
    track_id: str,
    station: Station = Depends(get_station),
    authorized: bool = Depends(operator_flag),
) -> None:
    try:
        await station.delete_track(track_id, authorized)
    except FestFMError as exc:
        raise to_http_error(exc)

from fastapi import APIRouter, Depends, status

from festfm_models.queue import EnqueueRequest, QueueEntry, QueueSnapshot
from festfm_backend.api.deps import get_station, operator_flag
from festfm_backend.api.errors import to_http_error
from festfm_backend.core.station import Station
from festfm_backend.errors import FestFMError

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("", response_model=QueueSnapshot)
async def get_queue(station: Station = Depends(get_station)):
    return await station.queue_snapshot()


@router.post("", response_model=QueueEntry, status_code=status.HTTP_201_CREATED)
async def add_to_queue(
    payload: EnqueueRequest,
    station: Station = Depends(get_station),
    authorized: bool = Depends(operator_flag),
):
    try:
        return await station.enqueue(payload.track_id, authorized)
    except FestFMError as exc:
        raise to_http_error(exc)

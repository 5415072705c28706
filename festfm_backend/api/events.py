import asyncio
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import StreamingResponse

from festfm_models.events import BroadcastEvent
from festfm_backend.api.deps import get_station
from festfm_backend.core.broadcaster import EventBroadcaster
from festfm_backend.core.station import Station

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


def _format_sse(event: BroadcastEvent) -> str:
    payload = json.dumps(event.model_dump(by_alias=True, mode="json"), separators=(",", ":"))
    return f"id: {event.sequence_number}\n" f"event: {event.type.value}\n" f"data: {payload}\n\n"


def _resume_point(since: Optional[int], last_event_id: Optional[str]) -> Optional[int]:
    if since is not None:
        return since
    if last_event_id:
        try:
            return int(last_event_id)
        except ValueError:
            logger.warning("Ignoring malformed Last-Event-ID", extra={"lastEventId": last_event_id})
    return None


async def event_generator(request: Request, broadcaster: EventBroadcaster, subscriber_id: str, queue: asyncio.Queue):
    """
    Async generator that yields SSE frames from a subscriber queue.

    Args:
        request: Incoming request, polled for client disconnects
        broadcaster: EventBroadcaster the subscriber belongs to
        subscriber_id: ID of the subscriber
        queue: Subscriber's queue to read events from
    """
    try:
        while True:
            if await request.is_disconnected():
                logger.info(f"Subscriber {subscriber_id} disconnected from stream")
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            # None is a sentinel value indicating broadcaster shutdown
            if event is None:
                break
            yield _format_sse(event)
    finally:
        await broadcaster.unsubscribe(subscriber_id)


@router.get("")
async def stream_events(
    request: Request,
    since: Optional[int] = Query(default=None, ge=0),
    last_event_id: Optional[str] = Header(default=None, alias="Last-Event-ID"),
    station: Station = Depends(get_station),
):
    subscriber_id, queue = await station.broadcaster.subscribe(_resume_point(since, last_event_id))
    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(
        event_generator(request, station.broadcaster, subscriber_id, queue),
        media_type="text/event-stream",
        headers=headers,
    )


@router.get("/replay", response_model=List[BroadcastEvent])
async def replay_events(since: int = Query(default=0, ge=0), station: Station = Depends(get_station)):
    return await station.broadcaster.events_since(since)

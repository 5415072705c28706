import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status

from festfm_models.round import RoundCreate, RoundOut, VoteCreate, VoteResult
from festfm_backend.api.deps import SessionContext, get_station, operator_flag, require_session
from festfm_backend.api.errors import to_http_error
from festfm_backend.core.station import Station
from festfm_backend.errors import FestFMError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rounds", tags=["rounds"])


@router.post("", response_model=RoundOut, status_code=status.HTTP_201_CREATED)
async def open_round(
    payload: RoundCreate,
    station: Station = Depends(get_station),
    authorized: bool = Depends(operator_flag),
):
    try:
        voting_round = await station.open_round(payload.candidate_track_ids, payload.duration_seconds, authorized)
    except FestFMError as exc:
        raise to_http_error(exc)
    return voting_round.to_out()


@router.get("/current", response_model=Optional[RoundOut])
async def get_current_round(station: Station = Depends(get_station)):
    voting_round = await station.voting.current_round()
    return voting_round.to_out() if voting_round else None


@router.get("/{round_id}", response_model=RoundOut)
async def get_round(round_id: str, station: Station = Depends(get_station)):
    try:
        voting_round = await station.voting.get_round(round_id)
    except FestFMError as exc:
        raise to_http_error(exc)
    return voting_round.to_out()


@router.post("/{round_id}/votes", response_model=VoteResult, response_model_exclude_none=True)
async def submit_vote(
    round_id: str,
    payload: VoteCreate,
    station: Station = Depends(get_station),
    session: SessionContext = Depends(require_session),
):
    try:
        return await station.submit_vote(round_id, session.session_id, payload.track_id)
    except FestFMError as exc:
        raise to_http_error(exc)


@router.post("/{round_id}/close")
async def close_round(
    round_id: str,
    station: Station = Depends(get_station),
    authorized: bool = Depends(operator_flag),
) -> Dict[str, Any]:
    try:
        tally = await station.force_close(round_id, authorized)
    except FestFMError as exc:
        raise to_http_error(exc)
    return {"roundId": round_id, "status": "closed", "tally": tally}

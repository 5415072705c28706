import logging

from fastapi import HTTPException, status

from festfm_backend.errors import (
    FestFMError,
    InvalidCandidateSet,
    RoundAlreadyOpen,
    RoundClosed,
    TrackInUse,
    Unauthorized,
    UnknownCandidate,
    UnknownRound,
    UnknownTrack,
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    InvalidCandidateSet: status.HTTP_400_BAD_REQUEST,
    UnknownCandidate: status.HTTP_400_BAD_REQUEST,
    Unauthorized: status.HTTP_403_FORBIDDEN,
    UnknownRound: status.HTTP_404_NOT_FOUND,
    UnknownTrack: status.HTTP_404_NOT_FOUND,
    RoundAlreadyOpen: status.HTTP_409_CONFLICT,
    RoundClosed: status.HTTP_409_CONFLICT,
    TrackInUse: status.HTTP_409_CONFLICT,
}


class ApiError(HTTPException):
    def __init__(self, status_code: int, detail: str, code: str | None = None):
        super().__init__(status_code=status_code, detail={"code": code, "message": detail} if code else detail)


def to_http_error(exc: FestFMError) -> ApiError:
    status_code = STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    logger.warning("Request rejected", extra={"code": exc.code, "detail": exc.message})
    return ApiError(status_code, exc.message, exc.code)

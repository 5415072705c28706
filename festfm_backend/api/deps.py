import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Cookie, Request, status

from festfm_auth.session import is_operator, verify_session_token
from festfm_backend.api.errors import ApiError
from festfm_backend.config import get_settings
from festfm_backend.core.station import Station

logger = logging.getLogger(__name__)

settings = get_settings()


@dataclass(frozen=True)
class SessionContext:
    session_id: str
    operator: bool


def get_station(request: Request) -> Station:
    station = getattr(request.app.state, "station", None)
    if station is None:
        raise ApiError(status.HTTP_503_SERVICE_UNAVAILABLE, "Station not available")
    return station


def _decode_session(session_cookie: Optional[str]) -> Optional[SessionContext]:
    if not session_cookie:
        return None

    try:
        claims = verify_session_token(session_cookie, get_settings().jwt_secret)
    except Exception:
        logger.warning("Invalid session cookie")
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Invalid session cookie")

    session_id = claims.get("sid")
    if not session_id:
        logger.warning("Session cookie missing sid claim")
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Invalid session cookie")
    return SessionContext(session_id=session_id, operator=is_operator(claims))


def require_session(
    session_cookie: Optional[str] = Cookie(default=None, alias=settings.session_cookie_name),
) -> SessionContext:
    session = _decode_session(session_cookie)
    if session is None:
        logger.warning("Missing session cookie")
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Missing session cookie")
    return session


def operator_flag(
    session_cookie: Optional[str] = Cookie(default=None, alias=settings.session_cookie_name),
) -> bool:
    return require_session(session_cookie).operator

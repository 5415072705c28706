import hmac
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Response, status

from festfm_auth.session import ROLE_LISTENER, ROLE_OPERATOR, issue_session_token
from festfm_backend.api.errors import ApiError
from festfm_backend.config import get_settings
from festfm_models.base import CamelModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/session", tags=["session"])


class SessionCreate(CamelModel):
    operator_key: Optional[str] = None


@router.post("")
async def create_session(response: Response, payload: Optional[SessionCreate] = None) -> Dict[str, str]:
    settings = get_settings()
    role = ROLE_LISTENER
    if payload and payload.operator_key:
        if not settings.operator_key or not hmac.compare_digest(payload.operator_key, settings.operator_key):
            logger.warning("Rejected operator key")
            raise ApiError(status.HTTP_403_FORBIDDEN, "Invalid operator key")
        role = ROLE_OPERATOR

    try:
        token, meta = issue_session_token(settings.jwt_secret, settings.session_ttl_seconds, role=role)
    except ValueError:
        logger.exception("Session signing misconfigured")
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Session signing unavailable")
    logger.info("Issued session", extra={"sessionId": meta["session_id"], "role": role})

    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=settings.cookie_max_age(),
    )

    return {
        "sessionId": meta["session_id"],
        "role": role,
        "expiresAt": meta["expires_at"].isoformat(),
    }

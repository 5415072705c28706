import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from festfm_backend.api.events import router as events_router
from festfm_backend.api.playback import router as playback_router
from festfm_backend.api.queue import router as queue_router
from festfm_backend.api.rounds import router as rounds_router
from festfm_backend.api.session import router as session_router
from festfm_backend.api.tracks import router as tracks_router
from festfm_backend.config import Settings, get_settings
from festfm_backend.core.station import Station
from festfm_backend.services.repository import InMemoryRepository, Repository

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_repository(settings: Settings) -> Repository:
    if settings.store_backend == "redis":
        from festfm_redis.client import get_redis_client
        from festfm_backend.services.redis_repository import RedisRepository

        logger.info("Using Redis store", extra={"host": settings.redis_host, "port": settings.redis_port})
        return RedisRepository(get_redis_client(settings.redis_host or None, settings.redis_port))
    logger.info("Using in-memory store")
    return InMemoryRepository()


def create_app(station: Optional[Station] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage station timers and the event broadcaster with the app lifecycle."""
        active = station
        if active is None:
            settings = get_settings()
            active = Station(build_repository(settings), settings)
        await active.start()
        app.state.station = active

        yield

        await active.stop()

    app = FastAPI(title="FestFM Backend", version="1.0.0", lifespan=lifespan)

    api_router = APIRouter(prefix="/api")
    api_router.include_router(session_router)
    api_router.include_router(tracks_router)
    api_router.include_router(rounds_router)
    api_router.include_router(queue_router)
    api_router.include_router(playback_router)
    api_router.include_router(events_router)
    app.include_router(api_router)

    @app.exception_handler(RedisError)
    async def store_unavailable(request: Request, exc: RedisError):
        logger.error("Store unavailable", exc_info=exc, extra={"path": request.url.path})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": {"code": "store_unavailable", "message": "Store unavailable"}},
        )

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


app = create_app()

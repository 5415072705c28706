from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FESTFM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Voting
    round_duration_seconds: int = 150
    auto_advance: bool = True
    timer_retry_seconds: float = 1.0

    # Broadcast
    subscriber_queue_size: int = 100
    replay_buffer_size: int = 256

    # Sessions
    session_cookie_name: str = "festfm_session"
    session_ttl_seconds: int = 60 * 60 * 24 * 3
    jwt_secret: str = ""
    cookie_secure: bool = True
    operator_key: str = ""

    # Storage
    store_backend: Literal["memory", "redis"] = "memory"
    redis_host: str = ""
    redis_port: int = 6379

    def cookie_max_age(self) -> int:
        return self.session_ttl_seconds


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

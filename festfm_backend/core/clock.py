from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)

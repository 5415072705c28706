from datetime import datetime
from enum import Enum
from typing import Any, Dict

from festfm_models.base import CamelModel


class EventType(str, Enum):
    TALLY = "tally"
    QUEUE = "queue"
    PLAYBACK = "playback"


class BroadcastEvent(CamelModel):
    sequence_number: int
    type: EventType
    payload: Dict[str, Any]
    emitted_at: datetime

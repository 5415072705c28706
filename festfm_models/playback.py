from datetime import datetime
from enum import Enum
from typing import Optional

from festfm_models.base import CamelModel
from festfm_models.queue import QueueItem

WAITING_FOR_VOTES = "waiting for votes"


class PlaybackState(str, Enum):
    EMPTY = "empty"
    PLAYING = "playing"
    ADVANCING = "advancing"


class SkipRequest(CamelModel):
    entry_id: Optional[str] = None


class PlaybackSnapshot(CamelModel):
    state: PlaybackState
    now_playing: Optional[QueueItem] = None
    next_up: Optional[QueueItem] = None
    started_at: Optional[datetime] = None
    elapsed_seconds: float = 0.0
    remaining_seconds: float = 0.0
    message: Optional[str] = None

from datetime import datetime
from enum import Enum
from typing import List, Optional

from festfm_models.base import CamelModel
from festfm_models.track import Track


class QueueEntryStatus(str, Enum):
    QUEUED = "queued"
    NEXT = "next"
    PLAYING = "playing"
    PLAYED = "played"


ACTIVE_STATUSES = (QueueEntryStatus.QUEUED, QueueEntryStatus.NEXT, QueueEntryStatus.PLAYING)


class QueueEntry(CamelModel):
    entry_id: str
    track_id: str
    status: QueueEntryStatus = QueueEntryStatus.QUEUED
    vote_count: int = 0
    vote_count_at_promotion: Optional[int] = None
    added_at: datetime
    promoted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class EnqueueRequest(CamelModel):
    track_id: str


class QueueItem(CamelModel):
    entry: QueueEntry
    track: Optional[Track] = None
    votes: int = 0
    position: Optional[int] = None


class QueueSnapshot(CamelModel):
    now_playing: Optional[QueueItem] = None
    next_up: Optional[QueueItem] = None
    queued: List[QueueItem]
    played_count: int = 0
    round_id: Optional[str] = None

from datetime import datetime
from typing import Optional

from pydantic import ConfigDict, Field

from festfm_models.base import CamelModel


class TrackCreate(CamelModel):
    title: str = Field(min_length=1)
    artist: str = Field(min_length=1)
    duration_seconds: int = Field(gt=0)
    genre: Optional[str] = None


class Track(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    artist: str
    duration_seconds: int = Field(gt=0)
    genre: Optional[str] = None
    created_at: datetime

    def matches(self, search: str) -> bool:
        needle = search.strip().lower()
        return needle in self.title.lower() or needle in self.artist.lower()

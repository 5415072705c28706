from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import Field

from festfm_models.base import CamelModel


class RoundStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class VoteOutcome(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE_VOTE = "duplicate_vote"


class RoundCreate(CamelModel):
    candidate_track_ids: List[str]
    duration_seconds: Optional[int] = Field(default=None, gt=0)


class VoteCreate(CamelModel):
    track_id: str


class VotingRound(CamelModel):
    round_id: str
    candidate_track_ids: List[str]
    started_at: datetime
    duration_seconds: int
    status: RoundStatus = RoundStatus.OPEN
    closed_at: Optional[datetime] = None
    tally: Dict[str, int] = Field(default_factory=dict)
    voter_ledger: Set[str] = Field(default_factory=set)

    @property
    def ends_at(self) -> datetime:
        return self.started_at + timedelta(seconds=self.duration_seconds)

    @property
    def total_votes(self) -> int:
        return sum(self.tally.values())

    def accepts_votes_at(self, now: datetime) -> bool:
        return self.status == RoundStatus.OPEN and now < self.ends_at

    def to_out(self) -> "RoundOut":
        return RoundOut(
            round_id=self.round_id,
            candidate_track_ids=list(self.candidate_track_ids),
            started_at=self.started_at,
            ends_at=self.ends_at,
            duration_seconds=self.duration_seconds,
            status=self.status,
            closed_at=self.closed_at,
            tally=dict(self.tally),
            total_votes=self.total_votes,
        )


class RoundOut(CamelModel):
    """Public view of a round. The voter ledger never leaves the server."""

    round_id: str
    candidate_track_ids: List[str]
    started_at: datetime
    ends_at: datetime
    duration_seconds: int
    status: RoundStatus
    closed_at: Optional[datetime] = None
    tally: Dict[str, int]
    total_votes: int


class VoteResult(CamelModel):
    success: bool
    outcome: VoteOutcome
    round_id: str
    tally: Dict[str, int]
    reason: Optional[str] = None
    message: Optional[str] = None

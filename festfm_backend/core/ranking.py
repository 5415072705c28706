"""Deterministic ordering of queued entries.

Highest vote count first; ties go to the entry that has waited longest
(earliest ``added_at``), then to the lowest track id. The order depends
only on (votes, added_at, track_id), never on insertion order.
"""
from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Tuple

from festfm_models.queue import QueueEntry, QueueEntryStatus


def rank_key(votes: int, added_at: datetime, track_id: str) -> Tuple[int, datetime, str]:
    return (-votes, added_at, track_id)


def effective_votes(entry: QueueEntry, tally: Optional[Mapping[str, int]] = None) -> int:
    """Live round tally wins over the entry's stored snapshot for round candidates."""
    if tally is not None and entry.track_id in tally:
        return tally[entry.track_id]
    return entry.vote_count


def rank_entries(
    entries: Iterable[QueueEntry],
    tally: Optional[Mapping[str, int]] = None,
) -> List[QueueEntry]:
    queued = [entry for entry in entries if entry.status == QueueEntryStatus.QUEUED]
    return sorted(
        queued,
        key=lambda entry: rank_key(effective_votes(entry, tally), entry.added_at, entry.track_id),
    )

import random
from datetime import datetime, timedelta, timezone

from festfm_models.queue import QueueEntry, QueueEntryStatus
from festfm_backend.core.ranking import effective_votes, rank_entries

T0 = datetime(2026, 7, 4, 18, 0, tzinfo=timezone.utc)


def _entry(track_id: str, votes: int, added: int, status=QueueEntryStatus.QUEUED) -> QueueEntry:
    return QueueEntry(
        entry_id=f"e-{track_id}",
        track_id=track_id,
        status=status,
        vote_count=votes,
        added_at=T0 + timedelta(seconds=added),
    )


def _ids(entries):
    return [entry.track_id for entry in entries]


def test_tie_goes_to_longest_waiting_track():
    a = _entry("A", 3, 1)
    b = _entry("B", 3, 2)
    assert _ids(rank_entries([b, a])) == ["A", "B"]
    assert _ids(rank_entries([a, b])) == ["A", "B"]


def test_votes_outrank_wait_time():
    early = _entry("early", 1, 0)
    popular = _entry("popular", 5, 10)
    assert _ids(rank_entries([early, popular])) == ["popular", "early"]


def test_track_id_breaks_full_ties():
    entries = [_entry("c", 2, 5), _entry("a", 2, 5), _entry("b", 2, 5)]
    assert _ids(rank_entries(entries)) == ["a", "b", "c"]


def test_ranking_is_deterministic_across_input_orders():
    entries = [_entry(f"t{i}", i % 3, i % 4) for i in range(12)]
    expected = _ids(rank_entries(entries))
    shuffler = random.Random(7)
    for _ in range(20):
        shuffled = list(entries)
        shuffler.shuffle(shuffled)
        assert _ids(rank_entries(shuffled)) == expected


def test_live_tally_overrides_stored_votes_for_candidates():
    a = _entry("A", 4, 0)
    b = _entry("B", 0, 1)
    tally = {"B": 6}
    assert effective_votes(b, tally) == 6
    assert effective_votes(a, tally) == 4
    assert _ids(rank_entries([a, b], tally)) == ["B", "A"]


def test_only_queued_entries_are_ranked():
    entries = [
        _entry("playing", 9, 0, QueueEntryStatus.PLAYING),
        _entry("next", 8, 0, QueueEntryStatus.NEXT),
        _entry("played", 7, 0, QueueEntryStatus.PLAYED),
        _entry("queued", 0, 0),
    ]
    assert _ids(rank_entries(entries)) == ["queued"]

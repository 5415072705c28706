class FestFMError(Exception):
    """Base for every condition the queue and voting engine reports to callers."""

    code = "festfm_error"
    default_message = "Request failed"
    # Expected conditions are steady-state outcomes, not failures.
    expected = False

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCandidateSet(FestFMError):
    code = "invalid_candidate_set"
    default_message = "Invalid candidate set"


class RoundAlreadyOpen(FestFMError):
    code = "round_already_open"
    default_message = "A voting round is already open"


class RoundClosed(FestFMError):
    code = "round_closed"
    default_message = "Voting round is closed"


class UnknownCandidate(FestFMError):
    code = "unknown_candidate"
    default_message = "Track is not a candidate in this round"


class UnknownRound(FestFMError):
    code = "unknown_round"
    default_message = "Voting round not found"


class UnknownTrack(FestFMError):
    code = "unknown_track"
    default_message = "Track not found"


class TrackInUse(FestFMError):
    code = "track_in_use"
    default_message = "Track is referenced by an open round or an active queue entry"


class QueueEmpty(FestFMError):
    code = "queue_empty"
    default_message = "waiting for votes"
    expected = True


class Unauthorized(FestFMError):
    code = "unauthorized"
    default_message = "Operator role required"

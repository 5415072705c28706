from .client import (
    close_round_atomic,
    current_round_key,
    get_redis_client,
    get_round_tally,
    init_round_atomic,
    record_vote_atomic,
    round_state_key,
    round_tally_key,
)

__all__ = [
    "close_round_atomic",
    "current_round_key",
    "get_redis_client",
    "get_round_tally",
    "init_round_atomic",
    "record_vote_atomic",
    "round_state_key",
    "round_tally_key",
]

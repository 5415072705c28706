import json
import os
from functools import lru_cache
from typing import Any

import redis.asyncio as redis

VOTE_ACCEPTED = 1
VOTE_DUPLICATE = 0
VOTE_ROUND_CLOSED = -1
VOTE_UNKNOWN_CANDIDATE = -2


@lru_cache(maxsize=4)
def get_redis_client(host: str | None = None, port: int | None = None) -> redis.Redis:
    host = host or os.getenv("REDIS_HOST", "")
    port = port or int(os.getenv("REDIS_PORT", "6379"))
    if not host:
        raise ValueError("REDIS_HOST is required")
    return redis.Redis(host=host, port=port, decode_responses=True)


def tracks_key() -> str:
    return "festfm:tracks"


def current_round_key() -> str:
    return "festfm:round:current"


def round_state_key(round_id: str) -> str:
    return f"festfm:round:{round_id}:state"


def round_tally_key(round_id: str) -> str:
    return f"festfm:round:{round_id}:tally"


def round_voted_key(round_id: str) -> str:
    return f"festfm:round:{round_id}:voted"


def queue_entries_key() -> str:
    return "festfm:queue:entries"


def dumps(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"))


def _parse_tally(raw: dict[str, Any]) -> dict[str, int]:
    tallies: dict[str, int] = {}
    for track_id, value in raw.items():
        try:
            tallies[track_id] = int(value)
        except (TypeError, ValueError):
            tallies[track_id] = 0
    return tallies


async def get_round_tally(client: redis.Redis, round_id: str) -> dict[str, int]:
    raw = await client.hgetall(round_tally_key(round_id))  # type: ignore[misc]
    return _parse_tally(raw)


async def get_round_voters(client: redis.Redis, round_id: str) -> set[str]:
    return set(await client.smembers(round_voted_key(round_id)))  # type: ignore[misc]


ROUND_OPEN_LUA = """
local state_key = KEYS[1]
local tally_key = KEYS[2]
local voted_key = KEYS[3]
local current_key = KEYS[4]

local round_id = ARGV[1]

redis.call("DEL", state_key, tally_key, voted_key)
redis.call(
  "HSET", state_key,
  "status", "open",
  "startedAt", ARGV[2],
  "durationSeconds", ARGV[3],
  "endsAtMs", ARGV[4],
  "candidates", ARGV[5],
  "closedAt", ""
)
for i = 6, #ARGV do
  redis.call("HSET", tally_key, ARGV[i], 0)
end
redis.call("SET", current_key, round_id)

return "ok"
"""


async def init_round_atomic(
    client: redis.Redis,
    round_id: str,
    started_at: str,
    duration_seconds: int,
    ends_at_ms: int,
    candidates: list[str],
) -> None:
    await client.eval(
        ROUND_OPEN_LUA,
        4,
        round_state_key(round_id),
        round_tally_key(round_id),
        round_voted_key(round_id),
        current_round_key(),
        round_id,
        started_at,
        int(duration_seconds),
        int(ends_at_ms),
        dumps(candidates),
        *candidates,
    )  # type: ignore[misc]


VOTE_LUA = """
local state_key = KEYS[1]
local tally_key = KEYS[2]
local voted_key = KEYS[3]
local voter_id = ARGV[1]
local track_id = ARGV[2]
local now_ms = tonumber(ARGV[3])

local function result(code)
  return {code, redis.call("HGETALL", tally_key)}
end

if redis.call("HGET", state_key, "status") ~= "open" then
  return result(-1)
end
local ends_at_ms = tonumber(redis.call("HGET", state_key, "endsAtMs"))
if ends_at_ms ~= nil and now_ms >= ends_at_ms then
  return result(-1)
end
if redis.call("HEXISTS", tally_key, track_id) == 0 then
  return result(-2)
end
if redis.call("SADD", voted_key, voter_id) == 0 then
  return result(0)
end
redis.call("HINCRBY", tally_key, track_id, 1)
return result(1)
"""


async def record_vote_atomic(
    client: redis.Redis,
    round_id: str,
    voter_id: str,
    track_id: str,
    now_ms: int,
) -> tuple[int, dict[str, int]]:
    """Returns the vote status code with the tally as it stood right after the vote."""
    code, flat_tally = await client.eval(
        VOTE_LUA,
        3,
        round_state_key(round_id),
        round_tally_key(round_id),
        round_voted_key(round_id),
        voter_id,
        track_id,
        int(now_ms),
    )  # type: ignore[misc]
    return int(code), _parse_tally(dict(zip(flat_tally[::2], flat_tally[1::2])))


CLOSE_LUA = """
local state_key = KEYS[1]
local status = redis.call("HGET", state_key, "status")
if not status then
  return -1
end
if status == "open" then
  redis.call("HSET", state_key, "status", "closed", "closedAt", ARGV[1])
  return 1
end
return 0
"""


async def close_round_atomic(client: redis.Redis, round_id: str, closed_at: str) -> int:
    """Returns 1 when this call closed the round, 0 if it was already closed, -1 if unknown."""
    result = await client.eval(CLOSE_LUA, 1, round_state_key(round_id), closed_at)  # type: ignore[misc]
    return int(result)

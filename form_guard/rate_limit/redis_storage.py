"""
Redis Window Storage
====================
Redis-backed window storage using a Lua script for atomic compare-and-swap.
"""

import asyncio
import math
from typing import Optional

import redis
import redis.asyncio as aioredis
import structlog

from ..exceptions import StorageUnavailable
from .codec import decode_state, encode_state
from .models import WindowState
from .storage import WindowStorage

logger = structlog.get_logger(__name__)

# ARGV[1] is the expected payload ("" when the key must be absent).
# Payloads are compared field by field so 1700000000 and 1700000000.0 match.
COMPARE_AND_SWAP_SCRIPT = """
local key = KEYS[1]
local expected = ARGV[1]
local new_value = ARGV[2]
local ttl_ms = tonumber(ARGV[3])

local function same_state(a, b)
    local ok_a, state_a = pcall(cjson.decode, a)
    local ok_b, state_b = pcall(cjson.decode, b)
    if not (ok_a and ok_b) or type(state_a) ~= 'table' or type(state_b) ~= 'table' then
        return a == b
    end
    return state_a.v == state_b.v and state_a.s == state_b.s
        and state_a.c == state_b.c and state_a.p == state_b.p
end

local current = redis.call('GET', key)

if current == false then
    if expected ~= '' then
        return 0
    end
elseif expected == '' or not same_state(current, expected) then
    return 0
end

redis.call('SET', key, new_value, 'PX', ttl_ms)
return 1
"""

REDIS_ERRORS = (redis.RedisError, OSError, asyncio.TimeoutError)


class RedisWindowStorage(WindowStorage):
    """
    Shared window storage for multi-instance deployments.

    Example:
        import redis.asyncio as aioredis

        storage = RedisWindowStorage(aioredis.from_url("redis://localhost:6379/0"))
    """

    name = "redis"

    def __init__(self, redis_client, timeout: Optional[float] = 1.0):
        """
        Args:
            redis_client: Async Redis client (``redis.asyncio.Redis``)
            timeout: Seconds allowed per round trip (None to disable)
        """
        self.redis = redis_client
        self.timeout = timeout
        self._script_sha: Optional[str] = None

    @classmethod
    def from_url(cls, redis_url: str, **kwargs) -> "RedisWindowStorage":
        return cls(aioredis.from_url(redis_url), **kwargs)

    async def _call(self, awaitable):
        if self.timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.timeout)

    async def _ensure_script(self) -> str:
        """Load Lua script into Redis if needed."""
        if self._script_sha is None:
            self._script_sha = await self._call(self.redis.script_load(COMPARE_AND_SWAP_SCRIPT))
        return self._script_sha

    async def load(self, key: str) -> Optional[WindowState]:
        try:
            raw = await self._call(self.redis.get(key))
        except REDIS_ERRORS as e:
            logger.warning("storage_unavailable", backend=self.name, operation="load", error=str(e))
            raise StorageUnavailable(f"load failed: {e}", backend=self.name, cause=e) from e

        try:
            return decode_state(raw)
        except ValueError as e:
            # Unreadable payloads are dropped so the key starts a fresh window
            logger.warning("window_state_corrupt", key=key, error=str(e))
            try:
                await self._call(self.redis.delete(key))
            except REDIS_ERRORS as delete_error:
                raise StorageUnavailable(
                    f"delete failed: {delete_error}", backend=self.name, cause=delete_error
                ) from delete_error
            return None

    async def compare_and_swap(
        self,
        key: str,
        expected: Optional[WindowState],
        new_state: WindowState,
        ttl: float,
    ) -> bool:
        expected_raw = encode_state(expected) if expected is not None else ""
        args = (expected_raw, encode_state(new_state), max(1, math.ceil(ttl * 1000)))

        try:
            script_sha = await self._ensure_script()
            try:
                result = await self._call(self.redis.evalsha(script_sha, 1, key, *args))
            except redis.exceptions.NoScriptError:
                # Script cache flushed (restart/failover); reload once
                self._script_sha = None
                script_sha = await self._ensure_script()
                result = await self._call(self.redis.evalsha(script_sha, 1, key, *args))
        except REDIS_ERRORS as e:
            logger.warning("storage_unavailable", backend=self.name, operation="compare_and_swap", error=str(e))
            raise StorageUnavailable(f"compare_and_swap failed: {e}", backend=self.name, cause=e) from e

        return int(result) == 1

"""
Tests for window storage backends and the state codec.
"""

from unittest.mock import AsyncMock

import pytest
import redis

from form_guard.exceptions import StorageUnavailable
from form_guard.rate_limit import (
    InMemoryWindowStorage,
    RedisWindowStorage,
    WindowState,
    decode_state,
    encode_state,
)
from form_guard.rate_limit.redis_storage import COMPARE_AND_SWAP_SCRIPT

from .conftest import T0

STATE = WindowState(window_start=T0, current_count=2, previous_count=1)


class TestCodec:
    """WindowState serialization."""
    
    def test_encode_is_compact_json(self):
        assert encode_state(STATE) == '{"c":2,"p":1,"s":1700000000.0,"v":1}'
    
    def test_integer_start_encodes_as_float(self):
        state = WindowState(window_start=1_700_000_000, current_count=2, previous_count=1)
        assert encode_state(state) == encode_state(STATE)
        assert decode_state(encode_state(state)) == state
    
    def test_decode_accepts_bytes(self):
        assert decode_state(encode_state(STATE).encode()) == STATE
    
    def test_decode_none_is_absent(self):
        assert decode_state(None) is None
    
    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        '{"v": 2, "s": 1, "c": 0, "p": 0}',
        '{"v": 1, "s": 1, "c": 0}',
        '{"v": 1, "s": 1, "c": -1, "p": 0}',
    ])
    def test_decode_rejects_malformed(self, raw):
        with pytest.raises(ValueError):
            decode_state(raw)


class TestInMemoryWindowStorage:
    """Process-local storage."""
    
    @pytest.mark.asyncio
    async def test_swap_from_absent(self, storage):
        """Expected None only matches a missing key."""
        assert await storage.compare_and_swap("k", None, STATE, ttl=60) is True
        assert await storage.load("k") == STATE
        assert await storage.compare_and_swap("k", None, STATE.record(), ttl=60) is False
    
    @pytest.mark.asyncio
    async def test_swap_requires_current_value(self, storage):
        await storage.compare_and_swap("k", None, STATE, ttl=60)
        stale = WindowState(window_start=T0, current_count=1, previous_count=1)
        
        assert await storage.compare_and_swap("k", stale, STATE.record(), ttl=60) is False
        assert await storage.compare_and_swap("k", STATE, STATE.record(), ttl=60) is True
        assert (await storage.load("k")).current_count == 3
    
    @pytest.mark.asyncio
    async def test_entries_expire(self, storage, clock):
        """Expired entries read as absent and count as absent for swaps."""
        await storage.compare_and_swap("k", None, STATE, ttl=30)
        clock.advance(30)
        
        assert await storage.load("k") is None
        assert await storage.compare_and_swap("k", None, STATE, ttl=30) is True
    
    @pytest.mark.asyncio
    async def test_full_storage_evicts_idle_entries(self, clock):
        """Least recently used entries idle for one interval make room."""
        storage = InMemoryWindowStorage(max_entries=2, time_func=clock.now)
        await storage.compare_and_swap("a", None, STATE, ttl=60)
        await storage.compare_and_swap("b", None, STATE, ttl=60)
        
        clock.advance(30)
        await storage.load("a")
        assert await storage.compare_and_swap("c", None, STATE, ttl=60) is True
        
        assert len(storage) == 2
        assert await storage.load("b") is None
        assert await storage.load("a") == STATE
    
    @pytest.mark.asyncio
    async def test_full_storage_purges_expired_entries(self, clock):
        storage = InMemoryWindowStorage(max_entries=2, time_func=clock.now)
        await storage.compare_and_swap("a", None, STATE, ttl=10)
        await storage.compare_and_swap("b", None, STATE, ttl=120)
        
        clock.advance(10)
        assert await storage.compare_and_swap("c", None, STATE, ttl=120) is True
        assert await storage.load("b") == STATE
    
    @pytest.mark.asyncio
    async def test_live_windows_are_never_evicted(self, clock):
        """A full map of live windows refuses new keys instead of dropping state."""
        storage = InMemoryWindowStorage(max_entries=2, time_func=clock.now)
        await storage.compare_and_swap("a", None, STATE, ttl=60)
        await storage.compare_and_swap("b", None, STATE, ttl=60)
        
        clock.advance(29)
        with pytest.raises(StorageUnavailable) as exc_info:
            await storage.compare_and_swap("c", None, STATE, ttl=60)
        assert exc_info.value.backend == "memory"
        
        # Existing keys can still be updated
        assert await storage.compare_and_swap("a", STATE, STATE.record(), ttl=60) is True
        assert await storage.load("b") == STATE
    
    @pytest.mark.asyncio
    async def test_integer_timestamps_compare_equal(self, storage):
        """States built from int and float timestamps are interchangeable."""
        int_state = WindowState(window_start=1_700_000_000, current_count=1)
        await storage.compare_and_swap("k", None, int_state, ttl=60)
        
        loaded = await storage.load("k")
        assert loaded == int_state
        assert await storage.compare_and_swap("k", loaded, loaded.record(), ttl=60) is True


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.script_load.return_value = "sha-1"
    client.evalsha.return_value = 1
    client.get.return_value = None
    return client


class TestRedisWindowStorage:
    """Redis backend with a mocked async client."""
    
    @pytest.mark.asyncio
    async def test_load_absent(self, redis_client):
        storage = RedisWindowStorage(redis_client)
        
        assert await storage.load("k") is None
        redis_client.get.assert_awaited_once_with("k")
    
    @pytest.mark.asyncio
    async def test_load_decodes_payload(self, redis_client):
        redis_client.get.return_value = encode_state(STATE).encode()
        storage = RedisWindowStorage(redis_client)
        
        assert await storage.load("k") == STATE
    
    @pytest.mark.asyncio
    async def test_corrupt_payload_is_dropped(self, redis_client):
        """Unreadable state is deleted and treated as absent."""
        redis_client.get.return_value = b"garbage"
        storage = RedisWindowStorage(redis_client)
        
        assert await storage.load("k") is None
        redis_client.delete.assert_awaited_once_with("k")
    
    @pytest.mark.asyncio
    async def test_compare_and_swap_runs_script(self, redis_client):
        """Script is loaded once and invoked with encoded values and a ms TTL."""
        storage = RedisWindowStorage(redis_client)
        new_state = STATE.record()
        
        assert await storage.compare_and_swap("k", STATE, new_state, ttl=120) is True
        assert await storage.compare_and_swap("k", None, new_state, ttl=0.5) is True
        
        redis_client.script_load.assert_awaited_once_with(COMPARE_AND_SWAP_SCRIPT)
        first, second = redis_client.evalsha.await_args_list
        assert first.args == ("sha-1", 1, "k", encode_state(STATE), encode_state(new_state), 120000)
        assert second.args == ("sha-1", 1, "k", "", encode_state(new_state), 500)
    
    @pytest.mark.asyncio
    async def test_compare_and_swap_conflict(self, redis_client):
        redis_client.evalsha.return_value = 0
        storage = RedisWindowStorage(redis_client)
        
        assert await storage.compare_and_swap("k", None, STATE, ttl=60) is False
    
    @pytest.mark.asyncio
    async def test_reloads_flushed_script(self, redis_client):
        """NOSCRIPT triggers one reload of the Lua script."""
        redis_client.evalsha.side_effect = [redis.exceptions.NoScriptError("NOSCRIPT"), 1]
        storage = RedisWindowStorage(redis_client)
        
        assert await storage.compare_and_swap("k", None, STATE, ttl=60) is True
        assert redis_client.script_load.await_count == 2
    
    @pytest.mark.asyncio
    async def test_connection_errors_become_storage_unavailable(self, redis_client):
        redis_client.get.side_effect = redis.ConnectionError("refused")
        redis_client.evalsha.side_effect = redis.TimeoutError("slow")
        storage = RedisWindowStorage(redis_client)
        
        with pytest.raises(StorageUnavailable) as exc_info:
            await storage.load("k")
        assert exc_info.value.backend == "redis"
        
        with pytest.raises(StorageUnavailable):
            await storage.compare_and_swap("k", None, STATE, ttl=60)

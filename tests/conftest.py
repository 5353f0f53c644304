"""Shared fixtures for form guard tests."""

import asyncio

import pytest

from form_guard.clock import FrozenClock
from form_guard.exceptions import StorageUnavailable
from form_guard.rate_limit import InMemoryWindowStorage

T0 = 1_700_000_000.0


class InterleavingStorage(InMemoryWindowStorage):
    """Yields to the event loop after every load so concurrent consumers interleave."""
    
    async def load(self, key):
        state = await super().load(key)
        await asyncio.sleep(0)
        return state


class UnavailableStorage(InMemoryWindowStorage):
    """Every round trip fails like an unreachable cache."""
    
    def __init__(self):
        super().__init__()
        self.load_calls = 0
    
    async def load(self, key):
        self.load_calls += 1
        raise StorageUnavailable("connection refused", backend="test")


class ConflictingStorage(InMemoryWindowStorage):
    """Compare-and-swap always loses the race."""
    
    def __init__(self):
        super().__init__()
        self.swap_calls = 0
    
    async def compare_and_swap(self, key, expected, new_state, ttl):
        self.swap_calls += 1
        return False


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
def storage(clock):
    return InMemoryWindowStorage(time_func=clock.now)


class WriteThenFailStorage(InMemoryWindowStorage):
    """The first write lands but reports an error, like a timed-out round trip."""
    
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.swap_calls = 0
    
    async def compare_and_swap(self, key, expected, new_state, ttl):
        self.swap_calls += 1
        swapped = await super().compare_and_swap(key, expected, new_state, ttl)
        if self.swap_calls == 1:
            raise StorageUnavailable("reply timed out", backend="test")
        return swapped


class IntegerClock:
    """Clock reporting whole seconds as int."""
    
    def __init__(self, start: int):
        self.value = start
    
    def now(self):
        return self.value

"""
Rate Limiting Module
====================
Sliding window limiter with pluggable in-memory or Redis window storage.
"""

from .models import Decision, DecisionReason, RateLimitResult, WindowState
from .codec import encode_state, decode_state
from .storage import WindowStorage, InMemoryWindowStorage
from .redis_storage import RedisWindowStorage, COMPARE_AND_SWAP_SCRIPT
from .sliding_window import SlidingWindowLimiter
from .no_limit import NoLimitLimiter

__all__ = [
    # Models
    "Decision",
    "DecisionReason",
    "RateLimitResult",
    "WindowState",
    # Codec
    "encode_state",
    "decode_state",
    # Storage
    "WindowStorage",
    "InMemoryWindowStorage",
    "RedisWindowStorage",
    # Limiters
    "SlidingWindowLimiter",
    "NoLimitLimiter",
    # Scripts
    "COMPARE_AND_SWAP_SCRIPT",
]

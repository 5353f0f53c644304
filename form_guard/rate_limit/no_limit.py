"""
No-Limit Limiter
================
Limiter used when rate limiting is disabled: accepts everything, stores nothing.
"""

from typing import Optional

from .models import Decision, DecisionReason


class NoLimitLimiter:
    """Drop-in replacement for SlidingWindowLimiter that never touches storage."""
    
    async def consume(self, key: str, now: Optional[float] = None) -> Decision:
        return Decision.unlimited(DecisionReason.DISABLED)

"""
Rate Limit Models
=================
Decision returned by every consume call and the persisted window state.
"""

import math
from typing import Optional
from dataclasses import dataclass
from enum import Enum


class RateLimitResult(str, Enum):
    """Coarse admission result."""
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    DEGRADED = "degraded"


class DecisionReason(str, Enum):
    """Why a decision came out the way it did."""
    ACCEPTED = "accepted"
    RATE_LIMITED = "rate_limited"
    IP_ALLOWED = "ip_allowed"
    IP_DENIED = "ip_denied"
    DISABLED = "disabled"
    STORAGE_FAILURE = "storage_failure"


@dataclass(frozen=True)
class Decision:
    """Admission decision for one consume call."""
    accepted: bool
    remaining: Optional[int]  # None means unbounded
    reason: DecisionReason = DecisionReason.ACCEPTED
    limit: Optional[int] = None
    retry_after: Optional[float] = None  # Seconds, only for time-based rejections
    
    @property
    def result(self) -> RateLimitResult:
        if self.reason == DecisionReason.STORAGE_FAILURE:
            return RateLimitResult.DEGRADED
        return RateLimitResult.ALLOWED if self.accepted else RateLimitResult.BLOCKED
    
    @property
    def retry_after_seconds(self) -> Optional[int]:
        """Retry hint rounded up to whole seconds."""
        if self.retry_after is None:
            return None
        return max(1, math.ceil(self.retry_after))
    
    @classmethod
    def unlimited(cls, reason: DecisionReason = DecisionReason.DISABLED) -> "Decision":
        return cls(accepted=True, remaining=None, reason=reason)
    
    @classmethod
    def denied(cls) -> "Decision":
        return cls(accepted=False, remaining=0, reason=DecisionReason.IP_DENIED)


@dataclass(frozen=True)
class WindowState:
    """
    Sliding window bookkeeping for one limiter key.
    
    ``window_start`` opens the current fixed sub-window of width ``interval``;
    ``previous_count`` belongs to the sub-window right before it.
    """
    window_start: float
    current_count: int = 0
    previous_count: int = 0
    
    def __post_init__(self):
        # Encoded form must survive a decode/encode round trip
        object.__setattr__(self, "window_start", float(self.window_start))
        object.__setattr__(self, "current_count", int(self.current_count))
        object.__setattr__(self, "previous_count", int(self.previous_count))
    
    def advance(self, now: float, interval: float) -> "WindowState":
        """Roll the sub-windows forward so that ``now`` falls in the current one."""
        if now < self.window_start + interval:
            return self
        if now < self.window_start + 2 * interval:
            return WindowState(
                window_start=self.window_start + interval,
                current_count=0,
                previous_count=self.current_count,
            )
        return WindowState(window_start=now)
    
    def effective_count(self, now: float, interval: float) -> float:
        """Current hits plus the share of previous hits still inside the trailing interval."""
        elapsed = min(max(now - self.window_start, 0.0), interval)
        overlap = (interval - elapsed) / interval
        return self.current_count + self.previous_count * overlap
    
    def record(self) -> "WindowState":
        return WindowState(
            window_start=self.window_start,
            current_count=self.current_count + 1,
            previous_count=self.previous_count,
        )

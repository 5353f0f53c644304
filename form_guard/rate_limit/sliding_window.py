"""
Sliding Window Rate Limiter
===========================
Sliding window limiter built from two fixed sub-windows.

The current sub-window's hits count fully; the previous sub-window's hits are
weighted by how much of it still overlaps the trailing interval. Sub-windows
are anchored at the first time a key is seen.
"""

import math
from typing import Optional, Tuple

import structlog

from ..clock import Clock, SystemClock
from ..config import Configuration, FailurePolicy, parse_interval
from ..exceptions import ConfigurationError, StorageUnavailable
from ..metrics import record_storage_failure
from ..retry import RetryExhausted, retry_with_backoff
from .models import Decision, DecisionReason, WindowState
from .storage import WindowStorage

logger = structlog.get_logger(__name__)

MIN_RETRY_AFTER = 1.0
# Absorbs float error when the interpolated count lands on an integer
_EPSILON = 1e-9


class SlidingWindowLimiter:
    """
    Keyed admission controller persisting its state in a WindowStorage.

    Example:
        limiter = SlidingWindowLimiter(InMemoryWindowStorage(), limit=5, interval="15 minutes")
        decision = await limiter.consume("form_guard:abc:203.0.113.7")
    """

    def __init__(
        self,
        storage: WindowStorage,
        limit: int,
        interval,
        clock: Optional[Clock] = None,
        failure_policy: FailurePolicy = FailurePolicy.FAIL_CLOSED,
        max_conflict_retries: int = 3,
        storage_retry_attempts: int = 3,
        retry_base_delay: float = 0.05,
    ):
        """
        Args:
            storage: Window state storage
            limit: Accepted consumptions per interval
            interval: Window length (seconds, timedelta or duration string)
            clock: Time source (defaults to the system clock)
            failure_policy: Outcome when storage cannot be used
            max_conflict_retries: Compare-and-swap attempts before giving up
            storage_retry_attempts: Attempts per storage round trip on errors
            retry_base_delay: Initial backoff delay for storage errors

        Raises:
            ConfigurationError: If limit or interval is invalid
        """
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ConfigurationError(f"must be a positive integer, got {limit!r}", option="limit")
        if max_conflict_retries < 1 or storage_retry_attempts < 1:
            raise ConfigurationError("retry counts must be at least 1")

        self.storage = storage
        self.limit = limit
        self.interval = parse_interval(interval)
        self.clock = clock or SystemClock()
        self.failure_policy = FailurePolicy(failure_policy)
        self.max_conflict_retries = max_conflict_retries
        self.storage_retry_attempts = storage_retry_attempts
        self.retry_base_delay = retry_base_delay

    @classmethod
    def from_config(
        cls,
        config: Configuration,
        storage: WindowStorage,
        clock: Optional[Clock] = None,
    ) -> "SlidingWindowLimiter":
        return cls(
            storage,
            limit=config.limit,
            interval=config.interval,
            clock=clock,
            failure_policy=config.failure_policy,
            max_conflict_retries=config.max_conflict_retries,
            storage_retry_attempts=config.storage_retry_attempts,
        )

    @property
    def ttl(self) -> float:
        """Storage TTL: the previous sub-window must outlive the current one."""
        return 2 * self.interval

    async def consume(self, key: str, now: Optional[float] = None) -> Decision:
        """
        Try to consume one slot for ``key``.

        Rejections never write to storage. Loads are retried with backoff on
        storage errors. A failed write is not retried, since it may have been
        applied before the error surfaced. Storage failures and exhausted
        compare-and-swap conflicts are resolved by the failure policy.

        Args:
            key: Limiter key
            now: Timestamp override (defaults to the clock)

        Returns:
            Decision with remaining slots or a retry hint
        """
        for attempt in range(1, self.max_conflict_retries + 1):
            timestamp = float(self.clock.now() if now is None else now)

            try:
                stored = await retry_with_backoff(
                    self.storage.load,
                    key,
                    max_attempts=self.storage_retry_attempts,
                    base_delay=self.retry_base_delay,
                    retryable_exceptions=(StorageUnavailable,),
                )
            except RetryExhausted as e:
                logger.error("storage_unavailable", key=key, error=str(e.last_exception or e))
                return self._failure_decision("unavailable")

            decision, new_state = self._evaluate(stored, timestamp)
            if new_state is None:
                return decision

            try:
                swapped = await self.storage.compare_and_swap(key, stored, new_state, self.ttl)
            except StorageUnavailable as e:
                logger.error("storage_write_failed", key=key, error=str(e))
                return self._failure_decision("unavailable")

            if swapped:
                return decision

            logger.info("storage_conflict", key=key, attempt=attempt)

        logger.warning("storage_conflict_exhausted", key=key, attempts=self.max_conflict_retries)
        return self._failure_decision("conflict")

    def _evaluate(
        self, stored: Optional[WindowState], timestamp: float
    ) -> Tuple[Decision, Optional[WindowState]]:
        """Decide against the loaded state. The new state is None for rejections."""
        state = stored if stored is not None else WindowState(window_start=timestamp)

        # A clock running behind the stored window never counts as a fresh window
        counting_now = max(timestamp, state.window_start)
        state = state.advance(counting_now, self.interval)
        effective = state.effective_count(counting_now, self.interval)

        if math.floor(effective + _EPSILON) + 1 > self.limit:
            release_at = self._release_time(state, counting_now)
            rejected = Decision(
                accepted=False,
                remaining=0,
                reason=DecisionReason.RATE_LIMITED,
                limit=self.limit,
                retry_after=max(release_at - timestamp, MIN_RETRY_AFTER),
            )
            return rejected, None

        accepted = Decision(
            accepted=True,
            remaining=max(0, self.limit - math.ceil(effective + 1 - _EPSILON)),
            reason=DecisionReason.ACCEPTED,
            limit=self.limit,
        )
        return accepted, state.record()

    def _release_time(self, state: WindowState, now: float) -> float:
        """Earliest time at which the interpolated count drops below the limit."""
        start, interval, limit = state.window_start, self.interval, self.limit
        current, previous = state.current_count, state.previous_count

        if current >= limit:
            # Only decay of the current sub-window, once it turns previous, helps
            return start + 2 * interval - limit * interval / current
        if previous == 0:
            return now
        return max(now, start + interval - (limit - current) * interval / previous)

    def _failure_decision(self, cause: str) -> Decision:
        record_storage_failure(cause, self.failure_policy.value)
        if self.failure_policy == FailurePolicy.FAIL_OPEN:
            logger.warning("rate_limit_fail_open", policy=self.failure_policy.value)
            return Decision(
                accepted=True,
                remaining=None,
                reason=DecisionReason.STORAGE_FAILURE,
                limit=self.limit,
            )

        logger.warning("rate_limit_fail_closed", policy=self.failure_policy.value)
        return Decision(
            accepted=False,
            remaining=0,
            reason=DecisionReason.STORAGE_FAILURE,
            limit=self.limit,
            retry_after=self.interval,
        )

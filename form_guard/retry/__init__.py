"""
Retry Logic with Exponential Backoff
=====================================
Bounded retries for transient storage failures.
"""

from .exceptions import RetryExhausted
from .backoff import backoff_delays, retry_with_backoff

__all__ = [
    "RetryExhausted",
    "backoff_delays",
    "retry_with_backoff",
]

"""
Form Guard
==========
Request-admission guard for form submissions: sliding window rate limiting
with IP allow/deny lists layered on top.
"""

__version__ = "0.1.0"

# Configuration
from form_guard.config import (
    Configuration,
    FailurePolicy,
    KeyingMode,
    parse_interval,
    parse_ip_list,
)

# Errors
from form_guard.exceptions import (
    FormGuardError,
    ConfigurationError,
    StorageUnavailable,
    MalformedAccessListEntry,
)

# Clock
from form_guard.clock import Clock, SystemClock, FrozenClock

# Rate Limiting
from form_guard.rate_limit import (
    Decision,
    DecisionReason,
    RateLimitResult,
    WindowState,
    WindowStorage,
    InMemoryWindowStorage,
    RedisWindowStorage,
    SlidingWindowLimiter,
    NoLimitLimiter,
)

# Access Lists
from form_guard.access_list import AccessClass, AccessListEvaluator

# Facade
from form_guard.limiter import FormRateLimiter, limiter_id, limiter_key, storage_from_config

# Metrics
from form_guard.metrics import FORM_GUARD_REGISTRY

# Logging
from form_guard.logging_config import setup_logging

__all__ = [
    "__version__",
    # Configuration
    "Configuration",
    "FailurePolicy",
    "KeyingMode",
    "parse_interval",
    "parse_ip_list",
    # Errors
    "FormGuardError",
    "ConfigurationError",
    "StorageUnavailable",
    "MalformedAccessListEntry",
    # Clock
    "Clock",
    "SystemClock",
    "FrozenClock",
    # Rate Limiting
    "Decision",
    "DecisionReason",
    "RateLimitResult",
    "WindowState",
    "WindowStorage",
    "InMemoryWindowStorage",
    "RedisWindowStorage",
    "SlidingWindowLimiter",
    "NoLimitLimiter",
    # Access Lists
    "AccessClass",
    "AccessListEvaluator",
    # Facade
    "FormRateLimiter",
    "limiter_id",
    "limiter_key",
    "storage_from_config",
    # Metrics
    "FORM_GUARD_REGISTRY",
    # Logging
    "setup_logging",
]

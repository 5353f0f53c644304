"""
Form Guard Configuration
========================
Immutable limiter configuration plus helpers to build it from mappings
(extension-style option dicts) or environment variables.
"""

import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from .exceptions import ConfigurationError

DEFAULT_LIMIT = 5
DEFAULT_INTERVAL = "15 minutes"
DEFAULT_KEY_PREFIX = "form_guard"
DEFAULT_MAX_CONFLICT_RETRIES = 3
DEFAULT_STORAGE_RETRY_ATTEMPTS = 3

_UNIT_SECONDS = {
    "s": 1, "sec": 1, "secs": 1, "second": 1, "seconds": 1,
    "m": 60, "min": 60, "mins": 60, "minute": 60, "minutes": 60,
    "h": 3600, "hr": 3600, "hrs": 3600, "hour": 3600, "hours": 3600,
    "d": 86400, "day": 86400, "days": 86400,
    "w": 604800, "week": 604800, "weeks": 604800,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)\s*([a-z]+)")
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


class KeyingMode(str, Enum):
    """Whether distinct forms get independent limiters or share one."""
    PER_FORM = "per_form"
    GLOBAL = "global"


class FailurePolicy(str, Enum):
    """Outcome applied when the window storage cannot be used."""
    FAIL_CLOSED = "fail_closed"  # Reject
    FAIL_OPEN = "fail_open"      # Accept without bookkeeping


IntervalLike = Union[str, int, float, timedelta]


def parse_interval(value: IntervalLike) -> float:
    """
    Convert an interval option to seconds.

    Accepts seconds as a number, a ``timedelta`` or a duration string such as
    ``"15 minutes"``, ``"1 hour 30 minutes"`` or ``"90 sec"``.

    Raises:
        ConfigurationError: If the value is unparseable or not positive
    """
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, bool):
        raise ConfigurationError(f"invalid interval {value!r}", option="interval")
    elif isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        seconds = _parse_duration_string(value)
    else:
        raise ConfigurationError(f"invalid interval {value!r}", option="interval")

    if seconds <= 0:
        raise ConfigurationError(f"interval must be positive, got {value!r}", option="interval")
    return seconds


def _parse_duration_string(text: str) -> float:
    normalized = text.strip().lower()
    if re.fullmatch(r"\d+(\.\d+)?", normalized):
        return float(normalized)

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(normalized):
        # Only whitespace, commas and "and" may sit between parts
        gap = normalized[position:match.start()].replace(",", " ").replace("and", " ")
        if gap.strip():
            break
        unit = match.group(2)
        if unit not in _UNIT_SECONDS:
            raise ConfigurationError(f"unknown unit {unit!r} in {text!r}", option="interval")
        total += float(match.group(1)) * _UNIT_SECONDS[unit]
        position = match.end()

    if position == 0 or normalized[position:].strip(" ,."):
        raise ConfigurationError(f"cannot parse duration {text!r}", option="interval")
    return total


def parse_ip_list(value: Union[None, str, Iterable[str]]) -> Tuple[str, ...]:
    """Split an allow/deny list given as a comma separated string or an iterable."""
    if value is None:
        return ()
    if isinstance(value, str):
        items = re.split(r"[,\s]+", value)
    else:
        items = list(value)
    return tuple(item.strip() for item in items if item and item.strip())


def parse_bool(value: Any, option: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigurationError(f"expected a boolean, got {value!r}", option=option)


def _parse_int(value: Any, option: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"expected an integer, got {value!r}", option=option)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"expected an integer, got {value!r}", option=option) from e


def _parse_enum(enum_cls, value: Any, option: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as e:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(f"expected one of {allowed}, got {value!r}", option=option) from e


@dataclass(frozen=True)
class Configuration:
    """
    Limiter configuration, read-only and safe to share between requests.

    ``interval`` may be given as seconds, a ``timedelta`` or a duration
    string; it is stored as float seconds.
    """
    enabled: bool = True
    keying_mode: KeyingMode = KeyingMode.PER_FORM
    limit: int = DEFAULT_LIMIT
    interval: float = 900.0
    allow_list: Tuple[str, ...] = ()
    deny_list: Tuple[str, ...] = ()
    logging_enabled: bool = False
    failure_policy: FailurePolicy = FailurePolicy.FAIL_CLOSED
    max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES
    storage_retry_attempts: int = DEFAULT_STORAGE_RETRY_ATTEMPTS
    key_prefix: str = DEFAULT_KEY_PREFIX
    redis_url: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit <= 0:
            raise ConfigurationError(f"must be a positive integer, got {self.limit!r}", option="limit")
        if self.max_conflict_retries < 1:
            raise ConfigurationError("must be at least 1", option="max_conflict_retries")
        if self.storage_retry_attempts < 1:
            raise ConfigurationError("must be at least 1", option="storage_retry_attempts")
        if not self.key_prefix:
            raise ConfigurationError("must not be empty", option="key_prefix")
        # Coerce loose inputs so callers may pass plain strings and lists
        object.__setattr__(self, "keying_mode", _parse_enum(KeyingMode, self.keying_mode, "keying_mode"))
        object.__setattr__(self, "failure_policy", _parse_enum(FailurePolicy, self.failure_policy, "failure_policy"))
        object.__setattr__(self, "interval", parse_interval(self.interval))
        object.__setattr__(self, "allow_list", parse_ip_list(self.allow_list))
        object.__setattr__(self, "deny_list", parse_ip_list(self.deny_list))

    @property
    def interval_delta(self) -> timedelta:
        return timedelta(seconds=self.interval)

    @property
    def fail_open(self) -> bool:
        return self.failure_policy == FailurePolicy.FAIL_OPEN

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "Configuration":
        """
        Build a configuration from an option mapping.

        Both snake_case names and the legacy extension names
        (``limitingMode``, ``whitelistIps``, ``blacklistIps``, ``enableLogging``)
        are recognised. Missing options fall back to defaults.
        """
        def pick(*names, default=None):
            for name in names:
                if name in options and options[name] is not None:
                    return options[name]
            return default

        return cls(
            enabled=parse_bool(pick("enabled", default=True), "enabled"),
            keying_mode=pick("keying_mode", "keyingMode", "limitingMode", default=KeyingMode.PER_FORM),
            limit=_parse_int(pick("limit", default=DEFAULT_LIMIT), "limit"),
            interval=parse_interval(pick("interval", default=DEFAULT_INTERVAL)),
            allow_list=parse_ip_list(pick("allow_list", "allowList", "whitelistIps", default="")),
            deny_list=parse_ip_list(pick("deny_list", "denyList", "blacklistIps", default="")),
            logging_enabled=parse_bool(
                pick("logging_enabled", "loggingEnabled", "enableLogging", default=False),
                "logging_enabled",
            ),
            failure_policy=pick("failure_policy", "failurePolicy", default=FailurePolicy.FAIL_CLOSED),
            max_conflict_retries=_parse_int(
                pick("max_conflict_retries", default=DEFAULT_MAX_CONFLICT_RETRIES), "max_conflict_retries"
            ),
            storage_retry_attempts=_parse_int(
                pick("storage_retry_attempts", default=DEFAULT_STORAGE_RETRY_ATTEMPTS), "storage_retry_attempts"
            ),
            key_prefix=str(pick("key_prefix", "keyPrefix", default=DEFAULT_KEY_PREFIX)),
            redis_url=pick("redis_url", "redisUrl"),
        )

    @classmethod
    def from_env(cls, prefix: str = "FORM_GUARD_", environ: Optional[Mapping[str, str]] = None) -> "Configuration":
        """Build a configuration from ``<prefix><OPTION>`` environment variables."""
        env = os.environ if environ is None else environ
        names = (
            "enabled", "keying_mode", "limit", "interval", "allow_list", "deny_list",
            "logging_enabled", "failure_policy", "max_conflict_retries",
            "storage_retry_attempts", "key_prefix", "redis_url",
        )
        options = {}
        for name in names:
            value = env.get(f"{prefix}{name.upper()}")
            if value is not None:
                options[name] = value
        return cls.from_mapping(options)

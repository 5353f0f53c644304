"""
Form Rate Limiter
=================
Per-request admission: access lists first, then the sliding window limiter.
"""

import hashlib
from typing import Optional, Union

import structlog

from .access_list import AccessClass, AccessListEvaluator, parse_address
from .clock import Clock, SystemClock
from .config import Configuration, KeyingMode
from .metrics import record_decision
from .rate_limit import (
    Decision,
    DecisionReason,
    InMemoryWindowStorage,
    NoLimitLimiter,
    RedisWindowStorage,
    SlidingWindowLimiter,
    WindowStorage,
)

logger = structlog.get_logger(__name__)

LIMITER_ID_SEED = "form-rate-limiter"


def limiter_id(form_identifier: str, keying_mode: KeyingMode) -> str:
    """Stable limiter identity: one per form, or one shared by all forms."""
    if KeyingMode(keying_mode) == KeyingMode.GLOBAL:
        seed = f"{LIMITER_ID_SEED}-global"
    else:
        seed = f"{LIMITER_ID_SEED}-{form_identifier}"
    return hashlib.sha1(seed.encode("utf-8")).hexdigest()


def limiter_key(
    form_identifier: str,
    client_address: str,
    keying_mode: KeyingMode = KeyingMode.PER_FORM,
    prefix: str = "form_guard",
) -> str:
    """Storage key: the client address partitions every limiter identity."""
    parsed = parse_address(client_address)
    subject = str(parsed) if parsed is not None else (client_address.strip() or "unknown")
    return f"{prefix}:{limiter_id(form_identifier, keying_mode)}:{subject}"


def storage_from_config(config: Configuration) -> WindowStorage:
    """Redis storage when a URL is configured, process memory otherwise."""
    if config.redis_url:
        logger.info("window_storage_selected", backend="redis")
        return RedisWindowStorage.from_url(config.redis_url)
    logger.info("window_storage_selected", backend="memory")
    return InMemoryWindowStorage()


class FormRateLimiter:
    """
    Decides whether a form submission from a client address is admitted.

    Example:
        guard = FormRateLimiter(Configuration(limit=5, interval="15 minutes"))
        decision = await guard.decide("contact-form", "203.0.113.7")
        if not decision.accepted:
            ...
    """

    def __init__(
        self,
        config: Configuration,
        storage: Optional[WindowStorage] = None,
        clock: Optional[Clock] = None,
        evaluator: Optional[AccessListEvaluator] = None,
        limiter: Union[SlidingWindowLimiter, NoLimitLimiter, None] = None,
    ):
        """
        Args:
            config: Limiter configuration
            storage: Window storage (from config.redis_url, else in-memory)
            clock: Time source (system clock if omitted)
            evaluator: Access list evaluator (built from config if omitted)
            limiter: Pre-built limiter (built from config if omitted)

        Raises:
            ConfigurationError: If the configuration cannot build a limiter
        """
        self.config = config
        self.clock = clock or SystemClock()
        self.evaluator = evaluator or AccessListEvaluator.from_config(config)

        if limiter is not None:
            self.limiter = limiter
        elif config.enabled:
            self.limiter = SlidingWindowLimiter.from_config(
                config,
                storage if storage is not None else storage_from_config(config),
                clock=self.clock,
            )
        else:
            self.limiter = NoLimitLimiter()

    def classify(self, client_address: str) -> AccessClass:
        return self.evaluator.classify(client_address)

    def key_for(self, form_identifier: str, client_address: str) -> str:
        return limiter_key(
            form_identifier,
            client_address,
            keying_mode=self.config.keying_mode,
            prefix=self.config.key_prefix,
        )

    async def decide(self, form_identifier: str, client_address: str) -> Decision:
        """
        Admit or reject one submission.

        Allow-listed addresses are accepted without consuming a slot,
        deny-listed ones are rejected without a retry hint, everything else
        goes through the limiter.
        """
        access = self.classify(client_address)
        if access == AccessClass.ALLOWED:
            decision = Decision.unlimited(DecisionReason.IP_ALLOWED)
        elif access == AccessClass.DENIED:
            decision = Decision.denied()
        else:
            key = self.key_for(form_identifier, client_address)
            decision = await self.limiter.consume(key)

        record_decision(decision.reason.value, decision.accepted)

        if not decision.accepted:
            logger.debug(
                "form_submission_rejected",
                form=form_identifier,
                reason=decision.reason.value,
                retry_after=decision.retry_after,
            )
        return decision

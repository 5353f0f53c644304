"""
Prometheus Metrics Definitions
==============================
Counters for admission decisions and storage degradation.
"""

from prometheus_client import CollectorRegistry, Counter

# Custom registry so embedding apps decide whether to expose it
FORM_GUARD_REGISTRY = CollectorRegistry()

DECISIONS_TOTAL = Counter(
    name="form_guard_decisions_total",
    documentation="Admission decisions by outcome",
    labelnames=["reason", "accepted"],
    registry=FORM_GUARD_REGISTRY,
)

STORAGE_FAILURES_TOTAL = Counter(
    name="form_guard_storage_failures_total",
    documentation="Decisions resolved by the failure policy",
    labelnames=["cause", "policy"],
    registry=FORM_GUARD_REGISTRY,
)


def record_decision(reason: str, accepted: bool) -> None:
    DECISIONS_TOTAL.labels(reason=reason, accepted=str(accepted).lower()).inc()


def record_storage_failure(cause: str, policy: str) -> None:
    STORAGE_FAILURES_TOTAL.labels(cause=cause, policy=policy).inc()

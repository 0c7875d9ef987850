"""Prometheus metrics for numbering, verification and synchronization."""

from __future__ import annotations

from typing import Optional

from prometheus_client import Counter, Histogram

from verification_service.config import settings


VERIFICATIONS_TOTAL = Counter(
    "policy_verifications_total",
    "Verification attempts by outcome and method",
    ["status", "method"],
)

VERIFICATION_LATENCY_SECONDS = Histogram(
    "policy_verification_latency_seconds",
    "Time from request start to computed verification result",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2),
)

NUMBER_ALLOCATION_ATTEMPTS_TOTAL = Counter(
    "policy_number_allocation_attempts_total",
    "Policy number allocation attempts by result",
    ["result"],
)

SYNC_RUNS_TOTAL = Counter(
    "insurer_sync_runs_total",
    "Synchronization runs by outcome",
    ["outcome"],
)

SYNC_ENTRIES_TOTAL = Counter(
    "insurer_sync_entries_total",
    "Feed entries processed by outcome",
    ["outcome"],
)

SYNC_DURATION_SECONDS = Histogram(
    "insurer_sync_duration_seconds",
    "Duration of synchronization runs",
    buckets=(0.1, 0.5, 1, 5, 10, 30, 60, 120),
)

POLICIES_EXPIRED_TOTAL = Counter(
    "policies_expired_total",
    "Policies transitioned to expired by the sweep",
)


def _enabled() -> bool:
    """Check whether metrics are enabled."""
    return bool(settings.metrics_enabled)


def record_verification(status: str, method: str, latency_seconds: Optional[float] = None) -> None:
    if not _enabled():
        return

    VERIFICATIONS_TOTAL.labels(status=status, method=method).inc()
    if latency_seconds is not None:
        VERIFICATION_LATENCY_SECONDS.observe(max(latency_seconds, 0.0))


def record_allocation_attempt(result: str) -> None:
    """Result is one of allocated, collision, race, exhausted."""
    if not _enabled():
        return

    NUMBER_ALLOCATION_ATTEMPTS_TOTAL.labels(result=result).inc()


def record_sync_run(
    outcome: str,
    created: int = 0,
    updated: int = 0,
    failed: int = 0,
    duration_seconds: Optional[float] = None,
) -> None:
    """Record a finished (or skipped) synchronization run."""
    if not _enabled():
        return

    SYNC_RUNS_TOTAL.labels(outcome=outcome).inc()
    for label, count in (("created", created), ("updated", updated), ("failed", failed)):
        if count:
            SYNC_ENTRIES_TOTAL.labels(outcome=label).inc(count)
    if duration_seconds is not None:
        SYNC_DURATION_SECONDS.observe(max(duration_seconds, 0.0))


def record_expired(count: int) -> None:
    if not _enabled() or count <= 0:
        return

    POLICIES_EXPIRED_TOTAL.inc(count)

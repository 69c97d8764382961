"""Metrics facade.

Uses Prometheus client library if available; otherwise falls back to logging-only no-ops.
Service code should ONLY call the semantic helpers here so we can change backend freely.

Metrics:
- webhook_events_total{provider,outcome}     Webhook deliveries by pipeline outcome
- donations_settled_total{currency}          Donations created by settlement
- trees_settled_total                        Trees credited by settlement
- webhook_settlement_latency_seconds         Time spent settling an admitted event
- achievements_granted_total                 Achievements granted after settlement
- achievement_evaluation_failures_total      Post-commit evaluations that raised
- webhook_failed_deliveries                   Unprocessed webhook log rows in the lookback window (set at scrape)
"""

from __future__ import annotations

import logging
import time

logger = logging.getLogger("metrics")

try:  # pragma: no cover - import guard
    from prometheus_client import Counter, Gauge, Histogram

    _WEBHOOK_EVENTS = Counter(
        "webhook_events_total", "Webhook deliveries by pipeline outcome", ["provider", "outcome"]
    )
    _DONATIONS_SETTLED = Counter(
        "donations_settled_total", "Donations created by settlement", ["currency"]
    )
    _TREES_SETTLED = Counter("trees_settled_total", "Trees credited by settlement")
    _SETTLEMENT_LATENCY = Histogram(
        "webhook_settlement_latency_seconds",
        "Time spent settling an admitted webhook event",
        buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5),
    )
    _ACHIEVEMENTS_GRANTED = Counter("achievements_granted_total", "Achievements granted after settlement")
    _ACHIEVEMENT_EVAL_FAILURES = Counter(
        "achievement_evaluation_failures_total", "Post-commit achievement evaluations that failed"
    )
    _FAILED_DELIVERIES = Gauge(
        "webhook_failed_deliveries", "Webhook deliveries not processed within the lookback window"
    )
    _ENABLED = True
except Exception:  # noqa: BLE001
    _ENABLED = False
    _WEBHOOK_EVENTS = _DONATIONS_SETTLED = _TREES_SETTLED = _SETTLEMENT_LATENCY = None  # type: ignore
    _ACHIEVEMENTS_GRANTED = _ACHIEVEMENT_EVAL_FAILURES = None  # type: ignore
    _FAILED_DELIVERIES = None  # type: ignore
    logger.warning("Prometheus client not available; metrics will be log-only")


def webhook_event(provider: str, outcome: str):
    """Record one webhook delivery; outcome is processed/duplicate/ignored/rejected/failed/invalid."""
    if _ENABLED:
        _WEBHOOK_EVENTS.labels(provider=provider, outcome=outcome).inc()  # type: ignore[union-attr]
    else:
        logger.debug(f"metric webhook_events_total[provider={provider}, outcome={outcome}] += 1")


def donation_settled(currency: str, trees: int):
    if _ENABLED:
        _DONATIONS_SETTLED.labels(currency=currency).inc()  # type: ignore[union-attr]
        if trees > 0:
            _TREES_SETTLED.inc(trees)  # type: ignore[union-attr]
    else:
        logger.debug(f"metric donations_settled_total[currency={currency}] += 1")
        logger.debug(f"metric trees_settled_total += {trees}")


def achievements_granted(count: int = 1):
    if count <= 0:
        return
    if _ENABLED:
        _ACHIEVEMENTS_GRANTED.inc(count)  # type: ignore[union-attr]
    else:
        logger.debug(f"metric achievements_granted_total += {count}")


def achievement_evaluation_failed():
    if _ENABLED:
        _ACHIEVEMENT_EVAL_FAILURES.inc()  # type: ignore[union-attr]
    else:
        logger.debug("metric achievement_evaluation_failures_total += 1")


def set_failed_deliveries(count: int):
    if _ENABLED:
        _FAILED_DELIVERIES.set(count)  # type: ignore[union-attr]
    else:
        logger.debug(f"metric webhook_failed_deliveries = {count}")


class SettlementTimer:
    def __init__(self):
        self.start = time.perf_counter()

    def stop(self) -> float:
        dur = time.perf_counter() - self.start
        if _ENABLED:
            _SETTLEMENT_LATENCY.observe(dur)  # type: ignore[union-attr]
        else:
            logger.debug("observe webhook_settlement_latency_seconds=%s", dur)
        return dur


__all__ = [
    "webhook_event",
    "donation_settled",
    "achievements_granted",
    "achievement_evaluation_failed",
    "set_failed_deliveries",
    "SettlementTimer",
]

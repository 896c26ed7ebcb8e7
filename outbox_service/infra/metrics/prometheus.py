"""Prometheus metrics for the outbox publisher."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# Custom registry so only this service's metrics are exported
REGISTRY = CollectorRegistry()

# Publish cycles range from a few ms (nothing due) to a full batch of broker round trips
CYCLE_DURATION_BUCKETS = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
    60.0,
)

outbox_events_claimed_total = Counter(
    "outbox_events_claimed_total",
    "Outbox events claimed for delivery",
    ["source"],  # due | expired_lease
    registry=REGISTRY,
)

outbox_events_published_total = Counter(
    "outbox_events_published_total",
    "Outbox events acknowledged by the broker",
    ["topic"],
    registry=REGISTRY,
)

outbox_delivery_failures_total = Counter(
    "outbox_delivery_failures_total",
    "Failed outbox delivery attempts",
    ["topic", "outcome"],  # outcome: retry | failed
    registry=REGISTRY,
)

outbox_claims_lost_total = Counter(
    "outbox_claims_lost_total",
    "Delivery outcomes discarded because the claim had been taken over",
    registry=REGISTRY,
)

outbox_cycle_errors_total = Counter(
    "outbox_cycle_errors_total",
    "Publish cycles aborted by an infrastructure error",
    registry=REGISTRY,
)

outbox_cycle_duration_seconds = Histogram(
    "outbox_cycle_duration_seconds",
    "Duration of one outbox publish cycle",
    buckets=CYCLE_DURATION_BUCKETS,
    registry=REGISTRY,
)

outbox_publisher_running = Gauge(
    "outbox_publisher_running",
    "1 while the outbox publisher scheduler is running",
    registry=REGISTRY,
)

"""Prometheus metrics for channel operations.

Collectors are module-level so every ChannelStateMachine in the process
reports into the default registry.
"""

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    REGISTRY,
)
import time


# ============================================================================
# CHANNEL METRICS
# ============================================================================

channel_operations_total = Counter(
    "state_channel_operations_total",
    "Total channel operations by outcome",
    ["operation", "outcome"],  # outcome: ok / rejected / failed
)

channel_rejections_total = Counter(
    "state_channel_rejections_total",
    "Total rejected channel operations by error kind",
    ["operation", "error_kind"],
)

channel_settlements_total = Counter(
    "state_channel_settlements_total",
    "Total channels settled, by closing path",
    ["path"],  # close_channel / settle / force_close
)

# Any increment here means a channel is closed but its funds were not paid out.
channel_settlement_failures_total = Counter(
    "state_channel_settlement_failures_total",
    "Ledger payouts that failed after the channel was closed",
    ["path"],
)

open_channels = Gauge("state_channel_open_channels", "Number of channels not yet closed")

signature_verify_latency = Histogram(
    "state_channel_signature_verify_latency_seconds",
    "Time to hash a state and verify its signatures",
    buckets=[0.0001, 0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05],
)


class Timer:
    """
    Context manager that observes elapsed time on a histogram.

    Usage:
        with Timer(signature_verify_latency):
            verify(...)
    """

    def __init__(self, histogram):
        self.histogram = histogram
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.histogram.observe(time.perf_counter() - self.start_time)
        return False


def record_success(operation: str):
    channel_operations_total.labels(operation=operation, outcome="ok").inc()


def record_rejection(operation: str, error_kind: str):
    channel_operations_total.labels(operation=operation, outcome="rejected").inc()
    channel_rejections_total.labels(operation=operation, error_kind=error_kind).inc()


def record_settlement(path: str):
    channel_settlements_total.labels(path=path).inc()


def record_settlement_failure(path: str):
    channel_operations_total.labels(operation=path, outcome="failed").inc()
    channel_settlement_failures_total.labels(path=path).inc()


def get_metrics() -> bytes:
    """
    Get metrics in Prometheus text format.

    Returns:
        Metrics exposition bytes
    """
    return generate_latest(REGISTRY)

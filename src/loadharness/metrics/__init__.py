from __future__ import annotations

from loadharness.metrics.aggregator import (
    aggregate,
    aggregate_stream,
    duration_percentiles,
    throughput_percentiles,
)
from loadharness.metrics.models import PERCENTILES, TTFB_UNSET_MS, AggregateResult, Measurement

__all__ = [
    "PERCENTILES",
    "TTFB_UNSET_MS",
    "AggregateResult",
    "Measurement",
    "aggregate",
    "aggregate_stream",
    "duration_percentiles",
    "throughput_percentiles",
]

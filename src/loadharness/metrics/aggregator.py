from __future__ import annotations

import time
from collections import defaultdict
from typing import AsyncIterable, Callable, Iterable, Sequence

import numpy as np

from loadharness.metrics.models import PERCENTILES, AggregateResult, Measurement

Clock = Callable[[], float]


def duration_percentiles(
    values: Iterable[float],
    percentiles: Sequence[float] = PERCENTILES,
) -> dict[str, float]:
    ordered = np.sort(np.fromiter(values, dtype=float))
    return _nearest_rank(ordered, percentiles)


def throughput_percentiles(
    counts: Iterable[int],
    percentiles: Sequence[float] = PERCENTILES,
) -> dict[str, float]:
    # Ranked highest-first, unlike duration_percentiles.
    ordered = np.sort(np.fromiter(counts, dtype=float))[::-1]
    return _nearest_rank(ordered, percentiles)


def _nearest_rank(ordered: np.ndarray, percentiles: Sequence[float]) -> dict[str, float]:
    n = len(ordered)
    result: dict[str, float] = {}
    for percentile in percentiles:
        index = int((percentile / 100.0) * n)
        if 0 < index <= n:
            result[f"p{percentile:.0f}"] = float(ordered[index - 1])
    return result


class _Accumulator:
    def __init__(self, started_at: float) -> None:
        self.started_at = started_at
        self.total_requests = 0
        self.total_errors = 0
        self.status_code_count: dict[int, int] = defaultdict(int)
        self.per_second: dict[int, int] = defaultdict(int)
        self.ttfbs: list[float] = []

    def add(self, measurement: Measurement) -> None:
        second = int(measurement.completed_at - self.started_at)
        self.per_second[second] += 1
        self.total_requests += 1
        self.status_code_count[measurement.status_code] += 1
        if measurement.is_error:
            self.total_errors += 1
        self.ttfbs.append(measurement.ttfb_ms)

    def finish(self, finished_at: float, virtual_users: int) -> AggregateResult:
        total_duration_sec = max(0.0, finished_at - self.started_at)
        mttfb = float(np.mean(np.sort(self.ttfbs))) if self.ttfbs else 0.0
        tps = self.total_requests / total_duration_sec if total_duration_sec > 0 else 0.0
        return AggregateResult(
            total_requests=self.total_requests,
            total_errors=self.total_errors,
            total_success=self.total_requests - self.total_errors,
            status_code_count=dict(self.status_code_count),
            total_users=virtual_users,
            total_duration_ms=total_duration_sec * 1000.0,
            mttfb_average_ms=mttfb,
            mttfb_percentiles=duration_percentiles(self.ttfbs),
            tps_average=tps,
            tps_percentiles=throughput_percentiles(self.per_second.values()),
        )


def aggregate(
    measurements: Iterable[Measurement],
    virtual_users: int,
    clock: Clock = time.perf_counter,
) -> AggregateResult:
    acc = _Accumulator(clock())
    for measurement in measurements:
        acc.add(measurement)
    return acc.finish(clock(), virtual_users)


async def aggregate_stream(
    measurements: AsyncIterable[Measurement],
    virtual_users: int,
    clock: Clock = time.perf_counter,
) -> AggregateResult:
    """Drain `measurements` until the producer closes it; times from aggregation start."""
    acc = _Accumulator(clock())
    async for measurement in measurements:
        acc.add(measurement)
    return acc.finish(clock(), virtual_users)

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

TTFB_UNSET_MS = -1.0
PERCENTILES: tuple[float, ...] = (50, 75, 90, 95, 99)


@dataclass(frozen=True, slots=True)
class Measurement:
    started_at: float
    completed_at: float
    duration_ms: float
    ttfb_ms: float
    status_code: int

    @property
    def is_error(self) -> bool:
        return self.status_code < 200 or self.status_code >= 300


@dataclass(frozen=True, slots=True)
class AggregateResult:
    total_requests: int
    total_errors: int
    total_success: int
    status_code_count: Mapping[int, int]
    total_users: int
    total_duration_ms: float
    mttfb_average_ms: float
    mttfb_percentiles: Mapping[str, float]
    tps_average: float
    tps_percentiles: Mapping[str, float]
    url: str = ""
    method: str = "POST"
    run_id: int | None = None

    @property
    def error_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_errors / self.total_requests

    def to_record(self) -> dict[str, Any]:
        """Flatten into the stored form: integer milliseconds, string-keyed maps."""
        return {
            "url": self.url,
            "method": self.method,
            "total_requests": self.total_requests,
            "total_errors": self.total_errors,
            "total_success": self.total_success,
            "status_code_count": {str(k): v for k, v in sorted(self.status_code_count.items())},
            "total_users": self.total_users,
            "total_duration": int(self.total_duration_ms),
            "mttfb_average": int(self.mttfb_average_ms),
            "mttfb_percentiles": {k: int(v) for k, v in self.mttfb_percentiles.items()},
            "tps_average": self.tps_average,
            "tps_percentiles": dict(self.tps_percentiles),
        }

    def summary(self) -> str:
        lines = [
            f"Total Requests: {self.total_requests}",
            f"Total Errors: {self.total_errors}",
            f"Total Success: {self.total_success}",
            f"Status Code Distribution: {dict(sorted(self.status_code_count.items()))}",
            f"Total Users: {self.total_users}",
            f"Total Duration: {self.total_duration_ms:.2f}ms",
            f"Mean Time To First Byte (MTTFB) Average: {self.mttfb_average_ms:.3f}ms",
            f"MTTFB Percentiles: {_format_map(self.mttfb_percentiles, 'ms')}",
            f"Transactions Per Second (TPS) Average: {self.tps_average:.2f}",
            f"TPS Percentiles: {_format_map(self.tps_percentiles, '')}",
        ]
        return "\n".join(lines)


def _format_map(values: Mapping[str, float], unit: str) -> str:
    if not values:
        return "{}"
    parts = [f"{k}={v:.3f}{unit}" for k, v in values.items()]
    return "{" + ", ".join(parts) + "}"

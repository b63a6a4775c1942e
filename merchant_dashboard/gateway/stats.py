"""
Latency and error tracking for merchant API calls.
"""
import logging
import time
from collections import Counter, deque
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class GatewayCallRecord:
    """Record of a single merchant API call."""
    timestamp: float
    method: str
    path: str
    latency_ms: int
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


class GatewayStats:
    """Tracks merchant API call statistics."""

    def __init__(self, max_history: int = 1000):
        self._calls: deque[GatewayCallRecord] = deque(maxlen=max_history)
        self._total_calls: int = 0
        self._total_failures: int = 0

    def record_success(self, method: str, path: str, latency_ms: int, status_code: int):
        """Record a successful call."""
        self._calls.append(GatewayCallRecord(
            timestamp=time.time(),
            method=method,
            path=path,
            latency_ms=latency_ms,
            success=True,
            status_code=status_code,
        ))
        self._total_calls += 1

    def record_failure(
        self,
        method: str,
        path: str,
        latency_ms: int,
        error: str,
        status_code: Optional[int] = None,
    ):
        """Record a failed call (network error or non-2xx response)."""
        self._calls.append(GatewayCallRecord(
            timestamp=time.time(),
            method=method,
            path=path,
            latency_ms=latency_ms,
            success=False,
            status_code=status_code,
            error=error,
        ))
        self._total_calls += 1
        self._total_failures += 1

    def get_summary(self) -> dict:
        """
        Call statistics for the /stats endpoint.

        Failures are grouped by endpoint and by upstream status, with
        network failures counted under "network" and 401s broken out
        as expired sessions.
        """
        calls = list(self._calls)
        failures = [c for c in calls if not c.success]
        failure_rate = (self._total_failures / self._total_calls * 100) if self._total_calls else 0.0

        return {
            "total_calls": self._total_calls,
            "total_failures": self._total_failures,
            "failure_rate": round(failure_rate, 2),
            "session_expiries": sum(1 for c in failures if c.status_code == 401),
            "latency_ms": _latency_summary([c.latency_ms for c in calls]),
            "failures_by_endpoint": dict(Counter(f"{c.method} {c.path}" for c in failures)),
            "failures_by_status": dict(Counter(
                str(c.status_code) if c.status_code is not None else "network"
                for c in failures
            )),
            "recent_errors": [
                {
                    "timestamp": c.timestamp,
                    "method": c.method,
                    "path": c.path,
                    "status_code": c.status_code,
                    "error": c.error,
                }
                for c in reversed(failures[-5:])
            ],
        }


def _latency_summary(latencies: list[int]) -> dict:
    if not latencies:
        return {"avg": 0, "max": 0, "p95": 0}
    ordered = sorted(latencies)
    return {
        "avg": round(sum(ordered) / len(ordered)),
        "max": ordered[-1],
        "p95": ordered[min(int(len(ordered) * 0.95), len(ordered) - 1)],
    }

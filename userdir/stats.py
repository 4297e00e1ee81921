"""Runtime and request statistics exposed under ``/api/v1/stats``."""

from __future__ import annotations

import os
import platform
import sys
import threading
import time
from typing import Callable, Dict, Optional

try:
    import resource
except ImportError:  # pragma: no cover - Windows has no resource module
    resource = None  # type: ignore[assignment]


def _max_rss_megabytes() -> Optional[float]:
    if resource is None:  # pragma: no cover - platform dependent
        return None
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is reported in bytes on macOS and kilobytes elsewhere.
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
    return round(usage / divisor, 2)


class StatsService:
    """Collects process statistics and aggregate request counters."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._started = clock()
        self._lock = threading.Lock()
        self._active_connections = 0
        self._total_requests = 0
        self._server_errors = 0
        self._total_latency = 0.0

    def connection_opened(self) -> None:
        with self._lock:
            self._active_connections += 1

    def connection_closed(self) -> None:
        with self._lock:
            self._active_connections -= 1

    def record_request(self, duration: float, status_code: int) -> None:
        with self._lock:
            self._total_requests += 1
            self._total_latency += duration
            if status_code >= 500:
                self._server_errors += 1

    def uptime(self) -> float:
        return max(self._clock() - self._started, 0.0)

    def system_stats(self) -> Dict[str, object]:
        return {
            "uptime_seconds": round(self.uptime(), 3),
            "memory_usage_mb": _max_rss_megabytes(),
            "threads": threading.active_count(),
            "cpus": os.cpu_count() or 1,
            "python_version": platform.python_version(),
            "platform": platform.platform(),
        }

    def api_stats(self) -> Dict[str, object]:
        uptime_minutes = self.uptime() / 60
        with self._lock:
            total = self._total_requests
            latency = self._total_latency
            errors = self._server_errors
            active = self._active_connections

        return {
            "total_requests": total,
            "requests_per_min": round(total / uptime_minutes, 2) if uptime_minutes > 0 else float(total),
            "average_latency_ms": round(latency / total * 1000, 3) if total else 0.0,
            "error_rate": round(errors / total, 4) if total else 0.0,
            "active_connections": max(active, 0),
        }


__all__ = ["StatsService"]

# helpmatch/infra/metrics.py
"""
In-process metrics for the notification pipeline and scheduler.

Counters and duration samples are kept per ``name{label=value,...}`` key
and exposed as JSON on the admin ``/metrics`` endpoint. Values reset on
restart; there is no external exporter.
"""
from __future__ import annotations

import time
from threading import Lock

from helpmatch.infra.logging_config import get_logger

logger = get_logger(__name__)

# Oldest samples are dropped past this many per histogram
MAX_SAMPLES = 1000


def _metric_key(name: str, labels: dict | None) -> str:
    if not labels:
        return name
    rendered = ",".join(f"{k}={labels[k]}" for k in sorted(labels))
    return f"{name}{{{rendered}}}"


def _summarize(samples: list[float]) -> dict:
    if not samples:
        return {"count": 0, "min": 0, "max": 0, "avg": 0, "p95": 0}

    ordered = sorted(samples)
    n = len(ordered)
    return {
        "count": n,
        "min": ordered[0],
        "max": ordered[-1],
        "avg": sum(ordered) / n,
        "p95": ordered[min(int(n * 0.95), n - 1)],
    }


class MetricsCollector:
    """Thread-safe counters and histograms keyed by name and labels."""

    def __init__(self):
        self._counters: dict[str, int] = {}
        self._samples: dict[str, list[float]] = {}
        self._lock = Lock()

    def inc_counter(self, name: str, amount: int = 1, labels: dict | None = None) -> None:
        key = _metric_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def observe_histogram(self, name: str, value: float, labels: dict | None = None) -> None:
        key = _metric_key(name, labels)
        with self._lock:
            samples = self._samples.setdefault(key, [])
            samples.append(value)
            if len(samples) > MAX_SAMPLES:
                del samples[0]

    def get_counter(self, name: str, **labels) -> int:
        """Current value of one counter (0 if never incremented)"""
        with self._lock:
            return self._counters.get(_metric_key(name, labels), 0)

    def get_metrics(self) -> dict:
        with self._lock:
            counters = dict(self._counters)
            samples = {k: list(v) for k, v in self._samples.items()}

        return {
            "counters": counters,
            "histograms": {k: _summarize(v) for k, v in samples.items()},
        }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._samples.clear()
        logger.info("Metrics reset")


_metrics = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    return _metrics


def inc_counter(name: str, amount: int = 1, **labels) -> None:
    _metrics.inc_counter(name, amount, labels)


def observe_histogram(name: str, value: float, **labels) -> None:
    _metrics.observe_histogram(name, value, labels)


class Timer:
    """Record the wall time of a ``with`` block as a histogram sample."""

    def __init__(self, metric_name: str, **labels):
        self.metric_name = metric_name
        self.labels = labels
        self._started = 0.0

    def __enter__(self) -> "Timer":
        self._started = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        observe_histogram(self.metric_name, time.monotonic() - self._started, **self.labels)


class AppMetrics:
    """Named counters for notification outcomes"""

    @staticmethod
    def notification_sent() -> None:
        inc_counter("notifications_sent")

    @staticmethod
    def notification_failed(reason: str) -> None:
        inc_counter("notifications_failed", reason=reason)

    @staticmethod
    def request_processed() -> None:
        inc_counter("notification_requests_processed")

    @staticmethod
    def request_skipped(reason: str) -> None:
        inc_counter("notification_requests_skipped", reason=reason)

    @staticmethod
    def request_failed() -> None:
        inc_counter("notification_requests_failed")

    @staticmethod
    def database_error(operation: str) -> None:
        inc_counter("database_errors_total", operation=operation)

    @staticmethod
    def track_tick() -> Timer:
        return Timer("notification_tick_seconds")

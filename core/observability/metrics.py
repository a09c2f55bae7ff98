"""
Metrics Collection for the Reconciliation Engine

In-process counters, reset only when the process restarts:
- engine operations (started, completed, failed) overall and by name
- spreadsheet store requests, retries and failures by kind
- sales import row outcomes (imported, skipped, errors, unmapped)
- timing windows (average, p95) per stage

Usage:
    from core.observability.metrics import get_metrics

    get_metrics().record_import_result(imported=3, skipped=1, errors=0, unmapped=1)
    get_metrics().get_summary()   # served by GET /health
"""

import statistics
from collections import Counter, defaultdict, deque
from threading import Lock
from typing import Any, Deque, Dict, Optional


WINDOW_SIZE = 1000
RECENT_FAILURES = 20

_OPERATION_STATES = ("started", "completed", "failed")
_IMPORT_OUTCOMES = ("imported", "skipped", "errors", "unmapped")


def _average(samples) -> float:
    return statistics.mean(samples) if samples else 0.0


def _p95(samples) -> float:
    if not samples:
        return 0.0
    ordered = sorted(samples)
    return ordered[min(int(len(ordered) * 0.95), len(ordered) - 1)]


class MetricsCollector:
    """
    Thread-safe metrics collector shared by the API process or one CLI run.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_operation_started("summarize_reconciliation")
        metrics.record_operation_completed("summarize_reconciliation", duration_ms=120)
    """

    _instance: Optional["MetricsCollector"] = None
    _instance_lock = Lock()

    def __init__(self):
        self._lock = Lock()
        self._operations: Counter = Counter()
        self._by_operation: Dict[str, Counter] = defaultdict(Counter)
        self._recent_failures: Deque[Dict[str, str]] = deque(maxlen=RECENT_FAILURES)
        self._store: Counter = Counter()
        self._store_failures_by_kind: Counter = Counter()
        self._imports: Counter = Counter()
        self._overall_timings: Deque[float] = deque(maxlen=WINDOW_SIZE)
        self._stage_timings: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=WINDOW_SIZE))

    @classmethod
    def instance(cls) -> "MetricsCollector":
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    # =========================================================================
    # Operations
    # =========================================================================

    def _count_operation(self, operation: str, state: str):
        self._operations[state] += 1
        self._by_operation[operation][state] += 1

    def record_operation_started(self, operation: str):
        with self._lock:
            self._count_operation(operation, "started")

    def record_operation_completed(self, operation: str, duration_ms: float = None):
        with self._lock:
            self._count_operation(operation, "completed")
            if duration_ms is not None:
                self._add_timing(f"operation.{operation}", duration_ms)

    def record_operation_failed(self, operation: str, error: str = None):
        with self._lock:
            self._count_operation(operation, "failed")
            self._recent_failures.append({"operation": operation, "error": error or ""})

    # =========================================================================
    # Store
    # =========================================================================

    def record_store_request(self):
        with self._lock:
            self._store["requests"] += 1

    def record_store_retry(self):
        with self._lock:
            self._store["retries"] += 1

    def record_store_failure(self, kind: str):
        """Count a store call that gave up; ``kind`` is TRANSIENT or CREDENTIALS."""
        with self._lock:
            self._store["failures"] += 1
            self._store_failures_by_kind[kind] += 1

    # =========================================================================
    # Sales imports
    # =========================================================================

    def record_import_result(self, imported: int, skipped: int, errors: int, unmapped: int):
        with self._lock:
            self._imports["runs"] += 1
            self._imports.update(imported=imported, skipped=skipped, errors=errors, unmapped=unmapped)

    # =========================================================================
    # Timings
    # =========================================================================

    def _add_timing(self, stage: str, duration_ms: float):
        self._overall_timings.append(duration_ms)
        self._stage_timings[stage].append(duration_ms)

    def record_processing_time(self, stage: str, duration_ms: float):
        with self._lock:
            self._add_timing(stage, duration_ms)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        """Average, p95 and sample count for one stage (all samples when ``stage`` is None)."""
        with self._lock:
            samples = list(self._stage_timings.get(stage, ())) if stage else list(self._overall_timings)
        return {"average_ms": _average(samples), "p95_ms": _p95(samples), "sample_count": len(samples)}

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            stages = {stage: list(samples) for stage, samples in self._stage_timings.items()}
            overall = list(self._overall_timings)
            return {
                "operations": {
                    **{state: self._operations[state] for state in _OPERATION_STATES},
                    "by_name": {
                        name: {state: counts[state] for state in _OPERATION_STATES}
                        for name, counts in self._by_operation.items()
                    },
                    "recent_failures": list(self._recent_failures),
                },
                "store": {
                    "requests": self._store["requests"],
                    "retries": self._store["retries"],
                    "failures": self._store["failures"],
                    "failures_by_kind": dict(self._store_failures_by_kind),
                },
                "imports": {
                    "runs": self._imports["runs"],
                    **{outcome: self._imports[outcome] for outcome in _IMPORT_OUTCOMES},
                },
                "timings": {
                    "overall": {"average_ms": _average(overall), "p95_ms": _p95(overall)},
                    "by_stage": {
                        stage: {"average_ms": _average(samples), "p95_ms": _p95(samples)}
                        for stage, samples in stages.items()
                    },
                },
            }


def get_metrics() -> MetricsCollector:
    """Process-wide collector."""
    return MetricsCollector.instance()


"""
Operation Tracing

Wraps one engine operation so that its logs carry a correlation context,
its duration is timed, and its outcome lands in the metrics collector.

Usage:
    from core.observability.tracing import track_operation

    async def mark_partner_paid(self, sales_invoice_no, ...):
        with track_operation("mark_partner_paid", sales_invoice_no=sales_invoice_no):
            ...
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator

from core.observability.logging import (
    CorrelationContext,
    log_operation_complete,
    log_operation_error,
    log_operation_start,
    with_correlation,
)
from core.observability.metrics import get_metrics


@dataclass
class OperationTrace:
    """Timing and context of one traced operation."""
    operation: str
    context: CorrelationContext
    started_at: float = field(default_factory=time.monotonic)
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000


@contextmanager
def track_operation(operation: str, **correlation) -> Iterator[OperationTrace]:
    """Trace one engine operation.

    Extra keys set on `trace.details` inside the block are logged with the
    completion line. Exceptions are logged, counted and re-raised unchanged.
    """
    metrics = get_metrics()
    with with_correlation(operation=operation, **correlation) as ctx:
        trace = OperationTrace(operation=operation, context=ctx)
        metrics.record_operation_started(operation)
        log_operation_start(operation)
        try:
            yield trace
        except Exception as e:
            metrics.record_operation_failed(operation, str(e))
            log_operation_error(operation, str(e), error_type=type(e).__name__)
            raise
        duration_ms = trace.elapsed_ms
        metrics.record_operation_completed(operation, duration_ms)
        log_operation_complete(operation, duration_ms, **trace.details)

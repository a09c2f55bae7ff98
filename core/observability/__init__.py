"""
Observability for engine operations: correlated logging, in-process metrics
and the track_operation() wrapper that ties one call's log lines to its
counters.
"""

from core.observability.logging import (
    CorrelationContext,
    configure_logging,
    get_logger,
    with_correlation,
)
from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
)
from core.observability.tracing import OperationTrace, track_operation

__all__ = [
    "CorrelationContext",
    "configure_logging",
    "get_logger",
    "with_correlation",
    "MetricsCollector",
    "get_metrics",
    "OperationTrace",
    "track_operation",
]

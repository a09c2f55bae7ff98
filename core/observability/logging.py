"""
Structured Logging with Correlation IDs

Every record emitted through get_logger() carries the correlation fields
active when it was logged:
- request_id: one inbound HTTP request or CLI file
- operation: the engine operation (e.g. "mark_partner_paid")
- sales_invoice_no / supplier_invoice_no: the invoice being read or written
- import_batch_id: one sales import run
- sheet_name: the sheet being read or written

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(sales_invoice_no="#1005", operation="summarize_reconciliation"):
        logger.info("Reading allocations", extra_fields={"rows": 12})
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, Dict, Optional, Union


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    request_id: Optional[str] = None
    operation: Optional[str] = None
    sales_invoice_no: Optional[str] = None
    supplier_invoice_no: Optional[str] = None
    import_batch_id: Optional[str] = None
    sheet_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Populated fields only."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        known = {f.name for f in fields(self)}
        unknown = set(kwargs) - known
        if unknown:
            raise TypeError(f"Unknown correlation fields: {sorted(unknown)}")
        data = self.to_dict()
        data.update({k: str(v) for k, v in kwargs.items() if v is not None})
        return CorrelationContext(**data)


_correlation: ContextVar[CorrelationContext] = ContextVar("correlation", default=CorrelationContext())


def get_correlation_context() -> CorrelationContext:
    return _correlation.get()


@contextmanager
def with_correlation(**kwargs):
    """
    Layer correlation fields over the current context for the enclosed block.

    Nested blocks inherit outer fields; the outer context is restored on exit
    (also across awaits, since the context lives in a ContextVar).
    """
    ctx = get_correlation_context().merge(**kwargs)
    token = _correlation.set(ctx)
    try:
        yield ctx
    finally:
        _correlation.reset(token)


class CorrelationFilter(logging.Filter):
    """Snapshots the correlation context onto the record at emit time."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation"):
            record.correlation = get_correlation_context().to_dict()
        return True


def _record_correlation(record: logging.LogRecord) -> Dict[str, Any]:
    correlation = getattr(record, "correlation", None)
    if correlation is None:
        correlation = get_correlation_context().to_dict()
    return correlation


# =============================================================================
# Formatters
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line:

    {"timestamp": "2024-03-01T12:00:00.000000Z", "level": "INFO",
     "logger": "payments.updater", "message": "Partner payment recorded",
     "operation": "mark_partner_paid", "sales_invoice_no": "#1005"}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.utcfromtimestamp(record.created).isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_record_correlation(record))
        payload.update(getattr(record, "extra_fields", None) or {})
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    2024-03-01 12:00:00 [INFO ] payments.updater [mark_partner_paid/inv:#1005]: Partner payment recorded
    """

    _TAGS = (
        ("operation", "{}"),
        ("request_id", "{:.12}"),
        ("sales_invoice_no", "inv:{}"),
        ("supplier_invoice_no", "sup:{}"),
        ("import_batch_id", "import:{}"),
    )

    def format(self, record: logging.LogRecord) -> str:
        correlation = _record_correlation(record)
        tags = [fmt.format(correlation[key]) for key, fmt in self._TAGS if correlation.get(key)]

        stamp = datetime.utcfromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{stamp} [{record.levelname:5}] {record.name} [{'/'.join(tags) or '-'}]: {record.getMessage()}"

        extra = getattr(record, "extra_fields", None)
        if extra:
            line += " " + " ".join(f"{k}={v}" for k, v in extra.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Logger
# =============================================================================

class CorrelatedLogger(logging.LoggerAdapter):
    """
    Adapter that accepts an ``extra_fields`` dict on every call.

        logger.warning("Reconciliation discrepancy", extra_fields={"path": "ALLOCATION"})
    """

    def __init__(self, logger: logging.Logger):
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        extra = dict(kwargs.pop("extra", None) or {})
        extra["extra_fields"] = kwargs.pop("extra_fields", None) or {}
        kwargs["extra"] = extra
        return msg, kwargs


_loggers: Dict[str, CorrelatedLogger] = {}
_configured = False
_handler: Optional[logging.Handler] = None

_APP_LOGGERS = ("reconciliation", "payments", "kitchen_sales", "connectors", "api", "operations")


def configure_logging(
    level: Union[int, str] = logging.INFO,
    json_format: bool = False,
    force: bool = False,
):
    """
    Install the stdout handler on the root logger.

    Args:
        level: Level as int or name ("DEBUG", "info", ...); unknown names fall back to INFO
        json_format: StructuredFormatter when True, HumanReadableFormatter otherwise
        force: Reconfigure even if already configured (settings are read after import)
    """
    global _configured, _handler

    if _configured and not force:
        return

    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        level = resolved if isinstance(resolved, int) else logging.INFO

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationFilter())
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root.setLevel(level)
    root.addHandler(handler)
    _handler = handler

    for name in _APP_LOGGERS:
        logging.getLogger(name).setLevel(level)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> CorrelatedLogger:
    """Correlated logger for ``name`` (usually ``__name__``), configuring defaults on first use."""
    if not _configured:
        configure_logging()
    if name not in _loggers:
        _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return _loggers[name]


# =============================================================================
# Operation lifecycle lines
# =============================================================================

def log_operation_start(operation: str, **kwargs):
    get_logger(f"operations.{operation}").info(f"{operation} started", extra_fields=kwargs)


def log_operation_complete(operation: str, duration_ms: float = None, **kwargs):
    extra: Dict[str, Any] = {}
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 1)
    extra.update(kwargs)
    get_logger(f"operations.{operation}").info(f"{operation} completed", extra_fields=extra)


def log_operation_error(operation: str, error: str, **kwargs):
    get_logger(f"operations.{operation}").error(f"{operation} failed: {error}", extra_fields=kwargs)

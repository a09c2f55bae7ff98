"""Input validation for payment and fulfillment mutations.

Every check here runs before any cell is written. Failures raise
ValidationError carrying the offending field and, where a closed set applies,
the allowed values.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from core.errors import ValidationError
from models.canonical import parse_decimal
from reconciliation.normalize import normalize_invoice_no


ALLOWED_ORDER_STAGES = (
    "New",
    "Ordered with Supplier",
    "In Transit",
    "Delivered",
    "Completed",
    "Cancelled",
)

ALLOWED_PAYMENT_METHODS = (
    "SHOPIFY",
    "BANK_TRANSFER",
    "CASH",
    "OTHER",
)

PAID_FLAG = "YES"
UNPAID_FLAG = "NO"

ISO_DATE_FORMAT = "%Y-%m-%d"


def validate_invoice_no(value: Any, field: str) -> str:
    """Require a non-blank invoice number. Returns it trimmed."""
    if not normalize_invoice_no(value):
        raise ValidationError(f"{field} is required", field=field)
    return str(value).strip()


def validate_order_stage(stage: Any) -> str:
    if stage is None or not str(stage).strip():
        raise ValidationError(
            "stage is required", field="stage", allowed_values=ALLOWED_ORDER_STAGES
        )
    stage = str(stage).strip()
    if stage not in ALLOWED_ORDER_STAGES:
        raise ValidationError(
            f"Invalid stage: {stage}. Allowed stages: {', '.join(ALLOWED_ORDER_STAGES)}",
            field="stage",
            allowed_values=ALLOWED_ORDER_STAGES,
        )
    return stage


def validate_payment_method(method: Optional[str]) -> Optional[str]:
    """None/blank passes through as None; anything else must be in the allowed set."""
    if method is None or not str(method).strip():
        return None
    method = str(method).strip()
    if method not in ALLOWED_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment_method: {method}. "
            f"Allowed methods: {', '.join(ALLOWED_PAYMENT_METHODS)}",
            field="payment_method",
            allowed_values=ALLOWED_PAYMENT_METHODS,
        )
    return method


def validate_paid_date(value: Optional[str], field: str = "paid_date") -> Optional[str]:
    """Require a real calendar date in YYYY-MM-DD form (2024-02-30 is rejected)."""
    if value is None or not str(value).strip():
        return None
    value = str(value).strip()
    try:
        parsed = datetime.strptime(value, ISO_DATE_FORMAT)
    except ValueError:
        raise ValidationError(f"{field} must be in YYYY-MM-DD format", field=field)
    # strptime accepts "2024-1-5"; the stored form must be zero-padded
    if parsed.strftime(ISO_DATE_FORMAT) != value:
        raise ValidationError(f"{field} must be in YYYY-MM-DD format", field=field)
    return value


def validate_amount(value: Any, field: str = "amount", required: bool = True) -> Optional[Decimal]:
    """Parse a strictly positive amount."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} must be a positive number", field=field)
        return None
    try:
        amount = parse_decimal(value)
    except ValueError:
        raise ValidationError(f"{field} must be a positive number", field=field)
    if amount is None or amount <= 0:
        raise ValidationError(f"{field} must be a positive number", field=field)
    return amount


def validate_paid_flag(value: Any) -> Optional[bool]:
    """Accept a bool or a YES/NO-style string. None means "leave unchanged"."""
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("yes", "y", "true", "1"):
        return True
    if text in ("no", "n", "false", "0"):
        return False
    raise ValidationError(f"paid must be a boolean, got {value!r}", field="paid")


def format_paid_flag(paid: bool) -> str:
    return PAID_FLAG if paid else UNPAID_FLAG


def format_amount(amount: Decimal) -> str:
    return format(amount, "f")

"""Canonical typed records for the spreadsheet tables.

Raw sheet cells are untyped strings. Every row is converted into one of these
models at the ingestion boundary (see reconciliation/repository.py); all
downstream logic works on the typed record, never on raw column maps.
"""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Value Parsers (handle the formats people type into spreadsheets)
# =============================================================================

TRUE_VALUES = {"yes", "y", "true", "1", "paid", "x"}

CURRENCY_SYMBOLS = ("$", "£", "€")


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse a money/number cell.

    Accepts currency symbols, thousands separators and accounting-style
    negatives "(12.50)". Returns None for empty cells. Raises ValueError for
    anything else that is not a finite number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"Not a finite number: {value}")
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Not a finite number: {value}")
        return Decimal(str(value))
    s = str(value).strip()
    if s == "":
        return None
    for symbol in CURRENCY_SYMBOLS:
        s = s.replace(symbol, "")
    s = s.replace(",", "").strip()
    if s.startswith("(") and s.endswith(")"):
        s = "-" + s[1:-1]
    try:
        result = Decimal(s)
    except InvalidOperation:
        raise ValueError(f"Not a number: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def parse_bool(value: Any) -> bool:
    """YES/Y/TRUE/1 (any case) are true; everything else, including blank, is false."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUE_VALUES


def parse_active(value: Any) -> bool:
    """Like parse_bool, but a blank cell means active."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return True
    return parse_bool(value)


def parse_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _decimal_or_zero(value: Any) -> Decimal:
    try:
        parsed = parse_decimal(value)
    except ValueError:
        return Decimal("0")
    return parsed if parsed is not None else Decimal("0")


def _int_or_zero(value: Any) -> int:
    amount = _decimal_or_zero(value)
    return int(amount)


Money = Annotated[Decimal, BeforeValidator(_decimal_or_zero)]
Flag = Annotated[bool, BeforeValidator(parse_bool)]
ActiveFlag = Annotated[bool, BeforeValidator(parse_active)]
Text = Annotated[str, BeforeValidator(parse_text)]
Count = Annotated[int, BeforeValidator(_int_or_zero)]


# =============================================================================
# Base Model
# =============================================================================

class SheetRecord(BaseModel):
    """Base for records read from a sheet.

    row_index is the 0-based data-row position (header excluded) the record
    was read from; None for records not yet persisted.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    row_index: Optional[int] = Field(default=None, description="0-based data row index")


# =============================================================================
# Table Records
# =============================================================================

class Order(SheetRecord):
    """A franchise order, keyed by its sales invoice number."""
    sales_invoice_no: Text = Field(default="", description="Primary matching key")
    order_id: Text = ""
    brand: Text = ""
    franchisee: Text = ""
    order_date: Text = ""
    stage: Text = ""
    order_total: Money = Decimal("0")
    partner_paid: Flag = False
    partner_paid_date: Text = ""
    partner_payment_method: Text = ""
    partner_payment_ref: Text = ""


class SupplierInvoice(SheetRecord):
    """An inbound supplier invoice.

    invoice_no is not guaranteed unique across suppliers.
    """
    invoice_no: Text = ""
    supplier: Text = ""
    amount: Money = Decimal("0")
    sales_invoice_no: Text = Field(default="", description="Optional direct link to an order")
    paid: Flag = False
    paid_date: Text = ""
    payment_reference: Text = ""
    file_url: Text = ""


class Allocation(SheetRecord):
    """Portion of a supplier invoice attributed to one sales invoice."""
    sales_invoice_no: Text = ""
    supplier_invoice_no: Text = ""
    allocated_amount: Money = Decimal("0")


class KitchenSaleRecord(SheetRecord):
    """One day of sales for one kitchen location."""
    date: Text = ""
    location: Text = ""
    revenue: Money = Decimal("0")
    gross_sales: Money = Decimal("0")
    count: Count = 0
    franchise_code: Text = ""
    imported_at: Text = ""


class KitchenMapping(SheetRecord):
    """Lookup from a raw location string to a franchise code."""
    location: Text = ""
    franchise_code: Text = ""
    franchise_name: Text = ""
    active: ActiveFlag = True
    notes: Text = ""


# =============================================================================
# Import Input
# =============================================================================

class RawSaleRow(BaseModel):
    """One unvalidated sales row as it arrives from a CSV export or JSON body.

    Values are kept raw; validation happens in the importer so bad rows are
    counted as skipped instead of failing the request.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date: Any = Field(default=None, alias="Date")
    location: Any = Field(default=None, alias="Location")
    revenue: Any = Field(default=None, alias="Revenue")
    gross_sales: Any = Field(default=None, alias="GrossSales")
    count: Any = Field(default=None, alias="Count")

    @classmethod
    def from_mapping(cls, data: dict) -> "RawSaleRow":
        """Build from a dict with any header casing ("Gross Sales", "grosssales", "revenue"...)."""
        lookup = {
            "date": "date",
            "location": "location",
            "revenue": "revenue",
            "grosssales": "gross_sales",
            "gross_sales": "gross_sales",
            "count": "count",
        }
        values = {}
        for key, value in data.items():
            normalized = str(key).strip().lower().replace(" ", "")
            target = lookup.get(normalized)
            if target and target not in values:
                values[target] = value
        return cls(**values)


def utc_timestamp() -> str:
    return datetime.utcnow().replace(microsecond=0).isoformat() + "Z"

"""Named-column table schemas.

Sheets are addressed by header name, not by fixed column letter. Each logical
table declares the fields it needs and the header spellings accepted for each.
The header row is resolved once into field -> column index positions; missing
required columns fail fast with SchemaConfigurationError.

Header matching normalizes both sides (lowercase, alphanumerics only), so
"Invoice No", "invoice_no" and "InvoiceNo" are the same header. The match is
exact after normalization: "Sales Invoice No" never resolves "Invoice No".
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from connectors.sheet_store import TextValue
from core.errors import SchemaConfigurationError


_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_header(name: Any) -> str:
    """Lowercase and strip everything but letters and digits."""
    if name is None:
        return ""
    return _NON_ALNUM.sub("", str(name).lower())


@dataclass(frozen=True)
class ColumnSpec:
    """One logical field of a table.

    Attributes:
        field: Attribute name on the typed record
        headers: Accepted header spellings; the first is used when creating sheets
        required: Whether the table is unusable without this column
        text: Written as literal text, so the spreadsheet never turns an ISO
            date into a locale-formatted date cell
    """
    field: str
    headers: Tuple[str, ...]
    required: bool = True
    text: bool = False

    @property
    def display_name(self) -> str:
        return self.headers[0]


@dataclass(frozen=True)
class TableSchema:
    """Declared columns of one logical table."""
    key: str
    columns: Tuple[ColumnSpec, ...]

    def column(self, field: str) -> ColumnSpec:
        for spec in self.columns:
            if spec.field == field:
                return spec
        raise KeyError(f"{self.key} has no field '{field}'")

    def cell_value(self, field: str, value: Any) -> Any:
        """The value as it should be handed to the store for this field."""
        for spec in self.columns:
            if spec.field == field:
                if spec.text and value not in (None, ""):
                    return TextValue(value)
                break
        return value

    def default_headers(self) -> List[str]:
        """Header row for a freshly created sheet, in declaration order."""
        return [spec.display_name for spec in self.columns]

    def resolve(self, sheet_name: str, header_row: Sequence[Any]) -> "ResolvedSchema":
        """Resolve field positions from a sheet's header row.

        Raises:
            SchemaConfigurationError: A required column is absent
        """
        positions_by_header: Dict[str, int] = {}
        for index, name in enumerate(header_row or []):
            normalized = normalize_header(name)
            if normalized and normalized not in positions_by_header:
                positions_by_header[normalized] = index

        positions: Dict[str, int] = {}
        missing: List[str] = []
        for spec in self.columns:
            found = None
            for alias in spec.headers:
                found = positions_by_header.get(normalize_header(alias))
                if found is not None:
                    break
            if found is not None:
                positions[spec.field] = found
            elif spec.required:
                missing.append(spec.display_name)

        if missing:
            raise SchemaConfigurationError(sheet_name, missing)

        width = max(len(header_row or []), max(positions.values(), default=-1) + 1)
        return ResolvedSchema(self, sheet_name, positions, width)


class ResolvedSchema:
    """A TableSchema bound to the column positions of one actual sheet."""

    def __init__(self, table: TableSchema, sheet_name: str, positions: Dict[str, int], width: int):
        self.table = table
        self.sheet_name = sheet_name
        self.positions = positions
        self.width = width

    def has(self, field: str) -> bool:
        return field in self.positions

    def index(self, field: str) -> int:
        """Column index of a field.

        Raises:
            SchemaConfigurationError: The column is absent from the sheet
        """
        if field not in self.positions:
            raise SchemaConfigurationError(
                self.sheet_name, [self.table.column(field).display_name]
            )
        return self.positions[field]

    def record(self, row: Sequence[Any]) -> Dict[str, Any]:
        """Map a raw row to {field: cell}. Absent columns and short rows give ""."""
        values: Dict[str, Any] = {}
        for field, position in self.positions.items():
            values[field] = row[position] if position < len(row) else ""
        return values

    def build_row(self, values: Dict[str, Any]) -> List[Any]:
        """Build a full row for appending. Unknown fields are ignored."""
        row: List[Any] = [""] * self.width
        for field, value in values.items():
            position = self.positions.get(field)
            if position is not None:
                row[position] = "" if value is None else value
        return row

    def missing_optional(self, fields: Sequence[str]) -> List[str]:
        return [f for f in fields if f not in self.positions]


# =============================================================================
# Table Definitions
# =============================================================================

ORDERS = TableSchema("orders", (
    ColumnSpec("order_id", ("Order ID",), required=False),
    ColumnSpec("brand", ("Brand",), required=False),
    ColumnSpec("franchisee", ("Franchisee", "Franchisee Name"), required=False),
    ColumnSpec("order_date", ("Order Date",), required=False),
    ColumnSpec("order_total", ("Order Total", "Total Order Value"), required=False),
    ColumnSpec("sales_invoice_no", ("Invoice No", "Invoice Number", "Sales Invoice No")),
    ColumnSpec("stage", ("Order Stage", "Stage")),
    ColumnSpec("partner_paid", ("Partner Paid", "Partner Paid?")),
    ColumnSpec("partner_paid_date", ("Partner Paid Date",), text=True),
    ColumnSpec("partner_payment_method", ("Partner Payment Method",)),
    ColumnSpec("partner_payment_ref", ("Partner Payment Ref", "Partner Payment Reference"), required=False),
))

SUPPLIER_INVOICES = TableSchema("supplier_invoices", (
    ColumnSpec("invoice_no", ("Invoice No", "Supplier Invoice No", "Invoice Number")),
    ColumnSpec("supplier", ("Supplier", "Supplier Name")),
    ColumnSpec("amount", ("Amount", "Invoice Amount", "Total")),
    ColumnSpec("sales_invoice_no", ("Sales Invoice No", "Sales Invoice"), required=False),
    ColumnSpec("file_url", ("File URL", "File"), required=False),
    ColumnSpec("paid", ("Paid", "Paid?")),
    ColumnSpec("paid_date", ("Paid Date",), text=True),
    ColumnSpec("payment_reference", ("Payment Reference", "Payment Ref"), required=False),
))

ALLOCATIONS = TableSchema("allocations", (
    ColumnSpec("sales_invoice_no", ("Sales Invoice No",)),
    ColumnSpec("supplier_invoice_no", ("Supplier Invoice No",)),
    ColumnSpec("allocated_amount", ("Allocated Amount", "Amount")),
))

KITCHEN_SALES = TableSchema("kitchen_sales", (
    ColumnSpec("date", ("Date",), text=True),
    ColumnSpec("location", ("Location",)),
    ColumnSpec("revenue", ("Revenue",)),
    ColumnSpec("gross_sales", ("Gross Sales", "GrossSales")),
    ColumnSpec("count", ("Count", "Order Count", "Orders")),
    ColumnSpec("franchise_code", ("Franchise Code", "Franchisee Code")),
    ColumnSpec("imported_at", ("Imported At",), required=False, text=True),
))

KITCHEN_MAPPING = TableSchema("kitchen_mapping", (
    ColumnSpec("location", ("Location",)),
    ColumnSpec("franchise_code", ("Franchise Code", "Franchisee Code")),
    ColumnSpec("franchise_name", ("Franchise Name", "Franchisee Name"), required=False),
    ColumnSpec("active", ("Active",), required=False),
    ColumnSpec("notes", ("Notes",), required=False),
))

ALL_TABLES: Tuple[TableSchema, ...] = (
    ORDERS,
    SUPPLIER_INVOICES,
    ALLOCATIONS,
    KITCHEN_SALES,
    KITCHEN_MAPPING,
)


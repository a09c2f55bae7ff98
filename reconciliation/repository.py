"""Typed access to the spreadsheet tables.

The ingestion boundary: raw rows come in from the store, typed records go
out. Column positions are resolved by header name once per repository and
cached; sheet data itself is re-read on every call.
"""

from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from connectors.schema import (
    ALLOCATIONS,
    KITCHEN_MAPPING,
    KITCHEN_SALES,
    ORDERS,
    SUPPLIER_INVOICES,
    ALL_TABLES,
    ResolvedSchema,
    TableSchema,
)
from connectors.sheet_store import CellUpdate, SheetStore
from core.config import SheetNames
from core.errors import SchemaConfigurationError
from core.observability.logging import get_logger
from models.canonical import (
    Allocation,
    KitchenMapping,
    KitchenSaleRecord,
    Order,
    SheetRecord,
    SupplierInvoice,
)
from reconciliation.normalize import normalize_invoice_no

logger = get_logger(__name__)

RecordT = TypeVar("RecordT", bound=SheetRecord)


class SheetRepository:
    """Reads typed records and writes named fields through a SheetStore.

    Usage:
        repo = SheetRepository(store, settings.sheets)
        await repo.verify_schema()
        orders = await repo.list_orders()
    """

    def __init__(self, store: SheetStore, sheets: Optional[SheetNames] = None):
        self.store = store
        self.sheets = sheets or SheetNames()
        self._schemas: Dict[str, ResolvedSchema] = {}

    def sheet_name(self, table: TableSchema) -> str:
        return getattr(self.sheets, table.key)

    # =========================================================================
    # Schema resolution
    # =========================================================================

    async def schema(self, table: TableSchema, header_row: Optional[Sequence[Any]] = None) -> ResolvedSchema:
        """Resolved column positions for a table, cached after first resolution."""
        cached = self._schemas.get(table.key)
        if cached is not None:
            return cached
        sheet_name = self.sheet_name(table)
        if header_row is None:
            rows = await self.store.get_rows(sheet_name)
            header_row = rows[0] if rows else []
        resolved = table.resolve(sheet_name, header_row)
        self._schemas[table.key] = resolved
        return resolved

    async def verify_schema(self) -> None:
        """Resolve every table up front. Raises the first SchemaConfigurationError found."""
        for table in ALL_TABLES:
            await self.schema(table)
        logger.info("Sheet schemas verified", extra_fields={"tables": len(ALL_TABLES)})

    # =========================================================================
    # Reads
    # =========================================================================

    async def _read(self, table: TableSchema, model: Type[RecordT]) -> List[RecordT]:
        rows = await self.store.get_rows(self.sheet_name(table))
        if not rows:
            # Tab exists but is blank: still validate the (empty) header
            await self.schema(table, [])
            return []
        resolved = await self.schema(table, rows[0])
        records = []
        for index, row in enumerate(rows[1:]):
            if not any(str(cell).strip() for cell in row if cell is not None):
                continue
            records.append(model(row_index=index, **resolved.record(row)))
        return records

    async def list_orders(self) -> List[Order]:
        return await self._read(ORDERS, Order)

    async def list_supplier_invoices(self) -> List[SupplierInvoice]:
        return await self._read(SUPPLIER_INVOICES, SupplierInvoice)

    async def list_allocations(self) -> List[Allocation]:
        return await self._read(ALLOCATIONS, Allocation)

    async def list_kitchen_sales(self) -> List[KitchenSaleRecord]:
        return await self._read(KITCHEN_SALES, KitchenSaleRecord)

    async def list_kitchen_mappings(self) -> List[KitchenMapping]:
        return await self._read(KITCHEN_MAPPING, KitchenMapping)

    # =========================================================================
    # Lookups
    # =========================================================================

    async def find_order(self, sales_invoice_no: str) -> Optional[Order]:
        """First order whose normalized invoice number matches."""
        key = normalize_invoice_no(sales_invoice_no)
        if not key:
            return None
        for order in await self.list_orders():
            if normalize_invoice_no(order.sales_invoice_no) == key:
                return order
        return None

    async def find_supplier_invoices(self, invoice_no: str) -> List[SupplierInvoice]:
        """Every supplier invoice row with this normalized number (may span suppliers)."""
        key = normalize_invoice_no(invoice_no)
        if not key:
            return []
        return [
            inv for inv in await self.list_supplier_invoices()
            if normalize_invoice_no(inv.invoice_no) == key
        ]

    # =========================================================================
    # Writes
    # =========================================================================

    async def write_fields(self, table: TableSchema, row_index: int, values: Dict[str, Any]) -> None:
        """Write named fields of one row as a single batch.

        Every field is resolved to a column before anything is written.

        Raises:
            SchemaConfigurationError: A field's column is absent from the sheet
        """
        resolved = await self.schema(table)
        missing = resolved.missing_optional(list(values))
        if missing:
            raise SchemaConfigurationError(
                resolved.sheet_name, [table.column(f).display_name for f in missing]
            )
        updates = [
            CellUpdate(resolved.index(field), table.cell_value(field, value))
            for field, value in values.items()
        ]
        await self.store.write_cells(resolved.sheet_name, row_index, updates)

    async def append_record(self, table: TableSchema, values: Dict[str, Any]) -> None:
        resolved = await self.schema(table)
        cells = {field: table.cell_value(field, value) for field, value in values.items()}
        await self.store.append_row(resolved.sheet_name, resolved.build_row(cells))

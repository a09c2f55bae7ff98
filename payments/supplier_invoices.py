"""Supplier invoice entry.

Creates a batch of supplier invoices for one order, plus the allocation rows
that link them. The whole batch is validated before the first row is
appended.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from connectors.schema import ALLOCATIONS, SUPPLIER_INVOICES
from core.errors import SchemaConfigurationError, ValidationError
from core.observability.logging import get_logger
from core.observability.tracing import track_operation
from payments.validation import (
    format_amount,
    format_paid_flag,
    validate_amount,
    validate_invoice_no,
    validate_paid_date,
    validate_paid_flag,
)
from reconciliation.normalize import normalize_invoice_no, normalize_supplier
from reconciliation.repository import SheetRepository

logger = get_logger(__name__)


class SupplierInvoiceEntry(BaseModel):
    """One supplier invoice to create."""
    supplier_invoice_no: Optional[str] = None
    supplier: Optional[str] = None
    amount: Any = None
    allocated_amount: Any = None
    paid: Any = False
    paid_date: Optional[str] = None
    payment_reference: Optional[str] = None
    file_url: Optional[str] = None


class SupplierInvoiceCreation(BaseModel):
    """Outcome of create_supplier_invoices."""
    sales_invoice_no: Optional[str] = None
    created: List[str] = Field(default_factory=list)
    linked_existing: List[str] = Field(
        default_factory=list,
        description="Invoices already on the sheet that only received an allocation row",
    )
    allocations_created: int = 0


def _validate_entry(
    index: int, entry: SupplierInvoiceEntry, sales_invoice_no: Optional[str]
) -> Dict[str, Any]:
    prefix = f"invoices[{index}]"
    invoice_no = validate_invoice_no(entry.supplier_invoice_no, f"{prefix}.supplier_invoice_no")
    if not entry.supplier or not entry.supplier.strip():
        raise ValidationError(f"{prefix}.supplier is required", field=f"{prefix}.supplier")
    amount = validate_amount(entry.amount, f"{prefix}.amount")
    if sales_invoice_no:
        allocated = validate_amount(entry.allocated_amount, f"{prefix}.allocated_amount")
    else:
        allocated = amount
    paid = validate_paid_flag(entry.paid) or False
    paid_date = validate_paid_date(entry.paid_date, f"{prefix}.paid_date")

    return {
        "invoice_no": invoice_no,
        "supplier": entry.supplier.strip(),
        "amount": amount,
        "allocated_amount": allocated,
        "paid": paid,
        "paid_date": paid_date or "",
        "payment_reference": (entry.payment_reference or "").strip(),
        "file_url": (entry.file_url or "").strip(),
    }


async def create_supplier_invoices(
    repo: SheetRepository,
    sales_invoice_no: Optional[str],
    invoices: List[Union[SupplierInvoiceEntry, Dict[str, Any]]],
) -> SupplierInvoiceCreation:
    """Create supplier invoices and, when an order is given, their allocations.

    An invoice number already on the sheet for the same supplier is not
    duplicated; it only receives the allocation row (one supplier invoice
    split across several orders).

    Raises:
        ValidationError: Any entry is invalid (nothing is written)
        SchemaConfigurationError: A value was supplied for an absent optional column
    """
    sales_invoice_no = (sales_invoice_no or "").strip() or None
    if not invoices:
        raise ValidationError("invoices must not be empty", field="invoices")

    entries = [
        e if isinstance(e, SupplierInvoiceEntry) else SupplierInvoiceEntry(**e)
        for e in invoices
    ]
    validated = [_validate_entry(i, e, sales_invoice_no) for i, e in enumerate(entries)]

    seen = set()
    for item in validated:
        key = (normalize_invoice_no(item["invoice_no"]), normalize_supplier(item["supplier"]))
        if key in seen:
            raise ValidationError(
                f"Duplicate supplier invoice {item['invoice_no']} for {item['supplier']} in request",
                field="invoices",
            )
        seen.add(key)

    with track_operation("create_supplier_invoices", sales_invoice_no=sales_invoice_no or "") as trace:
        invoice_schema = await repo.schema(SUPPLIER_INVOICES)
        allocation_schema = await repo.schema(ALLOCATIONS) if sales_invoice_no else None

        # The direct-link column is filled when present; allocations carry the link otherwise
        wanted = []
        if any(item["payment_reference"] for item in validated):
            wanted.append("payment_reference")
        if any(item["file_url"] for item in validated):
            wanted.append("file_url")
        missing = invoice_schema.missing_optional(wanted)
        if missing:
            raise SchemaConfigurationError(
                invoice_schema.sheet_name,
                [SUPPLIER_INVOICES.column(f).display_name for f in missing],
            )

        existing = {
            (normalize_invoice_no(inv.invoice_no), normalize_supplier(inv.supplier))
            for inv in await repo.list_supplier_invoices()
        }

        result = SupplierInvoiceCreation(sales_invoice_no=sales_invoice_no)
        for item in validated:
            key = (normalize_invoice_no(item["invoice_no"]), normalize_supplier(item["supplier"]))
            if key in existing:
                result.linked_existing.append(item["invoice_no"])
            else:
                await repo.append_record(SUPPLIER_INVOICES, {
                    "invoice_no": item["invoice_no"],
                    "supplier": item["supplier"],
                    "amount": format_amount(item["amount"]),
                    "sales_invoice_no": sales_invoice_no or "",
                    "paid": format_paid_flag(item["paid"]),
                    "paid_date": item["paid_date"],
                    "payment_reference": item["payment_reference"],
                    "file_url": item["file_url"],
                })
                result.created.append(item["invoice_no"])

            if allocation_schema is not None:
                await repo.append_record(ALLOCATIONS, {
                    "sales_invoice_no": sales_invoice_no,
                    "supplier_invoice_no": item["invoice_no"],
                    "allocated_amount": format_amount(item["allocated_amount"]),
                })
                result.allocations_created += 1

        trace.details.update(
            created=len(result.created),
            linked_existing=len(result.linked_existing),
            allocations=result.allocations_created,
        )
        if result.linked_existing:
            logger.info(
                f"Linked existing supplier invoices: {', '.join(result.linked_existing)}"
            )
        return result

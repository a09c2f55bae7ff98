"""Allocation resolution.

Allocations link one sales invoice to the supplier invoices that fulfil it.
A sales invoice with no allocation rows resolves to an empty list, never an
error.
"""

from decimal import Decimal
from typing import Dict, List

from models.canonical import Allocation
from reconciliation.normalize import normalize_invoice_no
from reconciliation.repository import SheetRepository


def filter_allocations(sales_invoice_no: str, allocations: List[Allocation]) -> List[Allocation]:
    """Allocation rows belonging to one sales invoice, in sheet order."""
    key = normalize_invoice_no(sales_invoice_no)
    if not key:
        return []
    return [a for a in allocations if normalize_invoice_no(a.sales_invoice_no) == key]


async def resolve_allocations(repo: SheetRepository, sales_invoice_no: str) -> List[Allocation]:
    """Read the allocation table and keep the rows for `sales_invoice_no`."""
    return filter_allocations(sales_invoice_no, await repo.list_allocations())


def aggregate_allocations(allocations: List[Allocation]) -> Dict[str, Decimal]:
    """Sum allocated amounts per supplier invoice.

    Rows are grouped by normalized supplier invoice number; the result is
    keyed by the first raw spelling seen for each group.
    """
    labels: Dict[str, str] = {}
    totals: Dict[str, Decimal] = {}
    for allocation in allocations:
        key = normalize_invoice_no(allocation.supplier_invoice_no)
        if not key:
            continue
        label = labels.setdefault(key, allocation.supplier_invoice_no.strip())
        totals[label] = totals.get(label, Decimal("0")) + allocation.allocated_amount
    return totals


def totals_by_supplier_invoice(allocations: List[Allocation]) -> Dict[str, Decimal]:
    """Sum allocated amounts per normalized supplier invoice number."""
    totals: Dict[str, Decimal] = {}
    for allocation in allocations:
        key = normalize_invoice_no(allocation.supplier_invoice_no)
        if key:
            totals[key] = totals.get(key, Decimal("0")) + allocation.allocated_amount
    return totals


def total_allocated(allocations: List[Allocation]) -> Decimal:
    return sum((a.allocated_amount for a in allocations), Decimal("0"))

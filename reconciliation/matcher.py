"""Supplier invoice matching.

Two linkage paths, tried in order:

1. ALLOCATION: the sales invoice has allocation rows. Supplier invoices whose
   normalized number equals an allocated supplier invoice number are linked.
2. DIRECT_LINK: the sales invoice has NO allocation rows. Supplier invoices
   whose own sales invoice column matches are linked.

The direct-link fallback never runs when allocations exist, even if they
matched nothing; that case is reported through missing_supplier_invoice_nos.
"""

from collections import OrderedDict
from typing import Dict, List

from models.canonical import Allocation, SupplierInvoice
from models.refs import MatchedSupplierInvoice, MatchPath, MatchResult
from reconciliation.allocations import totals_by_supplier_invoice
from reconciliation.normalize import normalize_invoice_no, normalize_supplier


def _group_by_invoice_no(invoices: List[SupplierInvoice]) -> Dict[str, List[SupplierInvoice]]:
    groups: Dict[str, List[SupplierInvoice]] = {}
    for invoice in invoices:
        key = normalize_invoice_no(invoice.invoice_no)
        if key:
            groups.setdefault(key, []).append(invoice)
    return groups


def _supplier_count(invoices: List[SupplierInvoice]) -> int:
    return len({normalize_supplier(inv.supplier) for inv in invoices})


def match_supplier_invoices(
    sales_invoice_no: str,
    allocations: List[Allocation],
    invoices: List[SupplierInvoice],
) -> MatchResult:
    """Link supplier invoices to a sales invoice.

    Args:
        sales_invoice_no: Sales invoice as supplied by the caller
        allocations: Allocation rows already filtered to this sales invoice
        invoices: All supplier invoice rows

    Returns:
        MatchResult with the path taken and every linked invoice
    """
    if allocations:
        return _match_by_allocation(sales_invoice_no, allocations, invoices)
    return _match_by_direct_link(sales_invoice_no, invoices)


def _match_by_allocation(
    sales_invoice_no: str,
    allocations: List[Allocation],
    invoices: List[SupplierInvoice],
) -> MatchResult:
    labels: "OrderedDict[str, str]" = OrderedDict()
    for allocation in allocations:
        key = normalize_invoice_no(allocation.supplier_invoice_no)
        if key and key not in labels:
            labels[key] = allocation.supplier_invoice_no.strip()

    allocated = totals_by_supplier_invoice(allocations)
    by_number = _group_by_invoice_no(invoices)

    matched: List[MatchedSupplierInvoice] = []
    missing: List[str] = []
    ambiguous: List[str] = []

    for key, label in labels.items():
        hits = by_number.get(key, [])
        if not hits:
            missing.append(label)
            continue
        if _supplier_count(hits) > 1:
            ambiguous.append(label)
        for invoice in hits:
            matched.append(MatchedSupplierInvoice(
                invoice=invoice,
                matched_by=MatchPath.ALLOCATION,
                allocated_amount=allocated.get(key),
            ))

    return MatchResult(
        sales_invoice_no=sales_invoice_no,
        path=MatchPath.ALLOCATION,
        allocation_count=len(allocations),
        matched=matched,
        missing_supplier_invoice_nos=missing,
        ambiguous_invoice_nos=ambiguous,
    )


def _match_by_direct_link(sales_invoice_no: str, invoices: List[SupplierInvoice]) -> MatchResult:
    key = normalize_invoice_no(sales_invoice_no)
    linked = [
        inv for inv in invoices
        if key and normalize_invoice_no(inv.sales_invoice_no) == key
    ]
    if not linked:
        return MatchResult(sales_invoice_no=sales_invoice_no, path=MatchPath.NONE)

    ambiguous = [
        numbers[0].invoice_no.strip()
        for numbers in _group_by_invoice_no(linked).values()
        if _supplier_count(numbers) > 1
    ]
    return MatchResult(
        sales_invoice_no=sales_invoice_no,
        path=MatchPath.DIRECT_LINK,
        matched=[
            MatchedSupplierInvoice(invoice=inv, matched_by=MatchPath.DIRECT_LINK)
            for inv in linked
        ],
        ambiguous_invoice_nos=ambiguous,
    )

"""Reconciliation - links sales invoices to supplier invoices.

Read path: repository (typed rows) -> normalize -> allocations -> matcher ->
summarizer. Nothing in this package writes to the store except the
repository's write helpers, which the payments and kitchen_sales packages use.
"""

from reconciliation.normalize import normalize_invoice_no, invoice_numbers_match
from reconciliation.repository import SheetRepository
from reconciliation.allocations import (
    resolve_allocations,
    filter_allocations,
    aggregate_allocations,
)
from reconciliation.matcher import match_supplier_invoices
from reconciliation.engine import ReconciliationService, summarize, amounts_match

__all__ = [
    "normalize_invoice_no",
    "invoice_numbers_match",
    "SheetRepository",
    "resolve_allocations",
    "filter_allocations",
    "aggregate_allocations",
    "match_supplier_invoices",
    "ReconciliationService",
    "summarize",
    "amounts_match",
]

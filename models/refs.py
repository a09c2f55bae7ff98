"""Result models returned by the engine.

These are read models: building one never writes to the store.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from models.canonical import SupplierInvoice


class MatchPath(str, Enum):
    """How supplier invoices were linked to a sales invoice."""
    ALLOCATION = "ALLOCATION"      # via Order_Supplier_Allocations rows
    DIRECT_LINK = "DIRECT_LINK"    # via the invoice's own sales invoice column
    NONE = "NONE"                  # nothing to match on


class SettlementStatus(str, Enum):
    """Supplier-side payment state of a sales invoice."""
    NO_SUPPLIER_INVOICES = "NO_SUPPLIER_INVOICES"
    WAITING_SUPPLIERS = "WAITING_SUPPLIERS"
    SUPPLIERS_PAID = "SUPPLIERS_PAID"


class DiscrepancyType(str, Enum):
    ALLOCATION_MISMATCH = "ALLOCATION_MISMATCH"
    OVER_ALLOCATED = "OVER_ALLOCATED"
    MISSING_SUPPLIER_INVOICE = "MISSING_SUPPLIER_INVOICE"


class MatchedSupplierInvoice(BaseModel):
    """A supplier invoice linked to a sales invoice, annotated with the path that linked it."""
    invoice: SupplierInvoice
    matched_by: MatchPath
    allocated_amount: Optional[Decimal] = Field(
        default=None,
        description="Amount this sales invoice allocated to the supplier invoice (allocation path only)",
    )


class MatchResult(BaseModel):
    """Output of the supplier invoice matcher.

    Attributes:
        sales_invoice_no: The sales invoice as supplied by the caller
        path: Which matching path ran
        allocation_count: Number of allocation rows the match was based on
        matched: Linked supplier invoices
        missing_supplier_invoice_nos: Allocated supplier invoice numbers with
            no supplier invoice row (allocation present, invoice missing)
        ambiguous_invoice_nos: Numbers that matched invoices of more than one supplier
    """
    sales_invoice_no: str
    path: MatchPath
    allocation_count: int = 0
    matched: List[MatchedSupplierInvoice] = Field(default_factory=list)
    missing_supplier_invoice_nos: List[str] = Field(default_factory=list)
    ambiguous_invoice_nos: List[str] = Field(default_factory=list)

    @property
    def invoices(self) -> List[SupplierInvoice]:
        return [m.invoice for m in self.matched]


class Discrepancy(BaseModel):
    """One reconciliation mismatch, reported as data."""
    type: DiscrepancyType
    supplier_invoice_no: str
    message: str
    allocated_amount: Optional[Decimal] = None
    invoice_amount: Optional[Decimal] = None
    difference: Optional[Decimal] = None


class ReconciliationSummary(BaseModel):
    """Per-sales-invoice reconciliation read model."""
    sales_invoice_no: str
    match_path: MatchPath
    total_allocated: Decimal = Decimal("0")
    total_invoiced: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    total_unpaid: Decimal = Decimal("0")
    allocation_count: int = 0
    linked_count: int = 0
    paid_count: int = 0
    unpaid_count: int = 0
    allocations_by_supplier_invoice: Dict[str, Decimal] = Field(default_factory=dict)
    discrepancy: bool = Field(
        default=False,
        description="Total allocated differs from total invoiced by more than the tolerance",
    )
    has_discrepancy_details: bool = Field(
        default=False,
        description="At least one per-supplier-invoice discrepancy is listed, even when totals agree",
    )
    discrepancies: List[Discrepancy] = Field(default_factory=list)
    settlement_status: SettlementStatus = SettlementStatus.NO_SUPPLIER_INVOICES


class MutationResult(BaseModel):
    """Cells written by one payment/fulfillment mutation."""
    sheet_name: str
    key: str
    row_index: int
    updated: Dict[str, str] = Field(default_factory=dict, description="field -> written value")


class RejectedRow(BaseModel):
    """A sales row that failed validation and was skipped."""
    row_number: int
    reason: str


class ImportResult(BaseModel):
    """Outcome of one sales import call."""
    imported: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)
    unmapped_locations: List[str] = Field(default_factory=list)
    duplicates: int = Field(default=0, description="Skipped rows whose key already existed")
    rejected: List[RejectedRow] = Field(default_factory=list)

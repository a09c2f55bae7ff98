"""Reconciliation engine for franchise orders and supplier invoices.

Exposes:
- summarize(match, allocations, ...) -> ReconciliationSummary (pure)
- ReconciliationService: reads the store and runs resolve/match/summarize
"""

from decimal import Decimal
from typing import Dict, List, Optional

from core.errors import ValidationError
from core.observability.logging import get_logger
from core.observability.tracing import track_operation
from models.canonical import Allocation, SupplierInvoice
from models.refs import (
    Discrepancy,
    DiscrepancyType,
    MatchPath,
    MatchResult,
    ReconciliationSummary,
    SettlementStatus,
)
from reconciliation.allocations import (
    aggregate_allocations,
    filter_allocations,
    resolve_allocations,
    total_allocated,
    totals_by_supplier_invoice,
)
from reconciliation.matcher import match_supplier_invoices
from reconciliation.normalize import normalize_invoice_no
from reconciliation.repository import SheetRepository

logger = get_logger(__name__)


# =============================================================================
# Configuration
# =============================================================================

DISCREPANCY_EPSILON = Decimal("0.01")


def amounts_match(a: Decimal, b: Decimal, tolerance: Decimal = DISCREPANCY_EPSILON) -> bool:
    """Check if two amounts match within tolerance."""
    return abs(a - b) <= tolerance


# =============================================================================
# Summarizer
# =============================================================================

def _invoice_discrepancies(
    match: MatchResult,
    allocations: List[Allocation],
    all_allocations: Optional[List[Allocation]],
    epsilon: Decimal,
) -> List[Discrepancy]:
    """Per-supplier-invoice checks for the allocation path."""
    results: List[Discrepancy] = []
    own = totals_by_supplier_invoice(allocations)
    overall = totals_by_supplier_invoice(all_allocations) if all_allocations is not None else own

    # Several rows can share a number (one per supplier); compare against their sum
    amounts: Dict[str, Decimal] = {}
    labels: Dict[str, str] = {}
    for matched in match.matched:
        key = normalize_invoice_no(matched.invoice.invoice_no)
        amounts[key] = amounts.get(key, Decimal("0")) + matched.invoice.amount
        labels.setdefault(key, matched.invoice.invoice_no)

    for key, amount in amounts.items():
        allocated_here = own.get(key, Decimal("0"))
        allocated_total = overall.get(key, allocated_here)
        if allocated_total - amount > epsilon:
            results.append(Discrepancy(
                type=DiscrepancyType.OVER_ALLOCATED,
                supplier_invoice_no=labels[key],
                message=(
                    f"Allocations to {labels[key]} total {allocated_total} "
                    f"but the invoice amount is {amount}"
                ),
                allocated_amount=allocated_total,
                invoice_amount=amount,
                difference=allocated_total - amount,
            ))
        elif not amounts_match(allocated_total, amount, epsilon):
            results.append(Discrepancy(
                type=DiscrepancyType.ALLOCATION_MISMATCH,
                supplier_invoice_no=labels[key],
                message=f"{allocated_here} allocated vs {amount} invoice amount on {labels[key]}",
                allocated_amount=allocated_here,
                invoice_amount=amount,
                difference=amount - allocated_total,
            ))

    for number in match.missing_supplier_invoice_nos:
        allocated_here = own.get(normalize_invoice_no(number), Decimal("0"))
        results.append(Discrepancy(
            type=DiscrepancyType.MISSING_SUPPLIER_INVOICE,
            supplier_invoice_no=number,
            message=f"Allocated supplier invoice {number} not found in supplier invoices",
            allocated_amount=allocated_here,
        ))

    return results


def summarize(
    match: MatchResult,
    allocations: List[Allocation],
    all_allocations: Optional[List[Allocation]] = None,
    epsilon: Decimal = DISCREPANCY_EPSILON,
) -> ReconciliationSummary:
    """Combine matcher output into a per-sales-invoice read model.

    Args:
        match: Output of match_supplier_invoices
        allocations: This sales invoice's allocation rows
        all_allocations: Every allocation row, used for over-allocation checks
            across sales invoices (optional)
        epsilon: Currency tolerance

    Returns:
        ReconciliationSummary. Mismatches are reported, never raised.
        ``discrepancy`` compares the totals only; per-invoice problems such as
        over-allocation across sales invoices set ``has_discrepancy_details``.
    """
    invoices: List[SupplierInvoice] = match.invoices
    allocated = total_allocated(allocations)
    invoiced = sum((inv.amount for inv in invoices), Decimal("0"))
    paid = [inv for inv in invoices if inv.paid]
    unpaid = [inv for inv in invoices if not inv.paid]

    if match.path == MatchPath.ALLOCATION:
        discrepancy = not amounts_match(allocated, invoiced, epsilon)
        details = _invoice_discrepancies(match, allocations, all_allocations, epsilon)
    else:
        # Nothing was allocated, so there is nothing to compare
        discrepancy = False
        details = []

    if not invoices:
        status = SettlementStatus.NO_SUPPLIER_INVOICES
    elif unpaid:
        status = SettlementStatus.WAITING_SUPPLIERS
    else:
        status = SettlementStatus.SUPPLIERS_PAID

    return ReconciliationSummary(
        sales_invoice_no=match.sales_invoice_no,
        match_path=match.path,
        total_allocated=allocated,
        total_invoiced=invoiced,
        total_paid=sum((inv.amount for inv in paid), Decimal("0")),
        total_unpaid=sum((inv.amount for inv in unpaid), Decimal("0")),
        allocation_count=len(allocations),
        linked_count=len(invoices),
        paid_count=len(paid),
        unpaid_count=len(unpaid),
        allocations_by_supplier_invoice=aggregate_allocations(allocations),
        discrepancy=discrepancy,
        has_discrepancy_details=bool(details),
        discrepancies=details,
        settlement_status=status,
    )


# =============================================================================
# Service
# =============================================================================

def _require_invoice_no(sales_invoice_no: Optional[str]) -> str:
    if not normalize_invoice_no(sales_invoice_no):
        raise ValidationError("sales_invoice_no is required", field="sales_invoice_no")
    return str(sales_invoice_no).strip()


class ReconciliationService:
    """Read-path operations over the order, allocation and supplier invoice tables.

    Usage:
        service = ReconciliationService(SheetRepository(store, settings.sheets))
        summary = await service.summarize_reconciliation("#1005")
    """

    def __init__(self, repo: SheetRepository, epsilon: Decimal = DISCREPANCY_EPSILON):
        self.repo = repo
        self.epsilon = epsilon

    async def resolve_allocations(self, sales_invoice_no: str) -> List[Allocation]:
        sales_invoice_no = _require_invoice_no(sales_invoice_no)
        with track_operation("resolve_allocations", sales_invoice_no=sales_invoice_no) as trace:
            allocations = await resolve_allocations(self.repo, sales_invoice_no)
            trace.details["allocation_count"] = len(allocations)
            return allocations

    async def match_supplier_invoices(self, sales_invoice_no: str) -> MatchResult:
        sales_invoice_no = _require_invoice_no(sales_invoice_no)
        with track_operation("match_supplier_invoices", sales_invoice_no=sales_invoice_no) as trace:
            allocations = filter_allocations(sales_invoice_no, await self.repo.list_allocations())
            invoices = await self.repo.list_supplier_invoices()
            match = match_supplier_invoices(sales_invoice_no, allocations, invoices)
            trace.details.update(path=match.path.value, linked=len(match.matched))
            return match

    async def summarize_reconciliation(self, sales_invoice_no: str) -> ReconciliationSummary:
        """Totals, counts and discrepancy flags for one sales invoice. Never writes."""
        sales_invoice_no = _require_invoice_no(sales_invoice_no)
        with track_operation("summarize_reconciliation", sales_invoice_no=sales_invoice_no) as trace:
            all_allocations = await self.repo.list_allocations()
            allocations = filter_allocations(sales_invoice_no, all_allocations)
            invoices = await self.repo.list_supplier_invoices()

            match = match_supplier_invoices(sales_invoice_no, allocations, invoices)
            summary = summarize(match, allocations, all_allocations, self.epsilon)

            if summary.discrepancy:
                logger.warning(
                    f"Reconciliation discrepancy: allocated {summary.total_allocated} "
                    f"vs invoiced {summary.total_invoiced}",
                    extra_fields={"path": summary.match_path.value},
                )
            elif summary.has_discrepancy_details:
                logger.warning(
                    "Supplier invoice discrepancies with matching totals: "
                    + ", ".join(f"{d.type.value} {d.supplier_invoice_no}" for d in summary.discrepancies),
                    extra_fields={"path": summary.match_path.value},
                )
            if match.ambiguous_invoice_nos:
                logger.warning(
                    f"Supplier invoice numbers shared by several suppliers: "
                    f"{', '.join(match.ambiguous_invoice_nos)}"
                )
            trace.details.update(
                path=summary.match_path.value,
                linked=summary.linked_count,
                discrepancy=summary.discrepancy,
                discrepancy_details=len(summary.discrepancies),
            )
            return summary

"""Reconciliation and payment endpoints.

Read path: recon summary, allocations and linked supplier invoices for one
sales invoice. Write path: order stage / partner payment updates and
supplier invoice payment updates and entry.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from api.dependencies import (
    get_payment_updater,
    get_reconciliation_service,
)
from core.errors import ValidationError
from models.canonical import Allocation
from models.refs import MatchResult, MutationResult, ReconciliationSummary
from payments.supplier_invoices import SupplierInvoiceCreation, SupplierInvoiceEntry
from payments.updater import PaymentStateUpdater
from reconciliation.allocations import total_allocated
from reconciliation.engine import ReconciliationService


router = APIRouter()

ORDER_ACTIONS = ("set_stage", "mark_partner_paid")


# =============================================================================
# Request / Response Models
# =============================================================================

class AllocationsResponse(BaseModel):
    """Allocation rows for one sales invoice."""
    sales_invoice_no: str
    allocations: List[Allocation]
    total_allocated: Decimal


class OrderUpdateRequest(BaseModel):
    """Admin order update. `action` selects which fields apply."""
    sales_invoice_no: Optional[str] = None
    action: Optional[str] = Field(None, description="set_stage or mark_partner_paid")
    stage: Optional[str] = None
    paid_date: Optional[str] = None
    payment_method: Optional[str] = None
    payment_ref: Optional[str] = None


class OrderUpdateResponse(BaseModel):
    success: bool = True
    sales_invoice_no: str
    action: str
    updated: Dict[str, str] = {}


class SupplierInvoicePatchRequest(BaseModel):
    """Partial update of one supplier invoice. `paid` is required."""
    paid: Any = None
    paid_date: Optional[str] = None
    payment_reference: Optional[str] = None
    supplier: Optional[str] = Field(None, description="Disambiguates numbers shared by several suppliers")


class MarkSupplierPaidRequest(BaseModel):
    supplier_invoice_no: Optional[str] = None
    paid_date: Optional[str] = None
    payment_reference: Optional[str] = None
    supplier: Optional[str] = None


class SupplierInvoiceCreateRequest(BaseModel):
    """Sibling supplier invoices for one order (sales_invoice_no optional)."""
    sales_invoice_no: Optional[str] = None
    invoices: List[SupplierInvoiceEntry] = []


def _sales_invoice_param(
    sales_invoice_no: Optional[str] = Query(None),
    sales_invoice_no_camel: Optional[str] = Query(None, alias="salesInvoiceNo"),
) -> str:
    """Accept both ?sales_invoice_no= and ?salesInvoiceNo=."""
    return sales_invoice_no or sales_invoice_no_camel or ""


# =============================================================================
# Read Path
# =============================================================================

@router.get("/payments/recon-summary", response_model=ReconciliationSummary)
async def recon_summary(
    sales_invoice_no: str = Depends(_sales_invoice_param),
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ReconciliationSummary:
    """Totals, counts and discrepancy flags for one sales invoice."""
    return await service.summarize_reconciliation(sales_invoice_no)


@router.get("/payments/allocations", response_model=AllocationsResponse)
async def list_allocations(
    sales_invoice_no: str = Depends(_sales_invoice_param),
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> AllocationsResponse:
    allocations = await service.resolve_allocations(sales_invoice_no)
    return AllocationsResponse(
        sales_invoice_no=sales_invoice_no.strip(),
        allocations=allocations,
        total_allocated=total_allocated(allocations),
    )


@router.get("/payments/supplier-invoices", response_model=MatchResult)
async def list_supplier_invoices(
    sales_invoice_no: str = Depends(_sales_invoice_param),
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> MatchResult:
    """Supplier invoices linked to a sales invoice, with the path that linked them."""
    return await service.match_supplier_invoices(sales_invoice_no)


# =============================================================================
# Write Path
# =============================================================================

@router.post("/admin/orders/update", response_model=OrderUpdateResponse)
async def update_order(
    request: OrderUpdateRequest,
    updater: PaymentStateUpdater = Depends(get_payment_updater),
) -> OrderUpdateResponse:
    """Set an order's stage or mark it paid by the partner."""
    action = (request.action or "").strip()
    if action not in ORDER_ACTIONS:
        raise ValidationError(
            f"Unknown action: {action or '(none)'}",
            field="action",
            allowed_values=ORDER_ACTIONS,
        )

    if action == "set_stage":
        stage = await updater.set_order_stage(request.sales_invoice_no, request.stage)
        updated = {"stage": stage}
    else:
        result = await updater.mark_partner_paid(
            request.sales_invoice_no,
            paid_date=request.paid_date,
            payment_method=request.payment_method,
            payment_ref=request.payment_ref,
        )
        updated = result.updated

    return OrderUpdateResponse(
        sales_invoice_no=request.sales_invoice_no.strip(),
        action=action,
        updated=updated,
    )


@router.patch("/payments/supplier-invoices/{invoice_no}", response_model=MutationResult)
async def patch_supplier_invoice(
    invoice_no: str,
    request: SupplierInvoicePatchRequest,
    updater: PaymentStateUpdater = Depends(get_payment_updater),
) -> MutationResult:
    if request.paid is None:
        raise ValidationError("paid is required", field="paid")
    return await updater.update_supplier_invoice(
        invoice_no,
        paid=request.paid,
        paid_date=request.paid_date,
        payment_reference=request.payment_reference,
        supplier=request.supplier,
    )


@router.post("/admin/supplier-invoices/mark-paid", response_model=MutationResult)
async def mark_supplier_invoice_paid(
    request: MarkSupplierPaidRequest,
    updater: PaymentStateUpdater = Depends(get_payment_updater),
) -> MutationResult:
    return await updater.mark_supplier_invoice_paid(
        request.supplier_invoice_no,
        paid_date=request.paid_date,
        payment_reference=request.payment_reference,
        supplier=request.supplier,
    )


@router.post("/supplier-invoices/create", response_model=SupplierInvoiceCreation)
async def create_supplier_invoices(
    request: SupplierInvoiceCreateRequest,
    updater: PaymentStateUpdater = Depends(get_payment_updater),
) -> SupplierInvoiceCreation:
    """Create supplier invoices and their allocation rows for one order."""
    return await updater.create_supplier_invoices(request.sales_invoice_no, request.invoices)

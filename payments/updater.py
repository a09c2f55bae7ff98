"""Payment State Updater.

Validated, partial mutations of order and supplier invoice rows.

Every operation follows the same discipline:
1. Validate all inputs (nothing written on failure)
2. Locate the target row by normalized invoice number (NotFoundError if absent)
3. Resolve every target column (SchemaConfigurationError if an optional
   column is missing while a value for it was supplied)
4. Write only the supplied fields, as one batch
"""

from typing import Any, Dict, List, Optional, Union

from connectors.schema import ORDERS, SUPPLIER_INVOICES
from core.errors import NotFoundError, ValidationError
from core.observability.logging import get_logger
from core.observability.tracing import track_operation
from models.canonical import SupplierInvoice
from models.refs import MutationResult
from payments.supplier_invoices import (
    SupplierInvoiceCreation,
    SupplierInvoiceEntry,
    create_supplier_invoices,
)
from payments.validation import (
    PAID_FLAG,
    format_amount,
    format_paid_flag,
    validate_amount,
    validate_invoice_no,
    validate_order_stage,
    validate_paid_date,
    validate_paid_flag,
    validate_payment_method,
)
from reconciliation.normalize import normalize_supplier
from reconciliation.repository import SheetRepository

logger = get_logger(__name__)


class PaymentStateUpdater:
    """Write path for order stages, partner payments and supplier invoice payments.

    Usage:
        updater = PaymentStateUpdater(SheetRepository(store, settings.sheets))
        await updater.mark_partner_paid("#1005", paid_date="2024-03-01", payment_method="CASH")
    """

    def __init__(self, repo: SheetRepository):
        self.repo = repo

    # =========================================================================
    # Orders
    # =========================================================================

    async def _find_order_row(self, sales_invoice_no: str) -> int:
        order = await self.repo.find_order(sales_invoice_no)
        if order is None:
            raise NotFoundError("Sales invoice", sales_invoice_no)
        return order.row_index

    async def set_order_stage(self, sales_invoice_no: str, stage: str) -> str:
        """Set the fulfillment stage of an order. Writes exactly one cell.

        Returns:
            The stage written
        """
        sales_invoice_no = validate_invoice_no(sales_invoice_no, "sales_invoice_no")
        stage = validate_order_stage(stage)

        with track_operation("set_order_stage", sales_invoice_no=sales_invoice_no) as trace:
            row_index = await self._find_order_row(sales_invoice_no)
            await self.repo.write_fields(ORDERS, row_index, {"stage": stage})
            trace.details.update(stage=stage, row_index=row_index)
            return stage

    async def mark_partner_paid(
        self,
        sales_invoice_no: str,
        paid_date: Optional[str] = None,
        payment_method: Optional[str] = None,
        payment_ref: Optional[str] = None,
    ) -> MutationResult:
        """Mark an order as paid by the franchise partner.

        The paid flag is always written; date, method and reference only when
        supplied, so earlier values are never blanked.

        Raises:
            ValidationError: Unknown payment method or malformed date
            NotFoundError: No order with this invoice number
            SchemaConfigurationError: payment_ref supplied but the column is absent
        """
        sales_invoice_no = validate_invoice_no(sales_invoice_no, "sales_invoice_no")
        payment_method = validate_payment_method(payment_method)
        paid_date = validate_paid_date(paid_date)

        values: Dict[str, Any] = {"partner_paid": PAID_FLAG}
        if paid_date:
            values["partner_paid_date"] = paid_date
        if payment_method:
            values["partner_payment_method"] = payment_method
        if payment_ref is not None and str(payment_ref).strip():
            values["partner_payment_ref"] = str(payment_ref).strip()

        with track_operation("mark_partner_paid", sales_invoice_no=sales_invoice_no) as trace:
            row_index = await self._find_order_row(sales_invoice_no)
            await self.repo.write_fields(ORDERS, row_index, values)
            trace.details.update(fields=",".join(values), row_index=row_index)

        return MutationResult(
            sheet_name=self.repo.sheet_name(ORDERS),
            key=sales_invoice_no,
            row_index=row_index,
            updated={k: str(v) for k, v in values.items()},
        )

    # =========================================================================
    # Supplier invoices
    # =========================================================================

    async def _find_supplier_invoice(
        self, supplier_invoice_no: str, supplier: Optional[str]
    ) -> SupplierInvoice:
        """Locate one supplier invoice row, using `supplier` to disambiguate shared numbers."""
        matches = await self.repo.find_supplier_invoices(supplier_invoice_no)
        if supplier:
            wanted = normalize_supplier(supplier)
            matches = [m for m in matches if normalize_supplier(m.supplier) == wanted]
        if not matches:
            raise NotFoundError("Supplier invoice", supplier_invoice_no)

        suppliers: Dict[str, str] = {}
        for match in matches:
            suppliers.setdefault(normalize_supplier(match.supplier), match.supplier)
        if len(suppliers) > 1:
            raise ValidationError(
                f"Supplier invoice {supplier_invoice_no} exists for several suppliers; "
                f"specify supplier",
                field="supplier",
                allowed_values=list(suppliers.values()),
            )
        return matches[0]

    async def update_supplier_invoice(
        self,
        supplier_invoice_no: str,
        paid: Optional[Any] = None,
        paid_date: Optional[str] = None,
        payment_reference: Optional[str] = None,
        sales_invoice_no: Optional[str] = None,
        amount: Optional[Any] = None,
        supplier: Optional[str] = None,
    ) -> MutationResult:
        """Partially update one supplier invoice row.

        Only the supplied fields are written. Setting paid=False does not
        clear an existing paid date or reference.

        Args:
            supplier_invoice_no: Invoice number (normalized for lookup)
            paid: New paid flag (bool or YES/NO string)
            paid_date: YYYY-MM-DD
            payment_reference: Free text
            sales_invoice_no: Direct link to an order
            amount: New invoice amount (> 0)
            supplier: Disambiguates numbers shared by several suppliers

        Raises:
            ValidationError: Bad input, nothing to update, or ambiguous number
            NotFoundError: No matching supplier invoice row
            SchemaConfigurationError: Optional column absent while its value was supplied
        """
        supplier_invoice_no = validate_invoice_no(supplier_invoice_no, "supplier_invoice_no")
        paid = validate_paid_flag(paid)
        paid_date = validate_paid_date(paid_date)
        parsed_amount = validate_amount(amount, required=False)

        values: Dict[str, Any] = {}
        if paid is not None:
            values["paid"] = format_paid_flag(paid)
        if paid_date:
            values["paid_date"] = paid_date
        if payment_reference is not None and str(payment_reference).strip():
            values["payment_reference"] = str(payment_reference).strip()
        if sales_invoice_no is not None and str(sales_invoice_no).strip():
            values["sales_invoice_no"] = str(sales_invoice_no).strip()
        if parsed_amount is not None:
            values["amount"] = format_amount(parsed_amount)

        if not values:
            raise ValidationError("No fields to update")

        with track_operation(
            "update_supplier_invoice", supplier_invoice_no=supplier_invoice_no
        ) as trace:
            target = await self._find_supplier_invoice(supplier_invoice_no, supplier)
            await self.repo.write_fields(SUPPLIER_INVOICES, target.row_index, values)
            trace.details.update(fields=",".join(values), row_index=target.row_index)

        return MutationResult(
            sheet_name=self.repo.sheet_name(SUPPLIER_INVOICES),
            key=supplier_invoice_no,
            row_index=target.row_index,
            updated={k: str(v) for k, v in values.items()},
        )

    async def mark_supplier_invoice_paid(
        self,
        supplier_invoice_no: str,
        paid_date: Optional[str] = None,
        payment_reference: Optional[str] = None,
        supplier: Optional[str] = None,
    ) -> MutationResult:
        """Set paid = YES plus whichever of date/reference were supplied."""
        return await self.update_supplier_invoice(
            supplier_invoice_no,
            paid=True,
            paid_date=paid_date,
            payment_reference=payment_reference,
            supplier=supplier,
        )

    async def create_supplier_invoices(
        self,
        sales_invoice_no: Optional[str],
        invoices: List[Union[SupplierInvoiceEntry, Dict[str, Any]]],
    ) -> SupplierInvoiceCreation:
        """Append supplier invoices (and their allocations) for one order."""
        return await create_supplier_invoices(self.repo, sales_invoice_no, invoices)

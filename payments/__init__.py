"""Payments - validated mutations of order and supplier invoice payment state."""

from payments.validation import ALLOWED_ORDER_STAGES, ALLOWED_PAYMENT_METHODS
from payments.supplier_invoices import (
    SupplierInvoiceEntry,
    SupplierInvoiceCreation,
    create_supplier_invoices,
)
from payments.updater import PaymentStateUpdater

__all__ = [
    "ALLOWED_ORDER_STAGES",
    "ALLOWED_PAYMENT_METHODS",
    "SupplierInvoiceEntry",
    "SupplierInvoiceCreation",
    "create_supplier_invoices",
    "PaymentStateUpdater",
]

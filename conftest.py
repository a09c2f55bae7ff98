"""Shared fixtures: a seeded in-memory spreadsheet and the services built on it."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent))

from connectors.memory_store import InMemorySheetStore
from connectors.schema import ALLOCATIONS, KITCHEN_MAPPING, KITCHEN_SALES, ORDERS, SUPPLIER_INVOICES
from reconciliation.repository import SheetRepository


ORDER_ROWS = [
    ["ORD-1", "Chesters", "Bolton Foods Ltd", "2024-03-01", "450", "#1005", "New", "NO", "", "", ""],
    ["ORD-2", "Chesters", "Leeds Foods Ltd", "2024-03-02", "80", "1006", "Delivered", "YES", "2024-02-01", "CASH", "REF-9"],
    ["ORD-3", "Chesters", "Wigan Foods Ltd", "2024-03-03", "100", "#1007", "New", "NO", "", "", ""],
]

# Invoice No, Supplier, Amount, Sales Invoice No, File URL, Paid, Paid Date, Payment Reference
SUPPLIER_INVOICE_ROWS = [
    ["SI-1", "Brakes", "300", "", "", "YES", "2024-03-05", "BACS-1"],
    ["SI-2", "Bidfood", "200", "", "", "NO", "", ""],
    ["SI-9", "Brakes", "80", "#1006", "", "NO", "", ""],
    ["SI-9", "Bidfood", "40", "", "", "NO", "", ""],
]

ALLOCATION_ROWS = [
    ["#1005", "SI-1", "300"],
    ["1005 ", "#SI-2", "150"],
    ["#1008", "SI-404", "50"],
]

# Date, Location, Revenue, Gross Sales, Count, Franchise Code, Imported At
KITCHEN_SALES_ROWS = [
    ["2024-02-28", "Bolton Kitchen", "100", "110", "10", "", "2024-02-29T00:00:00Z"],
]

# Location, Franchise Code, Franchise Name, Active, Notes
KITCHEN_MAPPING_ROWS = [
    ["Bolton Kitchen", "CHB01", "Chesters Bolton", "YES", ""],
    ["Leeds Kitchen", "CHL02", "Chesters Leeds", "", ""],
    ["Old Wigan", "CHW03", "", "NO", "closed"],
]


def seed_sheets():
    """Fresh copy of the seeded workbook, keyed by default tab name."""
    return {
        "Orders_Header": [ORDERS.default_headers()] + [list(r) for r in ORDER_ROWS],
        "Supplier_Invoices": [SUPPLIER_INVOICES.default_headers()] + [list(r) for r in SUPPLIER_INVOICE_ROWS],
        "Order_Supplier_Allocations": [ALLOCATIONS.default_headers()] + [list(r) for r in ALLOCATION_ROWS],
        "Kitchen_Sales": [KITCHEN_SALES.default_headers()] + [list(r) for r in KITCHEN_SALES_ROWS],
        "Kitchen_Mapping": [KITCHEN_MAPPING.default_headers()] + [list(r) for r in KITCHEN_MAPPING_ROWS],
    }


@pytest.fixture
def store():
    return InMemorySheetStore(seed_sheets())


@pytest.fixture
def repo(store):
    return SheetRepository(store)

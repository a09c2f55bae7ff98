"""
HTTP API Tests

Runs the FastAPI app against a seeded in-memory store. Checks that routes
call the core services and map the error taxonomy to status codes.
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from api.server import create_app
from conftest import seed_sheets
from connectors.memory_store import InMemorySheetStore
from core.config import AppSettings
from core.errors import SchemaConfigurationError, StoreCredentialsError


@pytest.fixture
def memory_store():
    return InMemorySheetStore(seed_sheets())


@pytest.fixture
def client(memory_store):
    app = create_app(settings=AppSettings(store_backend="memory"), store=memory_store)
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["store_backend"] == "memory"
        assert "operations" in body["metrics"]

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"


class TestStartup:

    def test_schema_checked_at_startup(self):
        sheets = seed_sheets()
        sheets["Supplier_Invoices"][0] = ["Invoice No", "Supplier"]
        app = create_app(settings=AppSettings(store_backend="memory"), store=InMemorySheetStore(sheets))
        with pytest.raises(SchemaConfigurationError):
            with TestClient(app):
                pass


class TestReadRoutes:

    def test_recon_summary(self, client):
        response = client.get("/payments/recon-summary", params={"sales_invoice_no": "#1005"})
        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["total_allocated"]) == Decimal("450")
        assert Decimal(body["total_paid"]) == Decimal("300")
        assert Decimal(body["total_unpaid"]) == Decimal("200")
        assert body["discrepancy"] is True
        assert body["has_discrepancy_details"] is True
        assert body["match_path"] == "ALLOCATION"

    def test_camel_case_parameter(self, client):
        response = client.get("/payments/recon-summary", params={"salesInvoiceNo": "1006"})
        assert response.status_code == 200
        assert response.json()["match_path"] == "DIRECT_LINK"

    def test_missing_invoice_parameter(self, client):
        response = client.get("/payments/recon-summary")
        assert response.status_code == 400
        assert response.json()["field"] == "sales_invoice_no"

    def test_allocations(self, client):
        response = client.get("/payments/allocations", params={"sales_invoice_no": "1005"})
        assert response.status_code == 200
        body = response.json()
        assert len(body["allocations"]) == 2
        assert Decimal(body["total_allocated"]) == Decimal("450")

    def test_no_allocations_is_empty(self, client):
        response = client.get("/payments/allocations", params={"sales_invoice_no": "#1007"})
        assert response.status_code == 200
        assert response.json()["allocations"] == []

    def test_supplier_invoices(self, client):
        response = client.get("/payments/supplier-invoices", params={"sales_invoice_no": "#1005"})
        assert response.status_code == 200
        numbers = [m["invoice"]["invoice_no"] for m in response.json()["matched"]]
        assert numbers == ["SI-1", "SI-2"]

    def test_store_failure_maps_to_500(self, client, memory_store):
        memory_store.inject_failure("get_rows", StoreCredentialsError("token rejected", status=401))
        response = client.get("/payments/recon-summary", params={"sales_invoice_no": "#1005"})
        assert response.status_code == 500
        body = response.json()
        assert body["kind"] == "CREDENTIALS"
        assert body["retryable"] is False


class TestOrderRoutes:

    def test_mark_partner_paid(self, client, memory_store):
        response = client.post("/admin/orders/update", json={
            "sales_invoice_no": "#1005",
            "action": "mark_partner_paid",
            "paid_date": "2024-01-15",
            "payment_method": "SHOPIFY",
        })
        assert response.status_code == 200
        assert response.json()["updated"]["partner_paid"] == "YES"
        assert memory_store.write_count == 1

    def test_bad_payment_method(self, client, memory_store):
        response = client.post("/admin/orders/update", json={
            "sales_invoice_no": "#1005",
            "action": "mark_partner_paid",
            "payment_method": "BTC",
        })
        assert response.status_code == 400
        body = response.json()
        assert body["field"] == "payment_method"
        assert "BANK_TRANSFER" in body["allowed_values"]
        assert memory_store.write_count == 0

    def test_set_stage(self, client):
        response = client.post("/admin/orders/update", json={
            "sales_invoice_no": "1007", "action": "set_stage", "stage": "Delivered",
        })
        assert response.status_code == 200
        assert response.json()["updated"] == {"stage": "Delivered"}

    def test_unknown_order(self, client):
        response = client.post("/admin/orders/update", json={
            "sales_invoice_no": "#4040", "action": "set_stage", "stage": "New",
        })
        assert response.status_code == 404

    def test_unknown_action(self, client):
        response = client.post("/admin/orders/update", json={"sales_invoice_no": "#1005", "action": "delete"})
        assert response.status_code == 400
        assert response.json()["field"] == "action"


class TestSupplierInvoiceRoutes:

    def test_patch(self, client):
        response = client.patch("/payments/supplier-invoices/SI-2", json={"paid": True, "paid_date": "2024-03-10"})
        assert response.status_code == 200
        assert response.json()["updated"] == {"paid": "YES", "paid_date": "2024-03-10"}

    def test_patch_requires_paid(self, client):
        response = client.patch("/payments/supplier-invoices/SI-2", json={"paid_date": "2024-03-10"})
        assert response.status_code == 400

    def test_mark_paid_ambiguous_number(self, client):
        response = client.post("/admin/supplier-invoices/mark-paid", json={"supplier_invoice_no": "SI-9"})
        assert response.status_code == 400
        assert response.json()["field"] == "supplier"

        response = client.post(
            "/admin/supplier-invoices/mark-paid",
            json={"supplier_invoice_no": "SI-9", "supplier": "Brakes", "payment_reference": "BACS-7"},
        )
        assert response.status_code == 200
        assert response.json()["row_index"] == 2

    def test_create(self, client):
        response = client.post("/supplier-invoices/create", json={
            "sales_invoice_no": "#1007",
            "invoices": [
                {"supplier_invoice_no": "SI-50", "supplier": "Brakes", "amount": "100", "allocated_amount": "100"},
            ],
        })
        assert response.status_code == 200
        assert response.json()["created"] == ["SI-50"]

        summary = client.get("/payments/recon-summary", params={"sales_invoice_no": "#1007"}).json()
        assert summary["match_path"] == "ALLOCATION"
        assert summary["discrepancy"] is False
        assert summary["has_discrepancy_details"] is False

    def test_create_invalid_body(self, client):
        response = client.post("/supplier-invoices/create", json={"invoices": "nope"})
        assert response.status_code == 400


class TestSalesRoutes:

    ROWS = [
        {"Date": "2024-03-01", "Location": "Main St", "Revenue": 120.5, "Count": 14},
        {"Date": "2024-03-01", "Location": "Leeds Kitchen", "Revenue": 80, "Count": 6},
    ]

    def test_json_import_is_idempotent(self, client):
        first = client.post("/sales/import", json=self.ROWS).json()
        assert (first["imported"], first["skipped"]) == (2, 0)
        assert first["unmapped_locations"] == ["Main St"]

        second = client.post("/sales/import", json={"rows": self.ROWS}).json()
        assert (second["imported"], second["skipped"]) == (0, 2)

    def test_csv_import(self, client):
        csv_text = "Date,Location,Revenue,Count\n2024-03-04,Bolton Kitchen,99.50,9\n"
        response = client.post("/sales/import", content=csv_text, headers={"Content-Type": "text/csv"})
        assert response.status_code == 200
        assert response.json()["imported"] == 1

    def test_bad_body(self, client):
        response = client.post("/sales/import", json={"rows": "nope"})
        assert response.status_code == 400

    def test_mappings(self, client):
        response = client.post("/sales/mappings", json={"location": "Main St", "franchise_code": "CHM04"})
        assert response.status_code == 200
        assert response.json()["active"] == "YES"

        locations = [m["location"] for m in client.get("/sales/mappings").json()]
        assert "Main St" in locations

    def test_refresh_franchise_codes(self, client):
        response = client.post("/sales/refresh-franchise-codes")
        assert response.status_code == 200
        assert response.json() == {"updated": 1}

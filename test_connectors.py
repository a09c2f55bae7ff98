"""
Store Connector Tests

Covers the named-column schema, the in-memory store, the store factory and
the Google Sheets store/client (against a fake HTTP session, no network).
"""

import asyncio
import json
from collections import deque

import aiohttp
import pytest

from connectors.google_sheets.sheets_auth import GoogleAuthConfig, GoogleSheetsAuthProvider
from connectors.google_sheets.sheets_client import (
    RetryConfig,
    SheetsApiClient,
    SheetsApiConfig,
    quote_sheet_range,
)
from connectors.google_sheets.sheets_store import GoogleSheetsStore, data_row_to_sheet_row, to_cell
from connectors.memory_store import InMemorySheetStore
from connectors.schema import KITCHEN_MAPPING, KITCHEN_SALES, ORDERS, SUPPLIER_INVOICES, normalize_header
from connectors.sheet_store import CellUpdate, TextValue, column_letter, create_store, list_available_stores
from core.config import AppSettings
from core.errors import SchemaConfigurationError, StoreCredentialsError, TransientStoreError
from core.observability.metrics import get_metrics
from reconciliation.normalize import normalize_invoice_no


class TestSchema:

    def test_header_matching_ignores_case_and_punctuation(self):
        assert normalize_header(" Partner Paid? ") == "partnerpaid"
        resolved = ORDERS.resolve("Orders_Header", [
            "invoice no", "ORDER STAGE", "Partner Paid?", "Partner Paid Date", "Partner Payment Method",
        ])
        assert resolved.index("sales_invoice_no") == 0
        assert resolved.index("partner_paid") == 2
        assert not resolved.has("partner_payment_ref")

    def test_missing_required_columns(self):
        with pytest.raises(SchemaConfigurationError) as exc:
            SUPPLIER_INVOICES.resolve("Supplier_Invoices", ["Invoice No", "Supplier"])
        assert exc.value.missing_columns == ["Amount", "Paid", "Paid Date"]

    def test_absent_optional_column_has_no_index(self):
        resolved = ORDERS.resolve("Orders_Header", ORDERS.default_headers()[5:10])
        with pytest.raises(SchemaConfigurationError):
            resolved.index("partner_payment_ref")

    def test_record_and_build_row(self):
        resolved = KITCHEN_MAPPING.resolve("Kitchen_Mapping", ["Notes", "Location", "Franchise Code"])
        assert resolved.record(["n", "Bolton Kitchen"]) == {
            "notes": "n", "location": "Bolton Kitchen", "franchise_code": "",
        }
        assert resolved.build_row({"location": "Leeds", "franchise_code": "CHL02", "active": "YES"}) == [
            "", "Leeds", "CHL02",
        ]


class TestMemoryStore:

    def test_write_and_append(self):
        store = InMemorySheetStore({"S": [["A", "B"], ["1", "2"]]})
        asyncio.run(store.write_cells("S", 0, [CellUpdate(1, "x")]))
        asyncio.run(store.append_row("S", ["3", "4"]))
        assert asyncio.run(store.get_rows("S")) == [["A", "B"], ["1", "x"], ["3", "4"]]
        assert store.write_count == 2

    def test_input_is_copied(self):
        sheets = {"S": [["A"], ["1"]]}
        store = InMemorySheetStore(sheets)
        asyncio.run(store.append_row("S", ["2"]))
        assert sheets == {"S": [["A"], ["1"]]}

    def test_find_row_index_with_normalizer(self):
        store = InMemorySheetStore({"S": [["Invoice No"], ["#1005"], ["1006 "]]})
        assert asyncio.run(store.find_row_index("S", 0, "1006", key=normalize_invoice_no)) == 1
        assert asyncio.run(store.find_row_index("S", 0, "1005")) is None

    def test_injected_failure_fires_once(self):
        store = InMemorySheetStore({"S": [["A"]]})
        store.inject_failure("get_rows", TransientStoreError("boom"))
        with pytest.raises(TransientStoreError):
            asyncio.run(store.get_rows("S"))
        assert asyncio.run(store.get_rows("S")) == [["A"]]

    def test_from_settings_seeds_headers(self):
        store = create_store(AppSettings(store_backend="memory"))
        assert isinstance(store, InMemorySheetStore)
        assert store.sheets["Orders_Header"] == [ORDERS.default_headers()]

    def test_factory(self):
        assert {"memory", "google_sheets"} <= set(list_available_stores())
        with pytest.raises(ValueError):
            create_store(AppSettings(store_backend="excel"))


class TestA1Addressing:

    def test_column_letters(self):
        assert column_letter(0) == "A"
        assert column_letter(25) == "Z"
        assert column_letter(26) == "AA"

    def test_data_rows_start_below_header(self):
        assert data_row_to_sheet_row(0) == 2
        with pytest.raises(ValueError):
            data_row_to_sheet_row(-1)

    def test_sheet_names_are_quoted(self):
        assert quote_sheet_range("Orders_Header", "A:Z") == "'Orders_Header'!A:Z"
        assert quote_sheet_range("Bob's Sheet", "A1") == "'Bob''s Sheet'!A1"


# =============================================================================
# Google Sheets store / client against fakes
# =============================================================================

class FakeValuesClient:
    """Stands in for SheetsApiClient at the store boundary."""

    def __init__(self):
        self.api_config = SheetsApiConfig(spreadsheet_id="sheet-123")
        self.calls = []

    async def get_values(self, a1_range):
        self.calls.append(("get", a1_range))
        return [["Invoice No"], ["#1005"]]

    async def batch_update(self, ranges):
        self.calls.append(("batch", ranges))
        return {}

    async def append_values(self, a1_range, values):
        self.calls.append(("append", a1_range, values))
        return {}


class TestGoogleSheetsStore:

    def test_multi_cell_update_is_one_batch(self):
        client = FakeValuesClient()
        store = GoogleSheetsStore(client)
        asyncio.run(store.write_cells("Orders_Header", 0, [CellUpdate(7, "YES"), CellUpdate(8, "2024-01-15")]))
        assert client.calls == [
            ("batch", [("'Orders_Header'!H2", [["YES"]]), ("'Orders_Header'!I2", [["2024-01-15"]])]),
        ]

    def test_reads_and_appends(self):
        client = FakeValuesClient()
        store = GoogleSheetsStore(client)
        assert asyncio.run(store.get_rows("Kitchen_Sales")) == [["Invoice No"], ["#1005"]]
        asyncio.run(store.append_row("Kitchen_Sales", ["2024-03-01", "Main St"]))
        assert client.calls[-1] == ("append", "'Kitchen_Sales'!A1", [["2024-03-01", "Main St"]])

    def test_text_values_are_pinned_as_text(self):
        assert to_cell(TextValue("2024-03-01")) == "'2024-03-01"
        assert to_cell("2024-03-01") == "2024-03-01"
        assert to_cell(TextValue("2024-03-01"), "RAW") == "2024-03-01"

        client = FakeValuesClient()
        asyncio.run(GoogleSheetsStore(client).write_cells("Orders_Header", 0, [CellUpdate(8, TextValue("2024-01-15"))]))
        assert client.calls == [("batch", [("'Orders_Header'!I2", [["'2024-01-15"]])])]

    def test_repository_marks_date_columns_as_text(self):
        assert isinstance(KITCHEN_SALES.cell_value("date", "2024-03-01"), TextValue)
        assert ORDERS.cell_value("partner_paid_date", "") == ""
        assert not isinstance(KITCHEN_SALES.cell_value("revenue", "80.00"), TextValue)
        assert KITCHEN_SALES.cell_value("not_a_column", 5) == 5

    def test_connect_requires_configuration(self):
        store = GoogleSheetsStore.from_settings(AppSettings(store_backend="google_sheets"))
        with pytest.raises(StoreCredentialsError):
            asyncio.run(store.connect())


class FakeResponse:

    def __init__(self, status, text="", headers=None):
        self.status = status
        self._text = text
        self.headers = headers or {}

    async def text(self):
        return self._text

    async def json(self):
        return json.loads(self._text)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False


class FakeSession:
    """Returns queued responses (or raises queued exceptions) in order."""

    def __init__(self, *outcomes, token_responses=()):
        self.outcomes = deque(outcomes)
        self.token_responses = deque(token_responses)
        self.requests = []
        self.token_requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        outcome = self.outcomes.popleft()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def post(self, url, **kwargs):
        self.token_requests.append((url, kwargs))
        return self.token_responses.popleft()


REFRESHABLE = dict(client_id="cid", client_secret="secret", refresh_token="refresh")


def _client(session, max_retries=2, auth_config=None):
    auth = GoogleSheetsAuthProvider(auth_config or GoogleAuthConfig(access_token="static-token"))
    config = SheetsApiConfig(
        spreadsheet_id="sheet-123",
        retry_config=RetryConfig(max_retries=max_retries, base_delay=0),
    )
    client = SheetsApiClient(auth, config)
    client._session = session
    return client


class TestSheetsApiClient:

    def test_retries_server_errors(self):
        session = FakeSession(
            FakeResponse(503), FakeResponse(502), FakeResponse(200, '{"values": [["a"]]}'),
        )
        retries_before = get_metrics().get_summary()["store"]["retries"]

        values = asyncio.run(_client(session).get_values("'Orders_Header'!A:Z"))

        assert values == [["a"]]
        assert len(session.requests) == 3
        assert get_metrics().get_summary()["store"]["retries"] == retries_before + 2
        method, url, kwargs = session.requests[0]
        assert url.startswith("https://sheets.googleapis.com/v4/spreadsheets/sheet-123/values/")
        assert kwargs["headers"]["Authorization"] == "Bearer static-token"

    def test_rate_limit_exhausts_to_transient(self):
        session = FakeSession(*[FakeResponse(429, headers={"Retry-After": "0"}) for _ in range(3)])
        with pytest.raises(TransientStoreError) as exc:
            asyncio.run(_client(session).get_values("'S'!A:Z"))
        assert exc.value.status == 429
        assert exc.value.retryable
        assert len(session.requests) == 3

    def test_rejected_credentials_are_not_retried(self):
        session = FakeSession(FakeResponse(401, "unauthorized"))
        with pytest.raises(StoreCredentialsError) as exc:
            asyncio.run(_client(session).get_values("'S'!A:Z"))
        assert not exc.value.retryable
        assert len(session.requests) == 1

    def test_unknown_range_is_configuration_error(self):
        session = FakeSession(FakeResponse(400, "Unable to parse range"))
        with pytest.raises(StoreCredentialsError):
            asyncio.run(_client(session).append_values("'Nope'!A1", [["x"]]))

    def test_network_errors_retry_then_fail_transient(self):
        session = FakeSession(
            aiohttp.ClientConnectionError("reset"), asyncio.TimeoutError(), aiohttp.ClientConnectionError("reset"),
        )
        with pytest.raises(TransientStoreError):
            asyncio.run(_client(session).batch_update([("'S'!A2", [["x"]])]))
        assert len(session.requests) == 3

    def test_missing_credentials(self):
        auth = GoogleSheetsAuthProvider(GoogleAuthConfig())
        assert not auth.config.is_configured
        client = SheetsApiClient(auth, SheetsApiConfig(spreadsheet_id="sheet-123"))
        client._session = FakeSession()
        with pytest.raises(StoreCredentialsError):
            asyncio.run(client.get_values("'S'!A:Z"))

    def test_refresh_after_401_does_not_use_a_retry(self):
        session = FakeSession(
            FakeResponse(401, "expired"),
            FakeResponse(200, '{"values": [["ok"]]}'),
            token_responses=[FakeResponse(200, '{"access_token": "fresh-token", "expires_in": 3600}')],
        )
        config = GoogleAuthConfig(access_token="stale-token", **REFRESHABLE)

        values = asyncio.run(_client(session, max_retries=0, auth_config=config).get_values("'S'!A:Z"))

        assert values == [["ok"]]
        assert len(session.token_requests) == 1
        assert session.requests[1][2]["headers"]["Authorization"] == "Bearer fresh-token"

    def test_401_after_refresh_is_credentials_error(self):
        session = FakeSession(
            FakeResponse(401, "expired"),
            FakeResponse(401, "still rejected"),
            token_responses=[FakeResponse(200, '{"access_token": "fresh-token"}')],
        )
        config = GoogleAuthConfig(access_token="stale-token", **REFRESHABLE)

        with pytest.raises(StoreCredentialsError) as exc:
            asyncio.run(_client(session, max_retries=0, auth_config=config).get_values("'S'!A:Z"))
        assert not exc.value.retryable
        assert len(session.requests) == 2

    def test_401_on_last_retry_is_credentials_error(self):
        session = FakeSession(
            FakeResponse(503),
            FakeResponse(401, "expired"),
            FakeResponse(401, "still rejected"),
            token_responses=[FakeResponse(200, '{"access_token": "fresh-token"}')],
        )
        config = GoogleAuthConfig(access_token="stale-token", **REFRESHABLE)

        with pytest.raises(StoreCredentialsError):
            asyncio.run(_client(session, max_retries=1, auth_config=config).get_values("'S'!A:Z"))
        assert len(session.requests) == 3

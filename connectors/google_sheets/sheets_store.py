"""Google Sheets implementation of SheetStore.

Translates the store's 0-based data-row / column indices into A1 notation:
data row N lives on sheet row N + 2 (row 1 is the header).
"""

from typing import Any, List

from connectors.google_sheets.sheets_auth import GoogleAuthConfig, GoogleSheetsAuthProvider
from connectors.google_sheets.sheets_client import (
    RetryConfig,
    SheetsApiClient,
    SheetsApiConfig,
    quote_sheet_range,
)
from connectors.sheet_store import CellUpdate, SheetStore, TextValue, column_letter, register_store
from core.config import AppSettings
from core.errors import StoreCredentialsError
from core.observability.logging import get_logger

logger = get_logger(__name__)


def data_row_to_sheet_row(row_index: int) -> int:
    """0-based data row -> 1-based sheet row (header on row 1)."""
    if row_index < 0:
        raise ValueError(f"Row index must be >= 0, got {row_index}")
    return row_index + 2


def to_cell(value: Any, value_input_option: str = "USER_ENTERED") -> Any:
    """Outgoing cell value. With USER_ENTERED a leading apostrophe keeps TextValues as text."""
    if isinstance(value, TextValue) and value_input_option == "USER_ENTERED":
        return "'" + value
    return value


@register_store("google_sheets")
class GoogleSheetsStore(SheetStore):
    """SheetStore backed by one Google spreadsheet."""

    def __init__(self, client: SheetsApiClient):
        self.client = client

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "GoogleSheetsStore":
        auth_config = GoogleAuthConfig.from_settings(settings)
        api_config = SheetsApiConfig(
            spreadsheet_id=settings.spreadsheet_id,
            retry_config=RetryConfig(max_retries=settings.max_retries),
            timeout_seconds=settings.request_timeout_seconds,
        )
        return cls(SheetsApiClient(GoogleSheetsAuthProvider(auth_config), api_config))

    def _cell(self, value: Any) -> Any:
        return to_cell(value, self.client.api_config.value_input_option)

    async def connect(self) -> None:
        if not self.client.api_config.spreadsheet_id:
            raise StoreCredentialsError("GOOGLE_SHEETS_SPREADSHEET_ID is not configured")
        if not self.client.auth_provider.config.is_configured:
            raise StoreCredentialsError("Google Sheets credentials are not configured")
        await self.client.connect()
        logger.info(f"Connected to spreadsheet {self.client.api_config.spreadsheet_id}")

    async def disconnect(self) -> None:
        await self.client.disconnect()

    async def get_rows(self, sheet_name: str, column_range: str = "A:Z") -> List[List[Any]]:
        return await self.client.get_values(quote_sheet_range(sheet_name, column_range))

    async def write_cells(self, sheet_name: str, row_index: int, updates: List[CellUpdate]) -> None:
        if not updates:
            return
        sheet_row = data_row_to_sheet_row(row_index)
        ranges = [
            (quote_sheet_range(sheet_name, f"{column_letter(u.column)}{sheet_row}"), [[self._cell(u.value)]])
            for u in updates
        ]
        await self.client.batch_update(ranges)

    async def append_row(self, sheet_name: str, values: List[Any]) -> None:
        row = [self._cell(value) for value in values]
        await self.client.append_values(quote_sheet_range(sheet_name, "A1"), [row])

"""Google Sheets HTTP Client.

Low-level aiohttp client for the Sheets v4 values API.
Handles authentication headers, retries with exponential backoff, and maps
HTTP failures onto the store error taxonomy:

- 401/403 (after one token refresh), 400, 404 -> StoreCredentialsError
- 429, 5xx, network errors, timeouts (after retries) -> TransientStoreError
"""

import asyncio
import json
import urllib.parse
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from connectors.google_sheets.sheets_auth import GoogleSheetsAuthProvider
from core.errors import StoreCredentialsError, TransientStoreError, UpstreamStoreError
from core.observability.logging import get_logger
from core.observability.metrics import get_metrics

logger = get_logger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    retry_on_status: Tuple[int, ...] = (429, 500, 502, 503, 504)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt (exponential backoff)."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        return min(delay, self.max_delay)


@dataclass
class SheetsApiConfig:
    """Configuration for the Sheets API client."""
    spreadsheet_id: str = ""
    base_url: str = "https://sheets.googleapis.com/v4/spreadsheets"
    value_input_option: str = "USER_ENTERED"
    retry_config: RetryConfig = field(default_factory=RetryConfig)
    timeout_seconds: int = 30

    def get_spreadsheet_url(self) -> str:
        if not self.spreadsheet_id:
            raise StoreCredentialsError("GOOGLE_SHEETS_SPREADSHEET_ID is not configured")
        return f"{self.base_url}/{self.spreadsheet_id}"


def quote_sheet_range(sheet_name: str, a1: str) -> str:
    """Build an A1 range with the sheet name quoted ('My Sheet'!A1:B2)."""
    escaped = sheet_name.replace("'", "''")
    return f"'{escaped}'!{a1}"


class SheetsApiClient:
    """HTTP client for the Sheets values API.

    Usage:
        client = SheetsApiClient(auth_provider, api_config)
        await client.connect()
        values = await client.get_values("'Orders_Header'!A:Z")
        await client.disconnect()
    """

    def __init__(self, auth_provider: GoogleSheetsAuthProvider, api_config: SheetsApiConfig):
        self.auth_provider = auth_provider
        self.api_config = api_config
        self._session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        """Open the HTTP session and make sure a token is available."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
        await self.auth_provider.ensure_valid_token(self._session)

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _get_headers(self) -> Dict[str, str]:
        auth_header = self.auth_provider.get_authorization_header()
        if not auth_header:
            raise StoreCredentialsError("Not authenticated")
        return {
            "Authorization": auth_header,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make an authenticated API request with automatic retries.

        Args:
            method: HTTP method
            path: Path below the spreadsheet URL (already URL-quoted)
            params: Query parameters
            data: JSON body

        Returns:
            Response JSON

        Raises:
            StoreCredentialsError: Auth rejected or spreadsheet/range misconfigured
            TransientStoreError: Retries exhausted on a transient failure
        """
        if self._session is None:
            await self.connect()

        url = f"{self.api_config.get_spreadsheet_url()}{path}"
        retry_config = self.api_config.retry_config
        metrics = get_metrics()
        refreshed = False
        last_error: Optional[str] = None
        attempt = 0
        sent = 0

        while attempt <= retry_config.max_retries:
            if sent > 0:
                metrics.record_store_retry()
            sent += 1
            metrics.record_store_request()
            try:
                await self.auth_provider.ensure_valid_token(self._session)
                timeout = aiohttp.ClientTimeout(total=self.api_config.timeout_seconds)

                async with self._session.request(
                    method,
                    url,
                    headers=self._get_headers(),
                    params=params,
                    json=data,
                    timeout=timeout,
                ) as response:
                    response_text = await response.text()

                    if response.status < 400:
                        return json.loads(response_text) if response_text else {}

                    if response.status in (401, 403):
                        # Try to refresh token once
                        if not refreshed and self.auth_provider.invalidate():
                            refreshed = True
                            logger.warning("Got 401/403, attempting token refresh...")
                            # the refreshed retry does not use up an attempt
                            continue
                        raise StoreCredentialsError(
                            f"Sheets API rejected credentials: {response.status}",
                            response.status,
                            response_text,
                        )

                    if response.status in (400, 404):
                        raise StoreCredentialsError(
                            f"Sheets API configuration error {response.status}: {response_text}",
                            response.status,
                            response_text,
                        )

                    if response.status in retry_config.retry_on_status:
                        last_error = f"HTTP {response.status}"
                        if attempt < retry_config.max_retries:
                            delay = retry_config.get_delay(attempt)
                            if response.status == 429 and response.headers.get("Retry-After"):
                                try:
                                    delay = min(float(response.headers["Retry-After"]), retry_config.max_delay)
                                except ValueError:
                                    pass
                            logger.warning(
                                f"Request failed with {response.status}, "
                                f"retrying in {delay:.1f}s (attempt {attempt + 1}/{retry_config.max_retries})"
                            )
                            await asyncio.sleep(delay)
                            attempt += 1
                            continue
                        raise TransientStoreError(
                            f"Sheets API error {response.status} after {retry_config.max_retries} retries",
                            response.status,
                            response_text,
                        )

                    raise TransientStoreError(
                        f"Sheets API error {response.status}: {response_text}",
                        response.status,
                        response_text,
                    )

            except UpstreamStoreError as e:
                metrics.record_store_failure(e.kind.value)
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = f"{type(e).__name__}: {e}"
                if attempt < retry_config.max_retries:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(f"Request failed with {last_error}, retrying in {delay:.1f}s")
                    await asyncio.sleep(delay)
                attempt += 1

        error = TransientStoreError(
            f"Request failed after {retry_config.max_retries} retries: {last_error}"
        )
        metrics.record_store_failure(error.kind.value)
        raise error

    # =========================================================================
    # Values API
    # =========================================================================

    async def get_values(self, a1_range: str) -> List[List[Any]]:
        path = f"/values/{urllib.parse.quote(a1_range, safe='')}"
        response = await self._request(
            "GET", path, params={"valueRenderOption": "FORMATTED_VALUE"}
        )
        return response.get("values", [])

    async def batch_update(self, ranges: List[Tuple[str, List[List[Any]]]]) -> Dict[str, Any]:
        """Write several ranges in one request."""
        body = {
            "valueInputOption": self.api_config.value_input_option,
            "data": [{"range": a1, "values": values} for a1, values in ranges],
        }
        return await self._request("POST", "/values:batchUpdate", data=body)

    async def append_values(self, a1_range: str, values: List[List[Any]]) -> Dict[str, Any]:
        path = f"/values/{urllib.parse.quote(a1_range, safe='')}:append"
        params = {
            "valueInputOption": self.api_config.value_input_option,
            "insertDataOption": "INSERT_ROWS",
        }
        return await self._request("POST", path, params=params, data={"values": values})

"""Google Sheets Store Package.

Implements the SheetStore interface over the Google Sheets v4 REST API.
"""

from connectors.google_sheets.sheets_auth import (
    GoogleAuthConfig,
    GoogleSheetsAuthProvider,
    GoogleToken,
)
from connectors.google_sheets.sheets_client import (
    RetryConfig,
    SheetsApiClient,
    SheetsApiConfig,
)
from connectors.google_sheets.sheets_store import GoogleSheetsStore

__all__ = [
    # Store
    "GoogleSheetsStore",
    # Auth
    "GoogleAuthConfig",
    "GoogleSheetsAuthProvider",
    "GoogleToken",
    # Client
    "RetryConfig",
    "SheetsApiClient",
    "SheetsApiConfig",
]

"""Application settings.

Values come from the environment, with a local `.env` file loaded first when
present. Settings are built explicitly and passed to whatever constructs the
store and services; nothing reads the environment after startup.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


REPO_ROOT = Path(__file__).resolve().parents[1]


def _load_env_file() -> None:
    env_path = REPO_ROOT / ".env"
    if env_path.exists():
        load_dotenv(env_path)


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "y", "on")


@dataclass
class SheetNames:
    """Tab names of the five logical tables."""
    orders: str = "Orders_Header"
    supplier_invoices: str = "Supplier_Invoices"
    allocations: str = "Order_Supplier_Allocations"
    kitchen_sales: str = "Kitchen_Sales"
    kitchen_mapping: str = "Kitchen_Mapping"


@dataclass
class AppSettings:
    """Runtime configuration.

    Attributes:
        store_backend: "google_sheets" or "memory"
        spreadsheet_id: Google spreadsheet ID (google_sheets backend)
        access_token: Pre-issued OAuth access token (optional)
        oauth_client_id / oauth_client_secret / oauth_refresh_token:
            Refresh-token credentials used to mint access tokens
        request_timeout_seconds: Per-request store timeout
        max_retries: Store retries on transient failures
        discrepancy_epsilon: Currency tolerance for reconciliation checks
        fuzzy_match_threshold: Minimum token similarity for location mapping
        sheet_dates_day_first: Read hand-entered DD/MM/YYYY dates on Kitchen_Sales day first
        log_level / log_json: Logging output
    """
    store_backend: str = "memory"
    spreadsheet_id: str = ""
    access_token: Optional[str] = None
    oauth_client_id: Optional[str] = None
    oauth_client_secret: Optional[str] = None
    oauth_refresh_token: Optional[str] = None
    request_timeout_seconds: int = 30
    max_retries: int = 3
    discrepancy_epsilon: Decimal = Decimal("0.01")
    fuzzy_match_threshold: float = 0.8
    sheet_dates_day_first: bool = False
    log_level: str = "INFO"
    log_json: bool = False
    sheets: SheetNames = field(default_factory=SheetNames)

    @classmethod
    def from_env(cls) -> "AppSettings":
        """Build settings from the process environment."""
        _load_env_file()

        sheets = SheetNames(
            orders=os.getenv("ORDERS_SHEET", SheetNames.orders),
            supplier_invoices=os.getenv("SUPPLIER_INVOICES_SHEET", SheetNames.supplier_invoices),
            allocations=os.getenv("ALLOCATIONS_SHEET", SheetNames.allocations),
            kitchen_sales=os.getenv("KITCHEN_SALES_SHEET", SheetNames.kitchen_sales),
            kitchen_mapping=os.getenv("KITCHEN_MAPPING_SHEET", SheetNames.kitchen_mapping),
        )

        return cls(
            store_backend=os.getenv("STORE_BACKEND", "google_sheets"),
            spreadsheet_id=os.getenv("GOOGLE_SHEETS_SPREADSHEET_ID", ""),
            access_token=os.getenv("GOOGLE_SHEETS_ACCESS_TOKEN") or None,
            oauth_client_id=os.getenv("GOOGLE_OAUTH_CLIENT_ID") or None,
            oauth_client_secret=os.getenv("GOOGLE_OAUTH_CLIENT_SECRET") or None,
            oauth_refresh_token=os.getenv("GOOGLE_OAUTH_REFRESH_TOKEN") or None,
            request_timeout_seconds=int(os.getenv("STORE_TIMEOUT_SECONDS", "30")),
            max_retries=int(os.getenv("STORE_MAX_RETRIES", "3")),
            discrepancy_epsilon=Decimal(os.getenv("DISCREPANCY_EPSILON", "0.01")),
            fuzzy_match_threshold=float(os.getenv("FUZZY_MATCH_THRESHOLD", "0.8")),
            sheet_dates_day_first=_get_bool("SHEET_DATES_DAY_FIRST", False),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_get_bool("LOG_JSON", False),
            sheets=sheets,
        )

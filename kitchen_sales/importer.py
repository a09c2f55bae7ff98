"""Kitchen sales import.

Idempotent merge-or-skip of daily sales rows into Kitchen_Sales, keyed by
(ISO date, normalized location). Re-running an import with overlapping rows
never duplicates records.

Per row:
1. Validate (bad rows are skipped and listed in `rejected`)
2. Normalize the date and resolve the franchise code from Kitchen_Mapping
3. Skip if the key exists on the sheet or earlier in this batch, else append

Transient store failures on a single append are collected as row errors and
the import continues. Credential/configuration failures abort the call.
"""

import re
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence, Set, Tuple, Union

from connectors.schema import KITCHEN_MAPPING, KITCHEN_SALES
from core.errors import ImportRowError, UpstreamStoreError, ValidationError
from core.observability.logging import get_logger
from core.observability.metrics import get_metrics
from core.observability.tracing import track_operation
from kitchen_sales.location_mapper import DEFAULT_THRESHOLD, LocationMapper, normalize_location
from models.canonical import RawSaleRow, parse_decimal, utc_timestamp
from models.refs import ImportResult, RejectedRow
from payments.validation import format_amount, format_paid_flag
from reconciliation.repository import SheetRepository

logger = get_logger(__name__)


# =============================================================================
# Date Normalization
# =============================================================================

_YMD = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})(?:[T ].*)?$")
_MDY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def normalize_sale_date(value: Any, day_first: bool = False) -> Optional[str]:
    """Normalize a sales date to YYYY-MM-DD.

    Accepts YYYY-MM-DD, YYYY/MM/DD, ISO datetimes, and MM/DD/YYYY with a
    DD/MM/YYYY fallback when the first part exceeds 12. With ``day_first``
    the slash form is read DD/MM/YYYY, falling back to MM/DD/YYYY when the
    second part exceeds 12. Returns None when the value is not a real
    calendar date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = str(value).strip()
    if not text:
        return None

    match = _YMD.match(text)
    if match:
        year, month, day = (int(p) for p in match.groups())
    else:
        match = _MDY.match(text)
        if not match:
            return None
        first, second, year = (int(p) for p in match.groups())
        if day_first:
            day, month = (first, second) if second <= 12 else (second, first)
        elif first > 12:
            day, month = first, second
        else:
            month, day = first, second

    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def dedup_key(iso_date: str, location: str) -> Tuple[str, str]:
    return (iso_date, normalize_location(location))


# =============================================================================
# Row Validation
# =============================================================================

class ValidSaleRow:
    """A sales row that passed validation, ready to append."""

    def __init__(self, row_number: int, iso_date: str, location: str,
                 revenue: Decimal, gross_sales: Decimal, count: int):
        self.row_number = row_number
        self.iso_date = iso_date
        self.location = location
        self.revenue = revenue
        self.gross_sales = gross_sales
        self.count = count

    @property
    def key(self) -> Tuple[str, str]:
        return dedup_key(self.iso_date, self.location)


def validate_sale_row(row_number: int, row: RawSaleRow) -> Union[ValidSaleRow, RejectedRow]:
    """Validate one raw row. Returns the clean row or the rejection reason."""
    def reject(reason: str) -> RejectedRow:
        return RejectedRow(row_number=row_number, reason=reason)

    raw_date = "" if row.date is None else str(row.date).strip()
    location = "" if row.location is None else str(row.location).strip()
    if not raw_date:
        return reject("Missing Date")
    if not location:
        return reject("Missing Location")

    iso_date = normalize_sale_date(row.date)
    if iso_date is None:
        return reject(f"Invalid date: {raw_date}")

    try:
        revenue = parse_decimal(row.revenue)
    except ValueError:
        revenue = None
    if revenue is None:
        return reject(f"Invalid Revenue: {row.revenue!r}")

    try:
        gross_sales = parse_decimal(row.gross_sales)
    except ValueError:
        gross_sales = None
    if gross_sales is None:
        gross_sales = revenue

    try:
        count = parse_decimal(row.count)
    except ValueError:
        count = None
    if count is None or count < 0 or count != count.to_integral_value():
        return reject(f"Invalid Count: {row.count!r}")

    return ValidSaleRow(row_number, iso_date, location, revenue, gross_sales, int(count))


# =============================================================================
# Importer
# =============================================================================

class SalesImporter:
    """Imports kitchen sales rows and maintains Kitchen_Mapping.

    Usage:
        importer = SalesImporter(SheetRepository(store, settings.sheets))
        result = await importer.import_sales_rows(parse_sales_csv(text))
    """

    def __init__(
        self,
        repo: SheetRepository,
        fuzzy_threshold: float = DEFAULT_THRESHOLD,
        sheet_dates_day_first: bool = False,
    ):
        self.repo = repo
        self.fuzzy_threshold = fuzzy_threshold
        # how dates typed into the sheet by hand are read back
        self.sheet_dates_day_first = sheet_dates_day_first

    async def _mapper(self) -> LocationMapper:
        return LocationMapper(await self.repo.list_kitchen_mappings(), self.fuzzy_threshold)

    async def import_sales_rows(
        self, rows: Sequence[Union[RawSaleRow, Dict[str, Any]]]
    ) -> ImportResult:
        """Import sales rows, skipping invalid rows and existing (date, location) keys.

        Args:
            rows: Raw rows (models or dicts with Date/Location/Revenue/GrossSales/Count)

        Returns:
            ImportResult with imported/skipped counts, row errors, unmapped
            locations (unique, first-seen order) and rejected rows

        Raises:
            StoreCredentialsError: The store rejected credentials (nothing further is attempted)
            SchemaConfigurationError: Kitchen_Sales / Kitchen_Mapping missing required columns
        """
        batch_id = uuid.uuid4().hex[:12]
        result = ImportResult()

        with track_operation("import_sales_rows", import_batch_id=batch_id) as trace:
            mapper = await self._mapper()
            existing: Set[Tuple[str, str]] = set()
            for record in await self.repo.list_kitchen_sales():
                iso_date = normalize_sale_date(record.date, self.sheet_dates_day_first) or record.date
                existing.add(dedup_key(iso_date, record.location))

            unmapped: Dict[str, str] = {}
            imported_at = utc_timestamp()

            for index, raw in enumerate(rows, start=1):
                row = raw if isinstance(raw, RawSaleRow) else RawSaleRow.from_mapping(raw)
                checked = validate_sale_row(index, row)
                if isinstance(checked, RejectedRow):
                    result.skipped += 1
                    result.rejected.append(checked)
                    continue

                franchise_code = mapper.franchise_code(checked.location)
                if not franchise_code:
                    unmapped.setdefault(normalize_location(checked.location), checked.location)

                if checked.key in existing:
                    result.skipped += 1
                    result.duplicates += 1
                    continue

                try:
                    await self.repo.append_record(KITCHEN_SALES, {
                        "date": checked.iso_date,
                        "location": checked.location,
                        "revenue": format_amount(checked.revenue),
                        "gross_sales": format_amount(checked.gross_sales),
                        "count": checked.count,
                        "franchise_code": franchise_code,
                        "imported_at": imported_at,
                    })
                except UpstreamStoreError as e:
                    if not e.retryable:
                        raise
                    error = ImportRowError(index, e.message)
                    result.errors.append(error.message)
                    logger.warning(f"Append failed, continuing: {error.message}")
                    continue

                existing.add(checked.key)
                result.imported += 1

            result.unmapped_locations = list(unmapped.values())

            get_metrics().record_import_result(
                result.imported, result.skipped, len(result.errors), len(result.unmapped_locations)
            )
            trace.details.update(
                imported=result.imported,
                skipped=result.skipped,
                errors=len(result.errors),
                unmapped=len(result.unmapped_locations),
            )
            if result.unmapped_locations:
                logger.warning(
                    f"Unmapped locations: {', '.join(result.unmapped_locations)}",
                    extra_fields={"import_batch_id": batch_id},
                )
            return result

    async def refresh_franchise_codes(self) -> int:
        """Backfill franchise codes on existing sales rows from the current mappings.

        Only rows whose resolved code differs from the stored one are written
        (one targeted cell each). Rows that no longer resolve keep their code.

        Returns:
            Number of rows updated
        """
        with track_operation("refresh_franchise_codes") as trace:
            mapper = await self._mapper()
            updated = 0
            for record in await self.repo.list_kitchen_sales():
                if not record.date or not record.location:
                    continue
                code = mapper.franchise_code(record.location)
                if code and code != record.franchise_code:
                    await self.repo.write_fields(
                        KITCHEN_SALES, record.row_index, {"franchise_code": code}
                    )
                    updated += 1
            trace.details["updated"] = updated
            return updated

    async def add_kitchen_mapping(
        self,
        location: str,
        franchise_code: str = "",
        franchise_name: str = "",
        active: bool = True,
        notes: str = "",
    ) -> Dict[str, Any]:
        """Append a Kitchen_Mapping row. The franchise code may be filled in later.

        Raises:
            ValidationError: location is blank
        """
        if not location or not str(location).strip():
            raise ValidationError("location is required", field="location")

        values = {
            "location": str(location).strip(),
            "franchise_code": (franchise_code or "").strip(),
            "franchise_name": (franchise_name or "").strip(),
            "active": format_paid_flag(active),
            "notes": (notes or "").strip(),
        }
        with track_operation("add_kitchen_mapping") as trace:
            await self.repo.append_record(KITCHEN_MAPPING, values)
            trace.details["location"] = values["location"]
        return values

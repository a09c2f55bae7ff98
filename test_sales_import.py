"""
Kitchen Sales Import Tests

Idempotent (date, location) merge-or-skip, row validation, location mapping
and store failure handling.
"""

import asyncio
import re
from datetime import date, datetime
from decimal import Decimal

import pytest

from connectors.google_sheets.sheets_client import SheetsApiConfig
from connectors.google_sheets.sheets_store import GoogleSheetsStore
from connectors.schema import KITCHEN_MAPPING, KITCHEN_SALES
from core.errors import StoreCredentialsError, TransientStoreError, ValidationError
from kitchen_sales.csv_parser import parse_sales_csv
from kitchen_sales.importer import SalesImporter, normalize_sale_date
from kitchen_sales.location_mapper import LocationMapper, LocationMatchType, tokenize_location
from models.canonical import KitchenMapping
from reconciliation.repository import SheetRepository


SALES_ROWS = [
    {"Date": "2024-03-01", "Location": "Bolton Kitchen", "Revenue": "250.00", "GrossSales": "270", "Count": "20"},
    {"Date": "2024-03-01", "Location": "Leeds Kitchen", "Revenue": 100, "Count": 8},
    {"Date": "03/02/2024", "Location": "bolton  kitchen", "Revenue": "90", "Count": "7"},
]


def _import(repo, rows):
    return asyncio.run(SalesImporter(repo).import_sales_rows(rows))


def _sales(repo):
    return asyncio.run(repo.list_kitchen_sales())


class TestSaleDates:

    def test_accepted_formats(self):
        assert normalize_sale_date("2024-03-01") == "2024-03-01"
        assert normalize_sale_date("2024/3/1") == "2024-03-01"
        assert normalize_sale_date("03/01/2024") == "2024-03-01"
        assert normalize_sale_date("25/12/2024") == "2024-12-25"
        assert normalize_sale_date("2024-03-01T10:30:00Z") == "2024-03-01"
        assert normalize_sale_date(date(2024, 3, 1)) == "2024-03-01"
        assert normalize_sale_date(datetime(2024, 3, 1, 23, 59)) == "2024-03-01"

    def test_rejected_values(self):
        for bad in ("2024-02-30", "13/13/2024", "yesterday", "", None):
            assert normalize_sale_date(bad) is None


class TestImportIdempotency:

    def test_second_import_skips_everything(self, repo):
        first = _import(repo, SALES_ROWS)
        assert (first.imported, first.skipped) == (3, 0)

        second = _import(repo, SALES_ROWS)
        assert (second.imported, second.skipped) == (0, 3)
        assert second.duplicates == 3
        assert len(_sales(repo)) == 4

    def test_existing_rows_are_keys(self, repo):
        result = _import(repo, [
            {"Date": "02/28/2024", "Location": " BOLTON KITCHEN", "Revenue": "1", "Count": "1"},
        ])
        assert (result.imported, result.skipped) == (0, 1)

    def test_duplicates_within_one_batch(self, repo):
        row = {"Date": "2024-03-05", "Location": "Leeds Kitchen", "Revenue": "10", "Count": "1"}
        result = _import(repo, [row, dict(row)])
        assert (result.imported, result.skipped) == (1, 1)

    def test_written_values(self, repo):
        _import(repo, SALES_ROWS)
        added = {(s.date, s.location): s for s in _sales(repo)}

        bolton = added[("2024-03-01", "Bolton Kitchen")]
        assert bolton.revenue == Decimal("250.00")
        assert bolton.gross_sales == Decimal("270")
        assert bolton.count == 20
        assert bolton.franchise_code == "CHB01"
        assert bolton.imported_at.endswith("Z")

        leeds = added[("2024-03-01", "Leeds Kitchen")]
        assert leeds.gross_sales == Decimal("100")
        assert leeds.franchise_code == "CHL02"

        assert added[("2024-03-02", "bolton  kitchen")].franchise_code == "CHB01"


class TestUnmappedLocations:

    def test_unmapped_row_still_imports(self, repo):
        result = _import(repo, [
            {"Date": "2024-03-01", "Location": "Main St", "Revenue": 120.5, "Count": 14},
        ])
        assert result.imported == 1
        assert result.unmapped_locations == ["Main St"]

        row = [s for s in _sales(repo) if s.location == "Main St"][0]
        assert row.franchise_code == ""
        assert row.revenue == Decimal("120.5")

    def test_unmapped_listed_once(self, repo):
        result = _import(repo, [
            {"Date": "2024-03-01", "Location": "Main St", "Revenue": "1", "Count": "1"},
            {"Date": "2024-03-02", "Location": "main st", "Revenue": "1", "Count": "1"},
            {"Date": "2024-03-02", "Location": "Old Wigan", "Revenue": "1", "Count": "1"},
        ])
        assert result.unmapped_locations == ["Main St", "Old Wigan"]

    def test_mapping_added_later(self, repo):
        importer = SalesImporter(repo)
        asyncio.run(importer.add_kitchen_mapping("Main St", "CHM04", franchise_name="Chesters Main"))
        result = asyncio.run(importer.import_sales_rows([
            {"Date": "2024-03-01", "Location": "Main St", "Revenue": "5", "Count": "1"},
        ]))
        assert result.unmapped_locations == []

        mapping = [m for m in asyncio.run(repo.list_kitchen_mappings()) if m.location == "Main St"][0]
        assert mapping.franchise_code == "CHM04"
        assert mapping.active is True

    def test_mapping_needs_location(self, repo):
        with pytest.raises(ValidationError):
            asyncio.run(SalesImporter(repo).add_kitchen_mapping("  ", "CHX"))


class TestRowValidation:

    def test_invalid_rows_are_skipped(self, repo):
        result = _import(repo, [
            {"Date": "", "Location": "Leeds Kitchen", "Revenue": "1", "Count": "1"},
            {"Date": "2024-03-01", "Location": " ", "Revenue": "1", "Count": "1"},
            {"Date": "2024-02-30", "Location": "Leeds Kitchen", "Revenue": "1", "Count": "1"},
            {"Date": "2024-03-01", "Location": "Leeds Kitchen", "Revenue": "lots", "Count": "1"},
            {"Date": "2024-03-01", "Location": "Leeds Kitchen", "Revenue": "1", "Count": "2.5"},
            {"Date": "2024-03-01", "Location": "Leeds Kitchen", "Revenue": "1", "Count": "-1"},
            {"Date": "2024-03-01", "Location": "Leeds Kitchen", "Revenue": "1", "Count": "3"},
        ])
        assert (result.imported, result.skipped) == (1, 6)
        reasons = [r.reason for r in result.rejected]
        assert reasons[0] == "Missing Date"
        assert reasons[1] == "Missing Location"
        assert reasons[2].startswith("Invalid date")
        assert reasons[3].startswith("Invalid Revenue")
        assert reasons[4].startswith("Invalid Count")
        assert reasons[5].startswith("Invalid Count")
        assert [r.row_number for r in result.rejected] == [1, 2, 3, 4, 5, 6]


class TestStoreFailures:

    def test_transient_append_failure_is_collected(self, store, repo):
        store.inject_failure("append_row", TransientStoreError("rate limited", status=429))
        result = _import(repo, SALES_ROWS[:2])

        assert result.imported == 1
        assert result.errors == ["Row 1: rate limited"]

    def test_credentials_failure_aborts(self, store, repo):
        store.inject_failure("append_row", StoreCredentialsError("token rejected", status=401))
        with pytest.raises(StoreCredentialsError):
            _import(repo, SALES_ROWS)
        assert store.write_count == 0

    def test_read_failure_propagates(self, store, repo):
        store.inject_failure("get_rows", TransientStoreError("timeout"))
        with pytest.raises(TransientStoreError):
            _import(repo, SALES_ROWS)


class TestFranchiseCodeRefresh:

    def test_backfills_missing_codes(self, store, repo):
        importer = SalesImporter(repo)
        assert asyncio.run(importer.refresh_franchise_codes()) == 1
        assert _sales(repo)[0].franchise_code == "CHB01"
        assert store.write_count == 1

        assert asyncio.run(importer.refresh_franchise_codes()) == 0
        assert store.write_count == 1


class TestLocationMapper:

    def _mapper(self):
        return LocationMapper([
            KitchenMapping(location="Bolton Kitchen", franchise_code="CHB01", franchise_name="Chesters Bolton"),
            KitchenMapping(location="Leeds Kitchen", franchise_code="CHL02", franchise_name="Chesters Leeds", active=""),
            KitchenMapping(location="Old Wigan", franchise_code="CHW03", active="NO"),
            KitchenMapping(location="Pending Site", franchise_code=""),
        ])

    def test_exact_and_normalized(self):
        mapper = self._mapper()
        assert mapper.resolve("Bolton Kitchen").match_type == LocationMatchType.EXACT
        match = mapper.resolve("  bolton   KITCHEN ")
        assert match.match_type == LocationMatchType.NORMALIZED
        assert match.franchise_code == "CHB01"

    def test_blank_active_counts_as_active(self):
        assert self._mapper().franchise_code("Leeds Kitchen") == "CHL02"

    def test_inactive_and_codeless_mappings_ignored(self):
        mapper = self._mapper()
        assert mapper.resolve("Old Wigan") is None
        assert mapper.resolve("Pending Site") is None

    def test_fuzzy_matches(self):
        mapper = self._mapper()
        substring = mapper.resolve("Bolton Kitch")
        assert substring.match_type == LocationMatchType.SUBSTRING
        assert substring.franchise_code == "CHB01"

        # "kitchen" is a noise word, so "Bolton" shares every significant token
        tokens = mapper.resolve("Bolton")
        assert tokens.match_type == LocationMatchType.TOKEN_SIMILARITY
        assert tokens.franchise_code == "CHB01"

        by_name = mapper.resolve("Chesters Leeds")
        assert by_name.match_type == LocationMatchType.FRANCHISE_NAME
        assert by_name.franchise_code == "CHL02"

    def test_generic_and_brand_only_locations_stay_unmapped(self):
        mapper = self._mapper()
        for location in ("Kitchen", "Chesters", "Chesters - Kitchen", "Bolt"):
            assert mapper.resolve(location) is None, location
            assert mapper.franchise_code(location) == ""

    def test_generic_location_imports_unmapped(self, repo):
        result = _import(repo, [
            {"Date": "2024-03-01", "Location": "Kitchen", "Revenue": "1", "Count": "1"},
        ])
        assert result.unmapped_locations == ["Kitchen"]

    def test_fuzzy_tie_stays_unmapped(self):
        mapper = LocationMapper([
            KitchenMapping(location="Bolton North", franchise_code="A"),
            KitchenMapping(location="Bolton South", franchise_code="B"),
        ])
        assert mapper.resolve("Bolton") is None

    def test_tokenize(self):
        assert tokenize_location("CHESTERS - Bolton Kitchen") == ["chesters", "bolton"]


class TestCsvParser:

    def test_parses_quoted_fields_and_skips_blank_lines(self):
        text = (
            "\ufeffDate,Location,Revenue,Gross Sales,Count\n"
            "2024-03-01,\"Main St, Unit 2\",120.50,130,14\n"
            "\n"
            "2024-03-02,Leeds Kitchen,80,,6\n"
        )
        rows = parse_sales_csv(text)
        assert len(rows) == 2
        assert rows[0].location == "Main St, Unit 2"
        assert rows[0].gross_sales == "130"
        assert rows[1].count == "6"

    def test_missing_columns(self):
        with pytest.raises(ValidationError) as exc:
            parse_sales_csv("Date,Location,Revenue\n2024-03-01,Main St,10\n")
        assert exc.value.errors == ["Missing column: count"]

    def test_empty_text(self):
        assert parse_sales_csv("") == []

    def test_parsed_rows_import(self, repo):
        rows = parse_sales_csv("date,location,revenue,count\n2024-03-09,Leeds Kitchen,10,2\n")
        result = asyncio.run(SalesImporter(repo).import_sales_rows(rows))
        assert result.imported == 1


# =============================================================================
# Dates read back from a spreadsheet
# =============================================================================

class EnGbValuesClient:
    """Values API stand-in that parses input like an en-GB spreadsheet.

    ISO dates typed in become date cells rendered DD/MM/YYYY on read; a leading
    apostrophe keeps the rest of the text as typed.
    """

    def __init__(self, sheets):
        self.api_config = SheetsApiConfig(spreadsheet_id="sheet-123")
        self.sheets = sheets

    @staticmethod
    def _sheet(a1_range):
        return a1_range.rsplit("!", 1)[0][1:-1].replace("''", "'")

    @staticmethod
    def _typed(value):
        text = str(value)
        if text.startswith("'"):
            return text[1:]
        parsed = re.match(r"^(\d{4})-(\d{2})-(\d{2})$", text)
        if parsed:
            year, month, day = parsed.groups()
            return f"{day}/{month}/{year}"
        return text

    async def get_values(self, a1_range):
        return [list(row) for row in self.sheets.get(self._sheet(a1_range), [])]

    async def batch_update(self, ranges):
        raise AssertionError("not used by the import")

    async def append_values(self, a1_range, values):
        self.sheets[self._sheet(a1_range)].extend([self._typed(v) for v in row] for row in values)
        return {}


class TestSheetDates:

    def test_import_is_idempotent_through_a_day_first_spreadsheet(self):
        client = EnGbValuesClient({
            "Kitchen_Sales": [KITCHEN_SALES.default_headers()],
            "Kitchen_Mapping": [KITCHEN_MAPPING.default_headers(), ["Leeds Kitchen", "CHL02", "", "YES", ""]],
        })
        importer = SalesImporter(SheetRepository(GoogleSheetsStore(client)))
        row = {"Date": "2024-03-01", "Location": "Leeds Kitchen", "Revenue": "80", "Count": "6"}

        first = asyncio.run(importer.import_sales_rows([row]))
        second = asyncio.run(importer.import_sales_rows([row]))

        assert (first.imported, second.imported, second.skipped) == (1, 0, 1)
        stored = client.sheets["Kitchen_Sales"][1]
        assert stored[0] == "2024-03-01"
        assert stored[1] == "Leeds Kitchen"

    def test_hand_entered_day_first_dates(self, repo):
        asyncio.run(repo.append_record(KITCHEN_SALES, {
            "date": "01/03/2024", "location": "Leeds Kitchen", "revenue": "80", "gross_sales": "80", "count": 6,
        }))
        row = {"Date": "2024-03-01", "Location": "Leeds Kitchen", "Revenue": "80", "Count": "6"}

        result = asyncio.run(SalesImporter(repo, sheet_dates_day_first=True).import_sales_rows([row]))

        assert (result.imported, result.skipped) == (0, 1)

    def test_day_first_parsing(self):
        assert normalize_sale_date("01/03/2024", day_first=True) == "2024-03-01"
        assert normalize_sale_date("12/25/2024", day_first=True) == "2024-12-25"
        assert normalize_sale_date("2024-03-01", day_first=True) == "2024-03-01"
        assert normalize_sale_date("01/03/2024") == "2024-01-03"

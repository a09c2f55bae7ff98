"""
Import Deliverect-style kitchen sales CSV exports into Kitchen_Sales.

Rows already present for the same (date, location) are skipped, so the same
export can be imported again safely.

Usage:
    python scripts/import_sales_csv.py exports/sales_march.csv exports/sales_april.csv
    python scripts/import_sales_csv.py --refresh-codes
    python scripts/import_sales_csv.py sales.csv --json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List

sys.path.append(str(Path(__file__).resolve().parents[1]))

from connectors.sheet_store import create_store
from core.config import AppSettings
from core.errors import ReconciliationError
from core.observability.logging import configure_logging, with_correlation
from kitchen_sales.csv_parser import parse_sales_csv
from kitchen_sales.importer import SalesImporter
from models.refs import ImportResult
from reconciliation.repository import SheetRepository


def print_result(path: Path, result: ImportResult) -> None:
    print(f"\n{path.name}")
    print(f"  Imported:   {result.imported}")
    print(f"  Skipped:    {result.skipped} ({result.duplicates} already present)")
    for rejected in result.rejected:
        print(f"  ! Row {rejected.row_number}: {rejected.reason}")
    for error in result.errors:
        print(f"  ✗ {error}")
    if result.unmapped_locations:
        print(f"  Unmapped locations: {', '.join(result.unmapped_locations)}")


async def run(paths: List[Path], refresh_codes: bool, as_json: bool) -> int:
    settings = AppSettings.from_env()
    configure_logging(settings.log_level, settings.log_json, force=True)

    store = create_store(settings)
    await store.connect()
    try:
        repo = SheetRepository(store, settings.sheets)
        await repo.verify_schema()
        importer = SalesImporter(repo, settings.fuzzy_match_threshold, settings.sheet_dates_day_first)

        failed = False
        report = {}
        for path in paths:
            with with_correlation(request_id=f"cli:{path.name}"):
                rows = parse_sales_csv(path.read_text(encoding="utf-8-sig"))
                result = await importer.import_sales_rows(rows)
            failed = failed or bool(result.errors)
            report[str(path)] = result.model_dump()
            if not as_json:
                print_result(path, result)

        if refresh_codes:
            updated = await importer.refresh_franchise_codes()
            report["franchise_codes_updated"] = updated
            if not as_json:
                print(f"\nFranchise codes updated: {updated}")

        if as_json:
            print(json.dumps(report, indent=2, default=str))
        return 1 if failed else 0
    finally:
        await store.disconnect()


def main() -> int:
    parser = argparse.ArgumentParser(description="Import kitchen sales CSV exports")
    parser.add_argument("files", nargs="*", type=Path, help="CSV files to import")
    parser.add_argument(
        "--refresh-codes",
        action="store_true",
        help="Backfill franchise codes on existing rows after importing",
    )
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    args = parser.parse_args()

    if not args.files and not args.refresh_codes:
        parser.error("give at least one CSV file or --refresh-codes")

    missing = [str(p) for p in args.files if not p.exists()]
    if missing:
        parser.error(f"file not found: {', '.join(missing)}")

    try:
        return asyncio.run(run(args.files, args.refresh_codes, args.json))
    except ReconciliationError as e:
        print(f"✗ {type(e).__name__}: {e.message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())

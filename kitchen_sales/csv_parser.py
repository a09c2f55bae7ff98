"""Deliverect-style sales CSV parsing.

Expected headers (any case, surrounding spaces ignored):
Date, Location, Revenue, Count, and optionally GrossSales / "Gross Sales".
Values are kept raw; the importer validates each row.
"""

import csv
import io
from typing import Dict, List

from core.errors import ValidationError
from models.canonical import RawSaleRow


REQUIRED_HEADERS = ("date", "location", "revenue", "count")


def _header_key(header: str) -> str:
    return (header or "").strip().lower().replace(" ", "")


def parse_sales_csv(text: str) -> List[RawSaleRow]:
    """Parse CSV text into raw sales rows.

    Blank lines are dropped. Quoted fields (including embedded commas and
    doubled quotes) follow the csv module's rules.

    Raises:
        ValidationError: A required header is missing
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    if not text.strip():
        return []

    reader = csv.reader(io.StringIO(text))
    try:
        headers = next(reader)
    except StopIteration:
        return []

    positions: Dict[str, int] = {}
    for index, header in enumerate(headers):
        positions.setdefault(_header_key(header), index)

    missing = [h for h in REQUIRED_HEADERS if h not in positions]
    if missing:
        raise ValidationError(
            "CSV missing required columns: Date, Revenue, Count, Location",
            field="csv",
            errors=[f"Missing column: {h}" for h in missing],
        )

    rows: List[RawSaleRow] = []
    for values in reader:
        if not any(v.strip() for v in values):
            continue
        record = {
            header: values[index].strip() if index < len(values) else ""
            for header, index in positions.items()
        }
        rows.append(RawSaleRow.from_mapping(record))
    return rows

"""Kitchen Sales - daily sales import keyed by (date, location).

CSV/JSON rows -> csv_parser -> location_mapper (franchise code) -> importer
(merge-or-skip into Kitchen_Sales).
"""

from kitchen_sales.csv_parser import parse_sales_csv
from kitchen_sales.location_mapper import (
    LocationMapper,
    LocationMatch,
    LocationMatchType,
    normalize_location,
)
from kitchen_sales.importer import SalesImporter, normalize_sale_date

__all__ = [
    "parse_sales_csv",
    "LocationMapper",
    "LocationMatch",
    "LocationMatchType",
    "normalize_location",
    "SalesImporter",
    "normalize_sale_date",
]

"""Sheet Stores - pluggable spreadsheet backends.

This package contains the abstract store interface, the named-column table
schemas, and the concrete backends (in-memory, Google Sheets).

Key Design Principle:
- Services depend ONLY on the SheetStore interface
- Row/column addressing is 0-based data rows and integer columns everywhere;
  backends translate to their own notation

To add a new backend:
1. Implement SheetStore (get_rows, write_cells, append_row)
2. Add a from_settings() classmethod
3. Register using @register_store decorator
"""

from connectors.sheet_store import (
    CellUpdate,
    SheetStore,
    TextValue,
    column_letter,
    create_store,
    register_store,
    list_available_stores,
)
from connectors.schema import (
    ColumnSpec,
    TableSchema,
    ResolvedSchema,
    normalize_header,
)
from connectors.memory_store import InMemorySheetStore

__all__ = [
    # Interface
    "CellUpdate",
    "SheetStore",
    "TextValue",
    "column_letter",

    # Schema
    "ColumnSpec",
    "TableSchema",
    "ResolvedSchema",
    "normalize_header",

    # Backends
    "InMemorySheetStore",

    # Factory
    "create_store",
    "register_store",
    "list_available_stores",
]

"""In-Memory Sheet Store.

Holds sheets as lists of rows in process memory. Used by the test suite and
for local runs without spreadsheet credentials (STORE_BACKEND=memory).

Failures can be injected per operation to exercise the error paths that the
Google Sheets store raises in production.
"""

import copy
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional

from connectors.schema import ALL_TABLES
from connectors.sheet_store import CellUpdate, SheetStore, register_store
from core.config import AppSettings
from core.errors import UpstreamStoreError


@register_store("memory")
class InMemorySheetStore(SheetStore):
    """Sheet store backed by a dict of {sheet_name: rows}.

    Usage:
        store = InMemorySheetStore({
            "Orders_Header": [["Invoice No", "Order Stage"], ["#1005", "New"]],
        })
        rows = await store.get_rows("Orders_Header")
    """

    def __init__(self, sheets: Optional[Dict[str, List[List[Any]]]] = None):
        self.sheets: Dict[str, List[List[Any]]] = copy.deepcopy(sheets) if sheets else {}
        self.write_log: List[Dict[str, Any]] = []
        self._failures: Dict[str, Deque[UpstreamStoreError]] = defaultdict(deque)

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "InMemorySheetStore":
        """Empty store with every table's header row in place."""
        return cls({
            getattr(settings.sheets, table.key): [table.default_headers()]
            for table in ALL_TABLES
        })

    # =========================================================================
    # Failure injection
    # =========================================================================

    def inject_failure(self, operation: str, error: UpstreamStoreError, times: int = 1) -> None:
        """Make the next `times` calls of `operation` raise `error`.

        Args:
            operation: "get_rows", "write_cells" or "append_row"
            error: Error instance to raise
            times: Number of consecutive calls that fail
        """
        for _ in range(times):
            self._failures[operation].append(error)

    def _maybe_fail(self, operation: str) -> None:
        pending = self._failures.get(operation)
        if pending:
            raise pending.popleft()

    # =========================================================================
    # SheetStore interface
    # =========================================================================

    async def get_rows(self, sheet_name: str, column_range: str = "A:Z") -> List[List[Any]]:
        self._maybe_fail("get_rows")
        return copy.deepcopy(self.sheets.get(sheet_name, []))

    async def write_cells(self, sheet_name: str, row_index: int, updates: List[CellUpdate]) -> None:
        self._maybe_fail("write_cells")
        rows = self.sheets.setdefault(sheet_name, [[]])
        target = row_index + 1
        while len(rows) <= target:
            rows.append([])
        row = rows[target]
        for update in updates:
            while len(row) <= update.column:
                row.append("")
            row[update.column] = update.value
        self.write_log.append({
            "op": "write_cells",
            "sheet": sheet_name,
            "row_index": row_index,
            "updates": list(updates),
        })

    async def append_row(self, sheet_name: str, values: List[Any]) -> None:
        self._maybe_fail("append_row")
        rows = self.sheets.setdefault(sheet_name, [])
        rows.append(list(values))
        self.write_log.append({"op": "append_row", "sheet": sheet_name, "values": list(values)})

    # =========================================================================
    # Test helpers
    # =========================================================================

    def data_rows(self, sheet_name: str) -> List[List[Any]]:
        """Data rows of a sheet (header excluded)."""
        return self.sheets.get(sheet_name, [])[1:]

    @property
    def write_count(self) -> int:
        return len(self.write_log)

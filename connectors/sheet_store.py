"""Abstract Sheet Store Interface.

This module defines the four operations the engine needs from its system of
record. It is intentionally backend-agnostic - no Google Sheets specifics here.

Stores implement this interface to:
1. Read all rows of a sheet (header row first)
2. Find a data row by the value in one column
3. Write several cells of one row in a single batch
4. Append a row

Key Design Principles:
- Row indices are 0-based DATA rows (the header row is excluded)
- Column indices are 0-based integers; stores translate them as needed
- Failures are raised as UpstreamStoreError subclasses, never swallowed
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from core.config import AppSettings


# =============================================================================
# Cell Writes
# =============================================================================

@dataclass(frozen=True)
class CellUpdate:
    """One cell to write within a row.

    Attributes:
        column: 0-based column index
        value: Value to write (written as the user would type it)
    """
    column: int
    value: Any


class TextValue(str):
    """A value stored verbatim as text.

    Backends that parse input the way a user's typing is parsed must keep it a
    string: "2024-03-01" stays "2024-03-01" instead of becoming a date cell
    that reads back in the spreadsheet's locale format.
    """


def column_letter(index: int) -> str:
    """Convert a 0-based column index to A1 letters (0 -> A, 26 -> AA)."""
    if index < 0:
        raise ValueError(f"Column index must be >= 0, got {index}")
    letters = ""
    n = index + 1
    while n > 0:
        n, remainder = divmod(n - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


# =============================================================================
# Abstract Store Interface
# =============================================================================

class SheetStore(ABC):
    """Abstract base class for spreadsheet stores.

    Usage:
        store = create_store(settings)
        await store.connect()
        rows = await store.get_rows("Orders_Header")
        await store.write_cells("Orders_Header", 3, [CellUpdate(11, "Delivered")])
        await store.disconnect()
    """

    async def connect(self) -> None:
        """Open any network resources. No-op by default."""

    async def disconnect(self) -> None:
        """Release network resources. No-op by default."""

    @abstractmethod
    async def get_rows(self, sheet_name: str, column_range: str = "A:Z") -> List[List[Any]]:
        """Read every row of a sheet, header row first.

        Args:
            sheet_name: Tab name
            column_range: A1 column range to read

        Returns:
            List of rows; trailing empty cells may be omitted
        """

    @abstractmethod
    async def write_cells(self, sheet_name: str, row_index: int, updates: List[CellUpdate]) -> None:
        """Write several cells of one data row in a single request.

        Args:
            sheet_name: Tab name
            row_index: 0-based data row index (header excluded)
            updates: Cells to write; other cells in the row are left untouched
        """

    @abstractmethod
    async def append_row(self, sheet_name: str, values: List[Any]) -> None:
        """Append one row after the last data row."""

    async def find_row_index(
        self,
        sheet_name: str,
        column: int,
        value: Any,
        key: Optional[Callable[[Any], str]] = None,
    ) -> Optional[int]:
        """Find the first data row whose cell in `column` equals `value`.

        Args:
            sheet_name: Tab name
            column: 0-based column index to search
            value: Value to look for
            key: Optional normalizer applied to BOTH the cell and `value`

        Returns:
            0-based data row index, or None if no row matches
        """
        rows = await self.get_rows(sheet_name)
        normalize = key or (lambda v: "" if v is None else str(v).strip())
        target = normalize(value)
        for index, row in enumerate(rows[1:]):
            cell = row[column] if column < len(row) else ""
            if normalize(cell) == target:
                return index
        return None


# =============================================================================
# Store Factory
# =============================================================================

_store_registry: Dict[str, type] = {}


def register_store(backend: str):
    """Decorator to register a store implementation."""
    def decorator(cls):
        _store_registry[backend] = cls
        return cls
    return decorator


def create_store(settings: AppSettings) -> SheetStore:
    """Create a store instance from settings.

    Args:
        settings: AppSettings with store_backend specified

    Returns:
        Store instance (not yet connected)

    Raises:
        ValueError: If store_backend is not registered
    """
    # Import implementations so their @register_store decorators run
    import connectors.memory_store  # noqa: F401
    import connectors.google_sheets  # noqa: F401

    backend = settings.store_backend.lower()

    if backend not in _store_registry:
        available = list(_store_registry.keys())
        raise ValueError(
            f"Unknown store backend: {backend}. "
            f"Available: {available}"
        )

    store_class = _store_registry[backend]
    return store_class.from_settings(settings)


def list_available_stores() -> List[str]:
    """List all registered store backends."""
    import connectors.memory_store  # noqa: F401
    import connectors.google_sheets  # noqa: F401
    return list(_store_registry.keys())

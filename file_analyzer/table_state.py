"""In-memory table state under user edits.

The manager owns the current table and the row selection. Every operation
builds a new table (rows are never mutated in place) and then restores the
invariants:
- normalized rows hold no None/"" cells and are never empty
- every selected index is < len(table)
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from .config import DEFAULT_COLUMN_NAME
from .response_parser import cell_to_text
from .schemas import Table, TableRow


def normalize_row(row: Mapping[str, Any]) -> TableRow:
    """Drop None/empty-string cells; coerce what remains to text."""
    cleaned: TableRow = {}
    for key, value in row.items():
        if value is None:
            continue
        text = cell_to_text(value)
        if text != "":
            cleaned[str(key)] = text
    return cleaned


def normalize_table(raw_table: Iterable[Mapping[str, Any]]) -> Table:
    """Clean every row and drop rows left empty. Idempotent."""
    cleaned = (normalize_row(row) for row in raw_table)
    return [row for row in cleaned if row]


class TableStateManager:
    """Single owner of the table and its selection."""

    def __init__(self, table: Optional[Iterable[Mapping[str, Any]]] = None):
        self._table: Table = []
        self._selection: Set[int] = set()
        if table is not None:
            self.load(table)

    @property
    def table(self) -> Table:
        return [dict(row) for row in self._table]

    @property
    def selection(self) -> Set[int]:
        return set(self._selection)

    @property
    def columns(self) -> List[str]:
        # Header comes from the first row only; rows with other keys keep them
        # but they are not part of the displayed header.
        return list(self._table[0].keys()) if self._table else []

    def __len__(self) -> int:
        return len(self._table)

    def _replace(self, table: Table) -> Table:
        self._table = table
        self._selection = {i for i in self._selection if i < len(table)}
        return self.table

    def load(self, raw_table: Iterable[Mapping[str, Any]]) -> Table:
        """Replace the whole table with a normalized copy of raw_table."""
        return self._replace(normalize_table(raw_table))

    def clear(self) -> Table:
        self._selection = set()
        return self._replace([])

    def edit_cell(self, row_index: int, column_key: str, new_value: str) -> Table:
        if not 0 <= row_index < len(self._table):
            return self.table

        updated: List[Dict[str, Any]] = [
            {**row, column_key: new_value} if i == row_index else row
            for i, row in enumerate(self._table)
        ]
        return self._replace(normalize_table(updated))

    def delete_row(self, row_index: int) -> Table:
        if not 0 <= row_index < len(self._table):
            return self.table

        remaining = [row for i, row in enumerate(self._table) if i != row_index]
        return self._replace(normalize_table(remaining))

    def delete_selected(self) -> Table:
        remaining = [row for i, row in enumerate(self._table) if i not in self._selection]
        self._selection = set()
        return self._replace(normalize_table(remaining))

    def add_row(self) -> Table:
        """
        Append a blank row over the current columns (or the default column).

        Not normalized: the blank row survives until the next operation that
        passes through normalize_table.
        """
        columns = self.columns or [DEFAULT_COLUMN_NAME]
        new_row = {column: "" for column in columns}
        return self._replace(self._table + [new_row])

    def toggle_select_all(self) -> Set[int]:
        if self._table and len(self._selection) == len(self._table):
            self._selection = set()
        else:
            self._selection = set(range(len(self._table)))
        return self.selection

    def toggle_row_selection(self, row_index: int) -> Set[int]:
        if not 0 <= row_index < len(self._table):
            return self.selection

        if row_index in self._selection:
            self._selection = self._selection - {row_index}
        else:
            self._selection = self._selection | {row_index}
        return self.selection

#!/usr/bin/env python3
"""
Column Visibility Controller.

Holds one boolean flag per table column. Toggling never touches the
dataset or the filter state; the flags persist and are reapplied to the
table after every render.
"""

from schemas import ColumnConfig, TableRow


class ColumnVisibility:

    def __init__(self, columns: list[ColumnConfig]):
        self.columns = list(columns)
        self._flags: dict[str, bool] = {c.key: c.visible for c in self.columns}

    def _check(self, key: str):
        if key not in self._flags:
            raise KeyError(f"Unknown column '{key}'")

    def is_visible(self, key: str) -> bool:
        self._check(key)
        return self._flags[key]

    def toggle(self, key: str, visible: bool | None = None) -> bool:
        """Flip the column (or force it to `visible`). Returns the new flag."""
        self._check(key)
        self._flags[key] = (not self._flags[key]) if visible is None else bool(visible)
        return self._flags[key]

    def show_all(self):
        for k in self._flags:
            self._flags[k] = True

    @property
    def flags(self) -> dict[str, bool]:
        return dict(self._flags)

    def visible_columns(self) -> list[ColumnConfig]:
        return [c for c in self.columns if self._flags[c.key]]

    def hidden_keys(self) -> frozenset:
        return frozenset(k for k, v in self._flags.items() if not v)

    def apply(self, table: list[TableRow]) -> list[TableRow]:
        """Rendered rows with hidden columns' cells dropped."""
        visible = [c.key for c in self.visible_columns()]
        out = []
        for row in table:
            if row.is_placeholder:
                out.append(TableRow.placeholder(len(visible)))
            else:
                out.append(TableRow(cells={k: row.cells[k] for k in visible
                                           if k in row.cells}))
        return out

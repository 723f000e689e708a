#!/usr/bin/env python3
"""
View Renderer
=============
Shapes a row sequence into table display rows and bar-chart series, and
owns the one live chart instance of the view.

Chart lifecycle
---------------
A ChartSlot holds at most one live ChartInstance. `replace()` acquires the
new instance first and only then releases the previous one, so a failure
while building the new chart leaves the old instance owned and alive
rather than orphaned. The slot is a context manager; leaving the block
releases whatever it holds.

Usage:
    with ChartSlot("riskChart") as slot:
        renderer = ViewRenderer(columns, chart_cfg, slot)
        view = renderer.render(rows)
        view = renderer.render(other_rows)   # still exactly one live chart
"""

import html
import itertools
import logging
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict

from schemas import (NO_RESULTS_TEXT, ChartSeries, ColumnConfig, RowRecord,
                     RunConfig, TableRow)

log = logging.getLogger("riskbrowser.renderer")


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------

def build_table_rows(rows: list[RowRecord],
                     columns: list[ColumnConfig]) -> list[TableRow]:
    """One TableRow per record; a single placeholder row when empty."""
    if not rows:
        return [TableRow.placeholder(len(columns))]
    return [TableRow(cells={c.key: str(getattr(r, c.key)) for c in columns})
            for r in rows]


# ---------------------------------------------------------------------------
# Chart data
# ---------------------------------------------------------------------------

def build_chart_series(rows: list[RowRecord]) -> ChartSeries:
    """Parallel label/value arrays; one bar per row, unparsed risk -> 0."""
    return ChartSeries(
        labels=[r.condition for r in rows],
        values=[r.risk_value if r.risk_value is not None else 0 for r in rows],
    )


def build_chart_config(series: ChartSeries,
                       chart_cfg: Optional[RunConfig.ChartConfig] = None) -> dict:
    """Chart.js bar-chart configuration for the series."""
    chart_cfg = chart_cfg or RunConfig.ChartConfig()
    return {
        "type": "bar",
        "data": {
            "labels": list(series.labels),
            "datasets": [{
                "label": chart_cfg.label,
                "data": list(series.values),
                "backgroundColor": chart_cfg.background_color,
                "borderColor": chart_cfg.border_color,
                "borderWidth": chart_cfg.border_width,
            }],
        },
        "options": {
            "responsive": True,
            "scales": {
                "y": {
                    "beginAtZero": True,
                    "title": {"display": True, "text": chart_cfg.y_axis_title},
                },
            },
        },
    }


# ---------------------------------------------------------------------------
# Chart instance ownership
# ---------------------------------------------------------------------------

_instance_ids = itertools.count(1)


class ChartInstance:
    """A drawn chart bound to a canvas. Released exactly once via destroy()."""

    def __init__(self, canvas_id: str, config: dict):
        self.id = next(_instance_ids)
        self.canvas_id = canvas_id
        self.config = config
        self.alive = True

    def destroy(self):
        self.alive = False

    def __repr__(self) -> str:
        state = "live" if self.alive else "destroyed"
        return f"<ChartInstance #{self.id} canvas={self.canvas_id} {state}>"


ChartFactory = Callable[[str, dict], ChartInstance]


class ChartSlot:
    """Sole owner of the live chart for one canvas."""

    def __init__(self, canvas_id: str = "riskChart",
                 factory: ChartFactory = ChartInstance):
        self.canvas_id = canvas_id
        self._factory = factory
        self._current: Optional[ChartInstance] = None

    @property
    def current(self) -> Optional[ChartInstance]:
        return self._current

    def replace(self, config: dict) -> ChartInstance:
        """Acquire a chart for `config`, then release the previous one."""
        new = self._factory(self.canvas_id, config)
        old, self._current = self._current, new
        if old is not None:
            old.destroy()
        return new

    def release(self):
        if self._current is not None:
            self._current.destroy()
            self._current = None

    def __enter__(self) -> "ChartSlot":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


# ---------------------------------------------------------------------------
# Lockstep render
# ---------------------------------------------------------------------------

class RenderedView(BaseModel):
    table: list[TableRow]
    series: ChartSeries
    chart: ChartInstance
    row_count: int

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class ViewRenderer:
    """Renders table and chart from the same row sequence."""

    def __init__(self, columns: list[ColumnConfig],
                 chart_cfg: Optional[RunConfig.ChartConfig] = None,
                 slot: Optional[ChartSlot] = None):
        self.columns = list(columns)
        self.chart_cfg = chart_cfg or RunConfig.ChartConfig()
        self.slot = slot or ChartSlot()

    def render(self, rows: list[RowRecord]) -> RenderedView:
        table = build_table_rows(rows, self.columns)
        series = build_chart_series(rows)
        chart = self.slot.replace(build_chart_config(series, self.chart_cfg))
        log.debug(f"Rendered {len(rows)} rows onto chart #{chart.id}",
                  extra={"phase": "render", "count": len(rows)})
        return RenderedView(table=table, series=series, chart=chart,
                            row_count=len(rows))

    def close(self):
        self.slot.release()


# ---------------------------------------------------------------------------
# Static HTML fragment
# ---------------------------------------------------------------------------

def render_table_html(table: list[TableRow], columns: list[ColumnConfig],
                      hidden: frozenset = frozenset()) -> str:
    """<tbody> markup for the table. Cells of hidden columns get display:none."""
    out = ["<tbody>"]
    for row in table:
        if row.is_placeholder:
            span = max(len([c for c in columns if c.key not in hidden]), 1)
            out.append(f'<tr class="placeholder"><td colspan="{span}" '
                       f'style="text-align:center;">{html.escape(NO_RESULTS_TEXT)}</td></tr>')
            continue
        out.append("<tr>")
        for c in columns:
            style = ' style="display:none"' if c.key in hidden else ""
            out.append(f'<td data-col="{html.escape(c.key)}"{style}>'
                       f'{html.escape(row.cells.get(c.key, ""))}</td>')
        out.append("</tr>")
    out.append("</tbody>")
    return "".join(out)

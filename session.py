#!/usr/bin/env python3
"""
Dashboard Session — explicit state for one browsing session.

Owns the full normalized dataset, the current filter state, the filtered
dataset, the renderer (and through it the single live chart) and the
column visibility flags. User interactions are methods that each run to
completion and finish with exactly one render:

    session = DashboardSession(cfg)
    session.load()                              # one-shot, never raises
    session.apply_filter(paper="T1", condition="Breast")
    session.search("lung")
    session.toggle_column("authors")
    session.clear_filters()
    session.close()

A failed load leaves the session empty (load_error set) with the
"no matching results" placeholder rendered.
"""

import logging
from pathlib import Path
from typing import Optional

from column_visibility import ColumnVisibility
from dataset_loader import LoadFailure, load_document
from filter_engine import apply_filters, clear_filters, filter_options
from instrumentation import EventLog, trace_event
from normalizer import normalize_document
from schemas import FilterOptions, FilterState, RowRecord, RunConfig, TableRow
from view_renderer import ChartSlot, RenderedView, ViewRenderer

log = logging.getLogger("riskbrowser.session")


class DashboardSession:

    def __init__(self, cfg: Optional[RunConfig] = None,
                 source: Optional[str | Path] = None,
                 events: Optional[EventLog] = None,
                 slot: Optional[ChartSlot] = None):
        self.cfg = cfg or RunConfig()
        self.source = str(source) if source is not None else self.cfg.dataset.path
        self.events = events or EventLog()
        self.renderer = ViewRenderer(self.cfg.columns, self.cfg.chart, slot)
        self.visibility = ColumnVisibility(self.cfg.columns)

        self.full_rows: list[RowRecord] = []
        self.filtered_rows: list[RowRecord] = []
        self.state = FilterState()
        self.options = FilterOptions()
        self.view: Optional[RenderedView] = None
        self.table: list[TableRow] = []
        self.load_error: Optional[LoadFailure] = None
        self.loaded = False

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def load(self, raw: Optional[dict] = None) -> RenderedView:
        """Fetch (unless `raw` is given) and normalize, then render once."""
        if self.loaded:
            raise RuntimeError("Session dataset is loaded once per session")
        self.loaded = True

        if raw is None:
            try:
                with trace_event(self.events, "LOAD", f"Fetch {self.source}"):
                    raw = load_document(self.source,
                                        encoding=self.cfg.dataset.encoding,
                                        timeout=self.cfg.dataset.timeout_seconds)
            except LoadFailure as e:
                log.error(f"Dataset load failed: {e}", extra={"phase": "load"})
                self.load_error = e
                raw = {}

        with trace_event(self.events, "CALC", "Normalize document",
                         details=f"papers={len(raw)}"):
            self.full_rows = normalize_document(raw)

        self.options = filter_options(self.full_rows)
        self.state = FilterState()
        self.filtered_rows = list(self.full_rows)
        return self._render()

    # ------------------------------------------------------------------
    # Interaction handlers
    # ------------------------------------------------------------------

    def _refilter(self, operation: str) -> RenderedView:
        with trace_event(self.events, "INPUT", operation,
                         details=self.state.model_dump_json()):
            self.filtered_rows = apply_filters(self.full_rows, self.state)
        return self._render()

    def apply_filter(self, paper: Optional[str] = None,
                     condition: Optional[str] = None) -> RenderedView:
        """Filter button: set paper/condition selectors (None = leave as is)."""
        update = {}
        if paper is not None:
            update["selected_paper"] = paper
        if condition is not None:
            update["selected_condition"] = condition
        self.state = FilterState(**{**self.state.model_dump(), **update})
        return self._refilter("Apply filter")

    def search(self, term: str) -> RenderedView:
        self.state = FilterState(**{**self.state.model_dump(), "search_term": term})
        return self._refilter("Search")

    def clear_filters(self) -> RenderedView:
        self.state = clear_filters()
        return self._refilter("Clear filters")

    def toggle_column(self, key: str, visible: Optional[bool] = None) -> bool:
        """Column checkbox. Affects display only, never the data."""
        with trace_event(self.events, "INPUT", f"Toggle column {key}"):
            flag = self.visibility.toggle(key, visible)
        self._apply_visibility()
        return flag

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render(self) -> RenderedView:
        with trace_event(self.events, "RENDER", "Render table + chart",
                         details=f"rows={len(self.filtered_rows)}"):
            self.view = self.renderer.render(self.filtered_rows)
            self._apply_visibility()
        return self.view

    def _apply_visibility(self):
        self.table = self.visibility.apply(self.view.table) if self.view else []

    def visible_table(self) -> list[TableRow]:
        """Current table with hidden columns dropped."""
        return self.table

    def close(self):
        self.renderer.close()

    def __enter__(self) -> "DashboardSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

#!/usr/bin/env python3
"""
Interactive HTML Dashboard Generator for the ATM Risk Browser.
==============================================================
Loads the annotation document, runs a DashboardSession over it, and writes
a single self-contained HTML dashboard: paper / cancer-type selectors,
free-text search, column toggles, the risk table, and a Chart.js bar chart.

The page embeds every normalized row; its script re-filters client-side
with the same rules as filter_engine.py (exact title, exact condition,
case-insensitive substring search, AND-combined) and re-renders table and
chart together. The table body is also rendered server-side so the
snapshot reads without JavaScript.

Run from the directory holding config.yaml and data/; relative paths in the
config, the output file and runs/ all resolve against the working directory.

Usage:
    python generate_dashboard.py                                # ./config.yaml defaults
    python generate_dashboard.py --data "ATM_annotations.json"
    python generate_dashboard.py --condition Breast --search screening
    python generate_dashboard.py --hide-column authors --output out.html
"""

import argparse
import html
import json
import math
import sys
from pathlib import Path

import numpy as np
import yaml
from pydantic import ValidationError

from instrumentation import trace_event
from normalizer import rows_to_frame, summarize_rows
from run_context import RunContext
from schemas import ALL, ROW_TEXT_FIELDS, RunConfig
from session import DashboardSession
from view_renderer import build_chart_config, build_chart_series, render_table_html

# Relative paths (config, dataset, output) resolve against the working directory.
CONFIG_PATH = Path("config.yaml")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _safe(v):
    """Convert numpy/pandas types to JSON-safe Python types."""
    if v is None or (isinstance(v, float) and math.isnan(v)):
        return None
    if isinstance(v, (np.integer,)):
        return int(v)
    if isinstance(v, (np.floating,)):
        return round(float(v), 4)
    if isinstance(v, np.bool_):
        return bool(v)
    return v


def _resolve(path: str | Path) -> Path:
    path = Path(path)
    return path if path.is_absolute() else Path.cwd() / path


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

def load_config(path: Path = CONFIG_PATH) -> RunConfig:
    """Load and validate config.yaml. A missing file means all defaults."""
    if not path.exists():
        return RunConfig()
    with open(path, "r") as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"{path.name} must contain a mapping")
    return RunConfig(**cfg)


def load_config_safe(path: Path = CONFIG_PATH) -> RunConfig:
    """load_config with a clear error and exit code 1 on failure."""
    if not path.exists():
        print(f"\n  ERROR: config.yaml not found at {path.resolve()}")
        print("  Run from the directory holding config.yaml, or pass --config.")
        sys.exit(1)
    try:
        return load_config(path)
    except (yaml.YAMLError, ValueError, ValidationError) as e:
        print(f"\n  ERROR: Failed to parse {path}: {e}")
        sys.exit(1)


# ---------------------------------------------------------------------------
# Prepare JSON data for the dashboard
# ---------------------------------------------------------------------------

def prepare_dashboard_data(session: DashboardSession) -> str:
    """Convert session state into a JSON string for embedding in HTML."""
    cfg = session.cfg
    df = rows_to_frame(session.full_rows)
    rows = [{k: _safe(v) for k, v in rec.items()}
            for rec in df.to_dict(orient="records")]

    series = build_chart_series(session.filtered_rows)
    data = {
        "title": cfg.output.title,
        "rows": rows,
        "columns": [c.model_dump() for c in cfg.columns],
        "hidden_columns": sorted(session.visibility.hidden_keys()),
        "search_fields": list(ROW_TEXT_FIELDS),
        "papers": session.options.papers,
        "conditions": session.options.conditions,
        "state": {
            "paper": session.state.selected_paper,
            "condition": session.state.selected_condition,
            "search": session.state.search_term,
        },
        "chart": build_chart_config(series, cfg.chart),
        "kpis": summarize_rows(session.full_rows),
        "load_error": str(session.load_error) if session.load_error else None,
    }
    # keep "</script>" inside string values from closing the script block
    return json.dumps(data, default=_safe).replace("</", "<\\/")


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------

def _options_html(values: list[str], selected: str) -> str:
    out = [f'<option value="{ALL}"{" selected" if selected == ALL else ""}>{ALL}</option>']
    for v in values:
        sel = " selected" if v == selected else ""
        out.append(f'<option value="{html.escape(v, quote=True)}"{sel}>{html.escape(v)}</option>')
    return "".join(out)


def generate_html(data_json: str, session: DashboardSession) -> str:
    """Build the complete dashboard HTML string."""
    cfg = session.cfg
    hidden = session.visibility.hidden_keys()
    title = html.escape(cfg.output.title)
    hide_attr = ' style="display:none"'

    head_cells = "".join(
        f'<th data-col="{c.key}"{hide_attr if c.key in hidden else ""}>'
        f'{html.escape(c.label)}</th>'
        for c in cfg.columns)
    toggles = "".join(
        f'<label class="col-toggle"><input type="checkbox" data-col="{c.key}"'
        f'{"" if c.key in hidden else " checked"}> {html.escape(c.label)}</label>'
        for c in cfg.columns)
    tbody = render_table_html(session.view.table if session.view else [],
                              cfg.columns, hidden)
    error_banner = ""
    if session.load_error is not None:
        error_banner = (f'<div class="load-error">Dataset could not be loaded: '
                        f'{html.escape(session.load_error.reason)}</div>')

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <script src="https://cdn.jsdelivr.net/npm/chart.js@4.5.1" integrity="sha384-jb8JQMbMoBUzgWatfe6COACi2ljcDdZQ2OxczGA3bGNeWe+6DChMTBJemed7ZnvJ" crossorigin="anonymous"></script>
    <style>
{_css()}
    </style>
</head>
<body>
    <div class="dashboard-container">
        <header class="dashboard-header">
            <h1>{title}</h1>
        </header>
        {error_banner}

        <section class="kpi-row" id="kpi-row"></section>

        <section class="section controls">
            <div class="control">
                <label for="paperFilter">Paper</label>
                <select id="paperFilter">{_options_html(session.options.papers, session.state.selected_paper)}</select>
            </div>
            <div class="control">
                <label for="cancerFilter">Cancer Type</label>
                <select id="cancerFilter">{_options_html(session.options.conditions, session.state.selected_condition)}</select>
            </div>
            <div class="control grow">
                <label for="searchInput">Search</label>
                <input id="searchInput" type="search" placeholder="Search all fields..." value="{html.escape(session.state.search_term, quote=True)}">
            </div>
            <div class="control buttons">
                <button id="filterBtn">Filter</button>
                <button id="clearBtn" class="secondary">Clear</button>
            </div>
        </section>

        <section class="section column-toggles" id="columnToggles">{toggles}</section>

        <section class="section chart-container">
            <h2 class="section-title">Risk by Cancer Type</h2>
            <canvas id="riskChart"></canvas>
        </section>

        <section class="section table-section">
            <h2 class="section-title">Annotations <span id="row-count"></span></h2>
            <table id="riskTable">
                <thead><tr>{head_cells}</tr></thead>
                {tbody}
            </table>
        </section>
    </div>

    <script>
    const D = {data_json};
    </script>
    <script>
{_script()}
    </script>
</body>
</html>"""


def _script() -> str:
    return """
    document.addEventListener('DOMContentLoaded', () => {
        const ALL = 'All';
        const SEP = '\\u001f';
        const hidden = new Set(D.hidden_columns);
        let filteredData = [];
        let riskChart = null;

        const paperFilter = document.getElementById('paperFilter');
        const cancerFilter = document.getElementById('cancerFilter');
        const searchInput = document.getElementById('searchInput');

        function esc(s) {
            return String(s).replace(/&/g, '&amp;').replace(/</g, '&lt;')
                .replace(/>/g, '&gt;').replace(/"/g, '&quot;');
        }

        // ---- Filter/search (mirrors filter_engine.apply_filters) ----
        function searchText(r) {
            return D.search_fields.map(f => String(r[f])).join(SEP).toLowerCase();
        }

        function applyFilters(rows, st) {
            const needle = st.search.trim() ? st.search.toLowerCase() : '';
            return rows.filter(r =>
                (st.paper === ALL || r.title === st.paper) &&
                (st.condition === ALL || r.condition === st.condition) &&
                (!needle || searchText(r).includes(needle)));
        }

        function currentState() {
            return {paper: paperFilter.value, condition: cancerFilter.value,
                    search: searchInput.value};
        }

        // ---- Rendering ----
        function visibleCount() {
            return D.columns.filter(c => !hidden.has(c.key)).length || 1;
        }

        function createTable(rows) {
            const tbody = document.querySelector('#riskTable tbody');
            if (rows.length === 0) {
                tbody.innerHTML = `<tr class="placeholder"><td colspan="${visibleCount()}" style="text-align:center;">No matching results</td></tr>`;
            } else {
                tbody.innerHTML = rows.map(r => '<tr>' + D.columns.map(c =>
                    `<td data-col="${c.key}">${esc(r[c.key])}</td>`).join('') + '</tr>').join('');
            }
            document.getElementById('row-count').textContent = `(${rows.length})`;
            applyVisibility();
        }

        function createChart(rows) {
            const cfg = JSON.parse(JSON.stringify(D.chart));
            cfg.data.labels = rows.map(r => r.condition);
            cfg.data.datasets[0].data = rows.map(r => r.risk_value === null ? 0 : r.risk_value);
            // one live chart per canvas
            if (riskChart) riskChart.destroy();
            riskChart = new Chart(document.getElementById('riskChart'), cfg);
        }

        function render() {
            createTable(filteredData);
            createChart(filteredData);
        }

        // ---- Column visibility ----
        function applyVisibility() {
            D.columns.forEach(c => {
                const show = !hidden.has(c.key);
                document.querySelectorAll(`#riskTable [data-col="${c.key}"]`)
                    .forEach(el => { el.style.display = show ? '' : 'none'; });
            });
            document.querySelectorAll('#riskTable tr.placeholder td')
                .forEach(td => td.setAttribute('colspan', visibleCount()));
        }

        // ---- KPIs ----
        function renderKpis() {
            const k = D.kpis;
            const cards = [
                ['Papers', k.papers], ['Rows', k.rows], ['Cancer Types', k.conditions],
                ['Mean Risk %', k.mean_risk === null ? 'N/A' : k.mean_risk],
            ];
            document.getElementById('kpi-row').innerHTML = cards.map(([label, val]) =>
                `<div class="kpi-card"><div class="kpi-value">${esc(val)}</div><div class="kpi-label">${esc(label)}</div></div>`).join('');
        }

        // ---- Events ----
        document.getElementById('filterBtn').addEventListener('click', () => {
            filteredData = applyFilters(D.rows, currentState());
            render();
        });

        document.getElementById('clearBtn').addEventListener('click', () => {
            paperFilter.value = ALL;
            cancerFilter.value = ALL;
            searchInput.value = '';
            filteredData = D.rows.slice();
            render();
        });

        searchInput.addEventListener('input', () => {
            filteredData = applyFilters(D.rows, currentState());
            render();
        });

        document.querySelectorAll('#columnToggles input[type=checkbox]').forEach(cb => {
            cb.addEventListener('change', () => {
                if (cb.checked) hidden.delete(cb.dataset.col);
                else hidden.add(cb.dataset.col);
                applyVisibility();
            });
        });

        renderKpis();
        filteredData = applyFilters(D.rows, D.state);
        render();
    });
"""


def _css() -> str:
    return """
        :root {
            --bg-deep: #0a0e17;
            --bg-card: #161b22;
            --bg-elevated: #21262d;
            --border: rgba(255,255,255,.08);
            --text-primary: #e6edf3;
            --text-secondary: #7d8590;
            --accent: #58a6ff;
            --red: #f85149;
            --red-dim: rgba(248,81,73,.15);
            --gap: 16px;
            --radius: 10px;
        }
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body {
            font-family: 'DM Sans', system-ui, sans-serif;
            background: var(--bg-deep);
            color: var(--text-primary);
            line-height: 1.5;
        }
        .dashboard-container { max-width: 1400px; margin: 0 auto; padding: 24px; }
        .dashboard-header h1 { font-size: 26px; margin-bottom: var(--gap); }
        .load-error {
            background: var(--red-dim); border: 1px solid var(--red);
            border-radius: var(--radius); padding: 12px 16px; margin-bottom: var(--gap);
        }
        .kpi-row { display: flex; gap: var(--gap); margin-bottom: var(--gap); flex-wrap: wrap; }
        .kpi-card {
            flex: 1; min-width: 140px; background: var(--bg-card);
            border: 1px solid var(--border); border-radius: var(--radius); padding: 14px 18px;
        }
        .kpi-value { font-size: 24px; font-weight: 600; color: var(--accent); }
        .kpi-label { font-size: 12px; color: var(--text-secondary); text-transform: uppercase; }
        .section {
            background: var(--bg-card); border: 1px solid var(--border);
            border-radius: var(--radius); padding: 16px 20px; margin-bottom: var(--gap);
        }
        .section-title { font-size: 16px; margin-bottom: 12px; }
        .controls { display: flex; gap: var(--gap); align-items: flex-end; flex-wrap: wrap; }
        .control { display: flex; flex-direction: column; gap: 4px; }
        .control.grow { flex: 1; min-width: 220px; }
        .control label { font-size: 12px; color: var(--text-secondary); }
        select, input[type=search] {
            background: var(--bg-elevated); color: var(--text-primary);
            border: 1px solid var(--border); border-radius: 6px; padding: 6px 10px; max-width: 420px;
        }
        .control.grow input { max-width: none; width: 100%; }
        button {
            background: var(--accent); color: #0d1117; border: none; border-radius: 6px;
            padding: 7px 16px; font-weight: 600; cursor: pointer;
        }
        button.secondary { background: var(--bg-elevated); color: var(--text-primary); }
        .column-toggles { display: flex; gap: 18px; flex-wrap: wrap; font-size: 13px; }
        .col-toggle { cursor: pointer; color: var(--text-secondary); }
        .chart-container canvas { max-height: 420px; }
        table { border-collapse: collapse; width: 100%; font-size: 13px; }
        th, td { border-bottom: 1px solid var(--border); padding: 8px 10px; text-align: left; vertical-align: top; }
        th { color: var(--text-secondary); font-weight: 600; background: var(--bg-elevated); }
        tr.placeholder td { color: var(--text-secondary); font-style: italic; }
"""


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def run_session(cfg: RunConfig, source: str | Path | None = None,
                paper: str | None = None, condition: str | None = None,
                search: str | None = None,
                hide_columns: list[str] | None = None) -> DashboardSession:
    """Load the dataset and replay the initial interactions through the handlers."""
    if source is None:
        src = cfg.dataset.path
        source = src if src.startswith(("http://", "https://")) else _resolve(src)
    session = DashboardSession(cfg, source=source)
    session.load()
    if paper is not None or condition is not None:
        session.apply_filter(paper=paper, condition=condition)
    if search:
        session.search(search)
    for key in hide_columns or []:
        session.toggle_column(key, visible=False)
    return session


def generate_dashboard(cfg: RunConfig, source: str | Path | None = None,
                       output_path: Path | None = None,
                       ctx: RunContext | None = None, **initial) -> Path:
    """Generate the dashboard HTML.

    Args:
        cfg: validated config
        source: dataset path or URL. Defaults to cfg.dataset.path
        output_path: where to write the HTML. Defaults to cfg.output.html_path
        ctx: run context for artifacts and the event trace (optional)
        **initial: paper / condition / search / hide_columns presets

    Returns:
        Path to the generated HTML file.
    """
    output_path = Path(output_path) if output_path else _resolve(cfg.output.html_path)

    with run_session(cfg, source, **initial) as session:
        data_json = prepare_dashboard_data(session)
        page = generate_html(data_json, session)

        with trace_event(session.events, "WRITE", f"Write {output_path.name}"):
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(page, encoding="utf-8")

        if ctx is not None:
            if cfg.output.save_artifacts:
                ctx.save_artifact("01_normalized_rows", rows_to_frame(session.full_rows))
                ctx.save_artifact("02_filtered_rows", rows_to_frame(session.filtered_rows))
            session.events.flush_all(ctx.run_dir)
            ctx.save_metadata({
                "source": str(session.source),
                "output": str(output_path),
                "rows": len(session.full_rows),
                "filtered_rows": len(session.filtered_rows),
                "filter_state": session.state.model_dump(),
                "load_error": str(session.load_error) if session.load_error else None,
            })

    print(f"Dashboard generated: {output_path} ({output_path.stat().st_size / 1024:.0f} KB)")
    return output_path


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Generate the ATM cancer-risk dashboard")
    p.add_argument("--config", type=str, default=str(CONFIG_PATH),
                   help="Path to config.yaml")
    p.add_argument("--data", type=str, default=None,
                   help="Annotation JSON path or URL (default: dataset.path in config)")
    p.add_argument("--output", type=str, default=None,
                   help="Output HTML path (default: output.html_path in config)")
    p.add_argument("--runs-dir", type=str, default=None,
                   help="Directory for run logs and artifacts (default: ./runs)")
    p.add_argument("--paper", type=str, default=None,
                   help="Initial paper title filter")
    p.add_argument("--condition", type=str, default=None,
                   help="Initial cancer type filter")
    p.add_argument("--search", type=str, default=None,
                   help="Initial free-text search")
    p.add_argument("--hide-column", action="append", default=[], dest="hide_columns",
                   metavar="KEY", help="Hide a table column (repeatable)")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    cfg = load_config_safe(Path(args.config))

    known = {c.key for c in cfg.columns}
    unknown = [k for k in args.hide_columns if k not in known]
    if unknown:
        print(f"\n  ERROR: unknown column(s) {unknown}; configured: {sorted(known)}")
        sys.exit(2)

    ctx = RunContext(runs_dir=args.runs_dir) if args.runs_dir else RunContext()
    ctx.save_config(cfg.model_dump())
    try:
        generate_dashboard(
            cfg, source=args.data,
            output_path=Path(args.output) if args.output else None,
            ctx=ctx, paper=args.paper, condition=args.condition,
            search=args.search, hide_columns=args.hide_columns)
    finally:
        ctx.close()


if __name__ == "__main__":
    main()

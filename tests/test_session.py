"""Tests for the dashboard session: load, interaction handlers, failure state."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
from instrumentation import EventLog
from schemas import ALL, FilterState
from session import DashboardSession
from view_renderer import NO_RESULTS_TEXT, ChartInstance, ChartSlot


class CountingSlot(ChartSlot):
    def __init__(self):
        self.created = []

        def factory(canvas_id, config):
            inst = ChartInstance(canvas_id, config)
            self.created.append(inst)
            return inst

        super().__init__("riskChart", factory)

    def live(self):
        return [c for c in self.created if c.alive]


@pytest.fixture
def session(cfg, sample_path):
    s = DashboardSession(cfg, source=sample_path, slot=CountingSlot())
    s.load()
    yield s
    s.close()


class TestLoad:
    def test_full_and_filtered_start_equal(self, session):
        assert len(session.full_rows) == 6
        assert session.filtered_rows == session.full_rows
        assert session.state == FilterState()
        assert session.load_error is None

    def test_initial_render(self, session):
        assert session.view is not None
        assert session.view.row_count == 6
        assert len(session.renderer.slot.live()) == 1

    def test_options_populated(self, session):
        assert len(session.options.papers) == 3
        assert session.options.conditions[0] == "Breast"

    def test_load_from_raw(self, cfg, example_doc):
        with DashboardSession(cfg) as s:
            s.load(raw=example_doc)
            assert [r.condition for r in s.full_rows] == ["Breast"]
            assert s.events.of_type("LOAD") == []

    def test_load_only_once(self, session):
        with pytest.raises(RuntimeError):
            session.load()


class TestLoadFailure:
    def test_missing_file_gives_empty_state(self, cfg, tmp_path):
        with DashboardSession(cfg, source=tmp_path / "ATM_annotations.json") as s:
            view = s.load()
            assert s.load_error is not None
            assert s.full_rows == [] and s.filtered_rows == []
            assert len(view.table) == 1
            assert view.table[0].is_placeholder
            assert view.table[0].text == NO_RESULTS_TEXT
            assert s.options.papers == [] and s.options.conditions == []

    def test_failure_recorded_as_event(self, cfg, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("not json", encoding="utf-8")
        events = EventLog()
        with DashboardSession(cfg, source=bad, events=events) as s:
            s.load()
        fails = events.failures()
        assert len(fails) == 1
        assert fails[0].event_type == "LOAD"
        assert "LoadFailure" in fails[0].details

    def test_failure_logged_on_operator_channel(self, cfg, tmp_path, caplog):
        with caplog.at_level("ERROR", logger="riskbrowser"):
            with DashboardSession(cfg, source=tmp_path / "missing.json") as s:
                s.load()
        assert any("Dataset load failed" in r.getMessage() for r in caplog.records)

    def test_handlers_still_work_after_failure(self, cfg, tmp_path):
        with DashboardSession(cfg, source=tmp_path / "missing.json") as s:
            s.load()
            view = s.search("anything")
            assert view.table[0].is_placeholder
            view = s.clear_filters()
            assert view.table[0].is_placeholder


class TestHandlers:
    def test_apply_filter(self, session):
        view = session.apply_filter(condition="Lung")
        assert [r.condition for r in session.filtered_rows] == ["Lung"]
        assert view.series.labels == ["Lung"]
        assert view.series.values == [0]

    def test_apply_filter_keeps_unspecified_selector(self, session):
        session.apply_filter(condition="Breast")
        session.apply_filter(paper=session.options.papers[0])
        assert session.state.selected_condition == "Breast"
        assert len(session.filtered_rows) == 1

    def test_search_combines_with_selectors(self, session):
        session.apply_filter(paper=session.options.papers[0])
        session.search("screening")
        assert [r.condition for r in session.filtered_rows] == ["Pancreatic Cancer"]

    def test_no_match_renders_placeholder(self, session):
        view = session.search("zzz-no-such-text")
        assert session.filtered_rows == []
        assert len(view.table) == 1 and view.table[0].is_placeholder
        assert view.series.labels == []

    def test_clear_restores_full_dataset(self, session):
        session.apply_filter(paper=session.options.papers[1], condition="Gastric")
        session.search("iceland")
        session.clear_filters()
        assert session.state.selected_paper == ALL
        assert session.state.selected_condition == ALL
        assert session.state.search_term == ""
        assert session.filtered_rows == session.full_rows

    def test_filtered_is_subset_by_identity(self, session):
        session.search("atm")
        ids = {id(r) for r in session.full_rows}
        assert all(id(r) in ids for r in session.filtered_rows)

    def test_full_dataset_never_changes(self, session):
        before = list(session.full_rows)
        session.apply_filter(condition="Breast")
        session.search("x")
        session.clear_filters()
        assert session.full_rows == before

    def test_every_render_keeps_one_live_chart(self, session):
        session.apply_filter(condition="Breast")
        session.search("mammography")
        session.search("")
        session.clear_filters()
        slot = session.renderer.slot
        assert len(slot.created) == 5
        assert len(slot.live()) == 1

    def test_close_releases_chart(self, cfg, sample_path):
        slot = CountingSlot()
        s = DashboardSession(cfg, source=sample_path, slot=slot)
        s.load()
        s.close()
        assert slot.live() == []


class TestColumnToggle:
    def test_toggle_does_not_refilter_or_render(self, session):
        renders = len(session.renderer.slot.created)
        filtered = session.filtered_rows
        session.toggle_column("authors")
        assert session.filtered_rows is filtered
        assert len(session.renderer.slot.created) == renders

    def test_hidden_column_persists_across_renders(self, session):
        session.toggle_column("authors", visible=False)
        session.apply_filter(condition="Breast")
        table = session.visible_table()
        assert len(table) == 1
        assert "authors" not in table[0].cells
        session.clear_filters()
        assert all("authors" not in r.cells for r in session.visible_table())

    def test_table_tracks_visibility_after_each_render(self, session):
        assert "authors" in session.table[0].cells
        session.toggle_column("authors", visible=False)
        assert "authors" not in session.table[0].cells
        session.search("gastric")
        assert len(session.table) == 1
        assert "authors" not in session.table[0].cells
        session.toggle_column("authors", visible=True)
        assert session.table[0].cells["authors"] == "Helgason H, Rafnar T"

    def test_unknown_column_raises(self, session):
        with pytest.raises(KeyError):
            session.toggle_column("nope")

    def test_events_recorded(self, session):
        session.toggle_column("title")
        inputs = [e.operation for e in session.events.of_type("INPUT")]
        assert "Toggle column title" in inputs

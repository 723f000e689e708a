"""Integration tests for infrastructure: RunContext logging and the event trace."""

import json
import logging
import sys
from pathlib import Path

import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
from instrumentation import EventLog, trace_event
from normalizer import rows_to_frame
from run_context import RunContext


# =====================================================================
# RUN CONTEXT
# =====================================================================

class TestRunContext:
    def test_creates_run_dir(self, tmp_path):
        ctx = RunContext(run_id="test_dir", runs_dir=tmp_path)
        ctx.close()
        assert (tmp_path / "test_dir").is_dir()

    def test_generated_run_id(self, tmp_path):
        ctx = RunContext(runs_dir=tmp_path)
        ctx.close()
        assert len(ctx.run_id) == 12

    def test_json_log_lines(self, tmp_path):
        ctx = RunContext(run_id="test_log", runs_dir=tmp_path)
        logging.getLogger("riskbrowser.normalizer").info(
            "Normalized", extra={"phase": "normalize", "count": 6})
        ctx.close()
        lines = (tmp_path / "test_log" / "run.log").read_text().splitlines()
        entries = [json.loads(line) for line in lines]
        assert entries[0]["msg"] == "Run started"
        assert entries[0]["run_id"] == "test_log"
        child = [e for e in entries if e["logger"] == "riskbrowser.normalizer"]
        assert child and child[0]["count"] == 6 and child[0]["phase"] == "normalize"

    def test_reinit_does_not_duplicate_handlers(self, tmp_path):
        a = RunContext(run_id="test_a", runs_dir=tmp_path)
        b = RunContext(run_id="test_b", runs_dir=tmp_path)
        assert len(b.log.handlers) == 2
        b.close()
        a.close()

    def test_save_config_and_metadata(self, tmp_path):
        ctx = RunContext(run_id="test_meta", runs_dir=tmp_path)
        ctx.save_config({"dataset": {"path": "x.json"}})
        ctx.save_metadata({"rows": 3})
        ctx.close()
        run_dir = tmp_path / "test_meta"
        assert "x.json" in (run_dir / "config.yaml").read_text()
        meta = json.loads((run_dir / "meta.json").read_text())
        assert meta["rows"] == 3
        assert "pydantic" in meta["packages"]

    def test_save_artifact_roundtrip(self, tmp_path, rows):
        ctx = RunContext(run_id="test_art", runs_dir=tmp_path)
        path = ctx.save_artifact("rows", rows_to_frame(rows))
        ctx.close()
        df = pd.read_parquet(path)
        assert len(df) == len(rows)
        assert df["condition"].tolist() == [r.condition for r in rows]


# =====================================================================
# EVENT LOG
# =====================================================================

class TestEventLog:
    def test_trace_ok(self):
        log = EventLog()
        with trace_event(log, "CALC", "Normalize"):
            pass
        assert len(log.events) == 1
        evt = log.events[0]
        assert evt.status == "OK"
        assert evt.event_type == "CALC"
        assert evt.caller.startswith("test_integration.py:test_trace_ok")

    def test_trace_failure_propagates(self):
        log = EventLog()
        with pytest.raises(ZeroDivisionError):
            with trace_event(log, "RENDER", "Render", details="rows=3"):
                1 / 0
        evt = log.events[0]
        assert evt.status == "FAIL"
        assert evt.details.startswith("rows=3; ERROR: ZeroDivisionError")
        assert log.failures() == [evt]

    def test_unknown_event_type(self):
        with pytest.raises(ValueError):
            EventLog().record("NET", "fetch", 1.0)

    def test_sequence_numbers(self):
        log = EventLog()
        for op in ("a", "b", "c"):
            log.record("INPUT", op, 0.1)
        assert [e.seq for e in log.events] == [1, 2, 3]

    def test_flush_all(self, tmp_path):
        log = EventLog()
        log.record("LOAD", "Fetch data|file", 12.0)
        log.record("WRITE", "Write html", 3.0, status="FAIL", details="disk full")
        log.flush_all(tmp_path)
        csv_text = (tmp_path / "events.csv").read_text()
        md_text = (tmp_path / "events.md").read_text()
        assert csv_text.splitlines()[0] == "#,Time,Type,Duration,Operation,Caller,Status,Details"
        assert "Failures: 1" in md_text
        assert "Fetch data\\|file" in md_text

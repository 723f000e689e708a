#!/usr/bin/env python3
"""
Run Context — reproducibility infrastructure for the ATM Risk Browser.

Provides:
  - run_id generation (UUID4)
  - Structured JSON logging for the `riskbrowser` logger tree
  - Config snapshot saving
  - Normalized-row artifact saving
  - Run metadata recording (timestamps, versions, counts)

Usage:
    ctx = RunContext()                   # generates run_id, creates ./runs/{run_id}/
    ctx.save_config(cfg)                 # snapshot of the validated config
    ctx.save_artifact("rows", df)        # normalized rows as Parquet
    ctx.log.info("message", extra={"phase": "load"})
    ctx.save_metadata({...})             # final run metadata
"""

import json
import logging
import platform
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import pandas as pd
import yaml

RUNS_DIR = Path("runs")
LOGGER_NAME = "riskbrowser"


class _JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "func": record.funcName,
            "msg": record.getMessage(),
        }
        for key in ("paper_id", "phase", "step", "count", "run_id"):
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return json.dumps(entry, default=str)


class RunContext:
    """Manages a single generator run's metadata, artifacts, and logging."""

    def __init__(self, run_id: str | None = None, runs_dir: Path = RUNS_DIR):
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.start_time = datetime.now()
        self.run_dir = Path(runs_dir).resolve() / self.run_id
        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.log = logging.getLogger(LOGGER_NAME)
        self.log.setLevel(logging.DEBUG)
        self.log.propagate = False
        self.close()

        fh = logging.FileHandler(str(self.run_dir / "run.log"), encoding="utf-8")
        fh.setFormatter(_JSONFormatter())
        self.log.addHandler(fh)

        ch = logging.StreamHandler(sys.stdout)
        ch.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S"))
        ch.setLevel(logging.INFO)
        self.log.addHandler(ch)

        self.log.info("Run started", extra={"run_id": self.run_id})

    def save_config(self, cfg: dict) -> Path:
        """Save a snapshot of the config used for this run."""
        path = self.run_dir / "config.yaml"
        with open(path, "w") as f:
            yaml.dump(cfg, f, default_flow_style=False, sort_keys=False)
        self.log.info("Config snapshot saved", extra={"phase": "init"})
        return path

    def save_artifact(self, name: str, df: pd.DataFrame) -> Path:
        """Save an intermediate DataFrame as Parquet."""
        path = self.run_dir / f"{name}.parquet"
        df.to_parquet(str(path), index=False)
        self.log.info(f"Artifact saved: {name} ({len(df)} rows)",
                      extra={"phase": "artifact", "step": name, "count": len(df)})
        return path

    def save_metadata(self, extra: dict | None = None) -> Path:
        """Save run metadata (call at end of run)."""
        end_time = datetime.now()
        meta = {
            "run_id": self.run_id,
            "start_time": self.start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "elapsed_seconds": round((end_time - self.start_time).total_seconds(), 2),
            "python_version": sys.version,
            "platform": platform.platform(),
            "packages": _get_package_versions(),
        }
        if extra:
            meta.update(extra)
        path = self.run_dir / "meta.json"
        with open(path, "w") as f:
            json.dump(meta, f, indent=2, default=str)
        self.log.info("Run metadata saved", extra={"run_id": self.run_id})
        return path

    def close(self):
        """Detach and close this run's handlers."""
        for h in list(self.log.handlers):
            self.log.removeHandler(h)
            h.close()


def _get_package_versions() -> dict:
    """Get versions of key dependencies."""
    import importlib.metadata

    versions = {}
    for pkg in ["pandas", "numpy", "pyarrow", "pydantic", "pyyaml", "requests"]:
        try:
            versions[pkg] = importlib.metadata.version(pkg)
        except importlib.metadata.PackageNotFoundError:
            versions[pkg] = "unknown"
    return versions

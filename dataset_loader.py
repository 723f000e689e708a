#!/usr/bin/env python3
"""
Dataset Loader — one-shot fetch of the raw annotation document.

Source may be a local path or an http(s) URL. Any failure (missing file,
network error, non-success status, malformed JSON, non-object top level)
is raised as LoadFailure; the caller decides how to degrade.
"""

import json
import logging
from pathlib import Path

import requests

log = logging.getLogger("riskbrowser.loader")

CANONICAL_FILENAME = "ATM_annotations.json"


class LoadFailure(Exception):
    """The annotation document could not be fetched or parsed."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to load '{source}': {reason}")


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def _fetch_url(url: str, timeout: float) -> str:
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise LoadFailure(url, f"{type(e).__name__}: {e}") from e
    return resp.text


def _read_file(path: Path, encoding: str) -> str:
    if not path.exists():
        raise LoadFailure(str(path), "file not found")
    try:
        return path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as e:
        raise LoadFailure(str(path), f"{type(e).__name__}: {e}") from e


def load_document(source: str | Path, encoding: str = "utf-8",
                  timeout: float = 10) -> dict:
    """Fetch and parse the raw document. Returns the top-level mapping."""
    source = str(source)
    if _is_url(source):
        text = _fetch_url(source, timeout)
    else:
        text = _read_file(Path(source), encoding)

    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        raise LoadFailure(source, f"malformed JSON: {e}") from e

    if not isinstance(doc, dict):
        raise LoadFailure(
            source, f"top level must be an object, got {type(doc).__name__}")

    log.info(f"Loaded {len(doc)} paper entries from {source}",
             extra={"phase": "load", "count": len(doc)})
    return doc

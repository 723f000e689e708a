#!/usr/bin/env python3
"""
Dataset Normalizer
==================
Flattens the nested annotation document into an ordered list of
RowRecord, one per (paper, condition) pair.

Order: document key order, then Cancer.Types order within a paper.

Missing optional fields never raise; each degrades to a placeholder:

    risk text          -> "Unknown"
    recommendations    -> "No recommendations"
    evidence           -> "No evidence provided"
    authors            -> "No authors listed"

Category keys are matched exactly first, then by canonical form
(whitespace runs -> single underscore), so "Pancreatic Cancer" finds a
management entry stored under "Pancreatic_Cancer" and vice versa.
"""

import logging
import re
from typing import Optional

import pandas as pd
from pydantic import ValidationError

from schemas import ManagementRecord, PaperRecord, RowRecord

log = logging.getLogger("riskbrowser.normalizer")

UNKNOWN_RISK = "Unknown"
NO_RECOMMENDATIONS = "No recommendations"
NO_EVIDENCE = "No evidence provided"
NO_AUTHORS = "No authors listed"

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_WS_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def canonical_key(key: str) -> str:
    """'  Pancreatic  Cancer ' -> 'Pancreatic_Cancer'."""
    return _WS_RE.sub("_", str(key).strip())


def lookup_category(mapping: dict, category: str):
    """Exact key first, then canonical-form match. None when absent."""
    if category in mapping:
        return mapping[category]
    target = canonical_key(category)
    for k, v in mapping.items():
        if canonical_key(k) == target:
            return v
    return None


def extract_risk_value(risk_text: str) -> Optional[float]:
    """First decimal number in the text, e.g. '30-40%' -> 30.0, 'Unknown' -> None."""
    if not risk_text:
        return None
    m = _NUMBER_RE.search(risk_text)
    return float(m.group(0)) if m else None


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_paper(paper_id: str, paper: PaperRecord) -> list[RowRecord]:
    """Rows for a single paper. Zero rows when Cancer.Types is empty."""
    types = paper.Cancer.Types
    if not types:
        log.debug(f"{paper_id}: no Cancer.Types, contributes zero rows",
                  extra={"paper_id": paper_id})
        return []

    title = paper.Title or paper_id
    authors = ", ".join(paper.Authors) or NO_AUTHORS
    condition_evidence = "; ".join(paper.Cancer.Evidence)

    rows = []
    for cond in types:
        risk_text = lookup_category(paper.Risk.Percentages, cond) or UNKNOWN_RISK
        mgmt = lookup_category(paper.Medical_Actions_Management, cond)
        if mgmt is None:
            mgmt = ManagementRecord()

        rows.append(RowRecord(
            paper_id=paper_id,
            title=title,
            authors=authors,
            condition=cond,
            risk_text=risk_text,
            risk_value=extract_risk_value(risk_text),
            management_text="; ".join(mgmt.Recommendations) or NO_RECOMMENDATIONS,
            evidence_condition_text=condition_evidence or NO_EVIDENCE,
            evidence_management_text=("; ".join(mgmt.Evidence)
                                      or condition_evidence
                                      or NO_EVIDENCE),
        ))
    return rows


def normalize_document(raw: dict) -> list[RowRecord]:
    """Flatten the whole raw document into row records."""
    rows: list[RowRecord] = []
    skipped = 0
    for paper_id, entry in raw.items():
        paper_id = str(paper_id)
        if not isinstance(entry, dict):
            log.warning(f"{paper_id}: entry is {type(entry).__name__}, not an object; skipped",
                        extra={"paper_id": paper_id})
            skipped += 1
            continue
        try:
            paper = PaperRecord.model_validate(entry)
        except ValidationError as e:
            log.warning(f"{paper_id}: unreadable entry ({e.error_count()} errors); skipped",
                        extra={"paper_id": paper_id})
            skipped += 1
            continue
        rows.extend(normalize_paper(paper_id, paper))

    log.info(f"Normalized {len(raw)} papers into {len(rows)} rows"
             + (f" ({skipped} skipped)" if skipped else ""),
             extra={"phase": "normalize", "count": len(rows)})
    return rows


# ---------------------------------------------------------------------------
# Tabular views
# ---------------------------------------------------------------------------

def rows_to_frame(rows: list[RowRecord]) -> pd.DataFrame:
    """DataFrame with one column per RowRecord field, in row order."""
    cols = list(RowRecord.model_fields)
    return pd.DataFrame([r.model_dump() for r in rows], columns=cols)


def summarize_rows(rows: list[RowRecord]) -> dict:
    """KPI counts for the dashboard header."""
    df = rows_to_frame(rows)
    risk = pd.to_numeric(df["risk_value"], errors="coerce").dropna()
    mean_risk = round(float(risk.mean()), 1) if len(risk) else None
    max_risk = round(float(risk.max()), 1) if len(risk) else None
    return {
        "papers": int(df["paper_id"].nunique()),
        "rows": len(df),
        "conditions": int(df["condition"].nunique()),
        "rows_with_risk": int(len(risk)),
        "mean_risk": mean_risk,
        "max_risk": max_risk,
    }

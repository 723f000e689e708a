#!/usr/bin/env python3
"""
Filter/Search Engine
====================
Pure predicate application over the full normalized dataset.

    apply_filters(rows, state) -> ordered subsequence of `rows`

The returned list holds the *same* RowRecord objects as the input (never
copies, never re-derived from the raw document). Predicates AND together:

  * paper      — exact title match, bypassed for "All"
  * condition  — exact condition match, bypassed for "All"
  * search     — case-insensitive substring over every text field,
                 bypassed for an empty / whitespace-only term, otherwise
                 matched as typed (inner and outer spaces included)
"""

from schemas import ALL, ROW_TEXT_FIELDS, FilterOptions, FilterState, RowRecord

# Joins fields so a term cannot match across a field boundary.
_FIELD_SEP = "\x1f"


def search_text(row: RowRecord) -> str:
    """Lower-cased haystack for the free-text predicate."""
    return _FIELD_SEP.join(str(getattr(row, f)) for f in ROW_TEXT_FIELDS).lower()


def _matches(row: RowRecord, paper: str, condition: str, needle: str) -> bool:
    if paper != ALL and row.title != paper:
        return False
    if condition != ALL and row.condition != condition:
        return False
    if needle and needle not in search_text(row):
        return False
    return True


def apply_filters(rows: list[RowRecord], state: FilterState) -> list[RowRecord]:
    """Filtered subsequence of `rows`. Does not mutate its inputs."""
    term = state.search_term
    needle = term.lower() if term.strip() else ""
    return [r for r in rows
            if _matches(r, state.selected_paper, state.selected_condition, needle)]


def clear_filters() -> FilterState:
    """The reset state: every predicate bypassed."""
    return FilterState()


def filter_options(rows: list[RowRecord]) -> FilterOptions:
    papers = list(dict.fromkeys(r.title for r in rows))
    conditions = list(dict.fromkeys(r.condition for r in rows))
    return FilterOptions(papers=papers, conditions=conditions)

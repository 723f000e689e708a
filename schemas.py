#!/usr/bin/env python3
"""
Typed schemas for the ATM Risk Browser.

Provides Pydantic models for the raw annotation document, the flattened
row records, the filter state, the table and chart value types, and the
validated config.yaml contents.

Raw-document models are lenient: every attribute is optional
and `before` validators coerce nulls, scalars and wrong container types
into the documented shape, so one malformed paper never fails a load.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ALL = "All"


# =========================================================================
# Coercion helpers
# =========================================================================

def _as_str_list(v: Any) -> list[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return [v] if v.strip() else []
    if isinstance(v, (list, tuple)):
        return [str(x) for x in v if x is not None and str(x).strip()]
    return []


def _as_mapping(v: Any) -> dict:
    if isinstance(v, BaseModel):
        return v.model_dump()
    return v if isinstance(v, dict) else {}


# =========================================================================
# Raw annotation document
# =========================================================================

class CancerSection(BaseModel):
    Types: list[str] = []
    Evidence: list[str] = []

    model_config = ConfigDict(extra="allow")

    @field_validator("Types", mode="before")
    @classmethod
    def coerce_types(cls, v):
        # one row per entry, blank ones included
        if isinstance(v, str):
            return [v]
        if isinstance(v, (list, tuple)):
            return ["" if x is None else str(x) for x in v]
        return []

    @field_validator("Evidence", mode="before")
    @classmethod
    def coerce_list(cls, v):
        return _as_str_list(v)


class RiskSection(BaseModel):
    Percentages: dict[str, str] = {}

    model_config = ConfigDict(extra="allow")

    @field_validator("Percentages", mode="before")
    @classmethod
    def coerce_percentages(cls, v):
        return {str(k): str(val) for k, val in _as_mapping(v).items()
                if val is not None and str(val).strip()}


class ManagementRecord(BaseModel):
    Recommendations: list[str] = []
    Evidence: list[str] = []

    model_config = ConfigDict(extra="allow")

    @field_validator("Recommendations", "Evidence", mode="before")
    @classmethod
    def coerce_list(cls, v):
        return _as_str_list(v)


class PaperRecord(BaseModel):
    """One paper entry of the raw document.

    Missing sections degrade to empty models; the normalizer turns those
    into the documented placeholder strings.
    """
    Title: Optional[str] = None
    Authors: list[str] = []
    Cancer: CancerSection = CancerSection()
    Risk: RiskSection = RiskSection()
    Medical_Actions_Management: dict[str, ManagementRecord] = {}

    model_config = ConfigDict(extra="allow")

    @field_validator("Title", mode="before")
    @classmethod
    def coerce_title(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("Authors", mode="before")
    @classmethod
    def coerce_authors(cls, v):
        return _as_str_list(v)

    @field_validator("Cancer", "Risk", mode="before")
    @classmethod
    def coerce_section(cls, v):
        return _as_mapping(v)

    @field_validator("Medical_Actions_Management", mode="before")
    @classmethod
    def coerce_management(cls, v):
        return {str(k): _as_mapping(rec) for k, rec in _as_mapping(v).items()}


# =========================================================================
# Derived records
# =========================================================================

class RowRecord(BaseModel):
    """One (paper, condition) observation. Immutable once created."""
    paper_id: str
    title: str
    authors: str
    condition: str
    risk_text: str
    risk_value: Optional[float] = None
    management_text: str
    evidence_condition_text: str
    evidence_management_text: str

    model_config = ConfigDict(frozen=True)


# Text fields a table column may display.
ROW_TEXT_FIELDS = (
    "paper_id", "title", "authors", "condition", "risk_text",
    "management_text", "evidence_condition_text", "evidence_management_text",
)

NO_RESULTS_TEXT = "No matching results"


class FilterOptions(BaseModel):
    """Distinct selector values, in order of first appearance."""
    papers: list[str] = []
    conditions: list[str] = []

    model_config = ConfigDict(frozen=True)


class TableRow(BaseModel):
    """One display row. `cells` maps column key -> text, in column order."""
    cells: dict[str, str]
    is_placeholder: bool = False
    colspan: int = 1

    model_config = ConfigDict(frozen=True)

    @classmethod
    def placeholder(cls, colspan: int) -> "TableRow":
        return cls(cells={"": NO_RESULTS_TEXT}, is_placeholder=True,
                   colspan=max(colspan, 1))

    @property
    def text(self) -> str:
        return " | ".join(self.cells.values())


class ChartSeries(BaseModel):
    """Parallel bar labels and heights."""
    labels: list[str] = []
    values: list[float] = []

    model_config = ConfigDict(frozen=True)


class FilterState(BaseModel):
    selected_paper: str = ALL
    selected_condition: str = ALL
    search_term: str = ""

    @field_validator("selected_paper", "selected_condition", mode="before")
    @classmethod
    def blank_means_all(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return ALL
        return v

    @field_validator("search_term", mode="before")
    @classmethod
    def none_means_empty(cls, v):
        return "" if v is None else v

    def is_default(self) -> bool:
        return (self.selected_paper == ALL
                and self.selected_condition == ALL
                and not self.search_term.strip())


# =========================================================================
# RunConfig — top-level config schema
# =========================================================================

class ColumnConfig(BaseModel):
    key: str
    label: str
    visible: bool = True

    @field_validator("key")
    @classmethod
    def key_is_row_field(cls, v: str) -> str:
        if v not in ROW_TEXT_FIELDS:
            raise ValueError(
                f"Unknown column key '{v}' (expected one of {', '.join(ROW_TEXT_FIELDS)})"
            )
        return v


DEFAULT_COLUMNS = [
    ColumnConfig(key="title", label="Title"),
    ColumnConfig(key="condition", label="Cancer Type"),
    ColumnConfig(key="risk_text", label="Risk"),
    ColumnConfig(key="management_text", label="Management"),
    ColumnConfig(key="evidence_condition_text", label="Evidence (Cancer)"),
    ColumnConfig(key="evidence_management_text", label="Evidence (Management)"),
    ColumnConfig(key="authors", label="Authors"),
]


class RunConfig(BaseModel):
    """Schema for validated config.yaml contents."""

    class DatasetConfig(BaseModel):
        path: str = "data/ATM_annotations.json"
        encoding: str = "utf-8"
        timeout_seconds: float = Field(10, gt=0)

    class ChartConfig(BaseModel):
        label: str = "Risk Percentage"
        background_color: str = "rgba(75, 192, 192, 0.2)"
        border_color: str = "rgba(75, 192, 192, 1)"
        border_width: int = Field(1, ge=0)
        y_axis_title: str = "Risk Percentage"

    class OutputConfig(BaseModel):
        html_path: str = "output/dashboard.html"
        title: str = "ATM Cancer Risk Browser"
        save_artifacts: bool = True

    dataset: DatasetConfig = DatasetConfig()
    columns: list[ColumnConfig] = DEFAULT_COLUMNS
    chart: ChartConfig = ChartConfig()
    output: OutputConfig = OutputConfig()

    @model_validator(mode="after")
    def columns_non_empty_and_unique(self) -> "RunConfig":
        if not self.columns:
            raise ValueError("At least one table column must be configured")
        keys = [c.key for c in self.columns]
        dupes = sorted({k for k in keys if keys.count(k) > 1})
        if dupes:
            raise ValueError(f"Duplicate column keys: {dupes}")
        return self

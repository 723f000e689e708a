"""Shared fixtures for ATM Risk Browser tests."""

import json
import logging
import sys
from pathlib import Path

import pytest
import yaml


def pytest_addoption(parser):
    parser.addoption("--regen", action="store_true", default=False,
                     help="Regenerate golden file")

# Ensure project root is importable
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from schemas import RunConfig  # noqa: E402
from normalizer import normalize_document  # noqa: E402

FIXTURES = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture(autouse=True)
def _reset_riskbrowser_logger():
    """RunContext detaches the logger tree from root; restore it for caplog."""
    yield
    logger = logging.getLogger("riskbrowser")
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def cfg():
    """The production config.yaml, validated."""
    with open(ROOT / "config.yaml") as f:
        return RunConfig(**yaml.safe_load(f))


@pytest.fixture
def sample_path():
    return FIXTURES / "sample_annotations.json"


@pytest.fixture
def raw_doc(sample_path):
    """Four-paper annotation document (one without Cancer.Types)."""
    with open(sample_path) as f:
        return json.load(f)


@pytest.fixture
def rows(raw_doc):
    return normalize_document(raw_doc)


@pytest.fixture
def example_doc():
    return {
        "PaperA": {
            "Title": "T1",
            "Cancer": {"Types": ["Breast"], "Evidence": ["E1"]},
            "Risk": {"Percentages": {"Breast": "45%"}},
            "Medical_Actions_Management": {
                "Breast": {"Recommendations": ["Screen yearly"], "Evidence": ["M1"]},
            },
            "Authors": ["Smith"],
        }
    }

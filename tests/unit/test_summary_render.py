from __future__ import annotations

import re

from delivery_import.models.import_result import ImportBatchResult, PreviewResult
from delivery_import.services.summary import render_commit_summary, render_preview_summary
from delivery_import.services.validator import validate

COMMIT_PATTERN = re.compile(
    r"^SUMMARY phase=commit submitted=(\d+) created=(\d+) updated=(\d+) failed=(\d+) elapsed_sec=(\d+(?:\.\d+)?)$"
)


def test_render_preview_summary(raw_row):
    rows = [validate(raw_row(), 2), validate(raw_row(Stage="X"), 3), validate(raw_row(), 4).as_duplicate_of("p1")]
    line = render_preview_summary(PreviewResult(rows=rows, resolved_email_to_id={}))
    assert line == "SUMMARY phase=preview rows=3 valid=2 invalid=1 duplicate=1"


def test_render_commit_summary_matches_pattern():
    line = render_commit_summary(ImportBatchResult(created=3, updated=2, failed=1), 0.1234)
    m = COMMIT_PATTERN.match(line)
    assert m is not None
    assert m.groups() == ("6", "3", "2", "1", "0.123")


def test_elapsed_formatting():
    assert render_commit_summary(ImportBatchResult(), 0).endswith("elapsed_sec=0")
    assert render_commit_summary(ImportBatchResult(), 2.0).endswith("elapsed_sec=2")
    assert render_commit_summary(ImportBatchResult(), 0.0005).endswith("elapsed_sec=0.0005")
    assert "e-" not in render_commit_summary(ImportBatchResult(), 0.0000012)

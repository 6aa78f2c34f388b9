from __future__ import annotations

import time

import pytest

from delivery_import.services.orchestrator import commit, preview

"""Performance smoke test: preview + commit of a generated batch in the in-memory store."""

ROWS = 1_000


@pytest.mark.perf
def test_preview_commit_throughput(make_csv, raw_row, store, actor):
    rows = [
        raw_row(**{"Account Name": f"Account {i % 50:03d}", "Use Case Summary": f"Use case {i}"})
        for i in range(ROWS)
    ]
    content = make_csv(rows)

    start = time.perf_counter()
    result = preview(content, store)
    batch = commit(result.to_commit_request(), store, actor)
    elapsed = time.perf_counter() - start

    assert result.valid_rows == ROWS
    assert batch.created == ROWS
    # 緩い上限 (CI でも安定する程度)
    assert elapsed < 60, f"preview+commit too slow: {elapsed:.2f}s"
    assert ROWS / elapsed > 10

from __future__ import annotations

from ..models.import_result import ImportBatchResult, PreviewResult

"""SUMMARY line rendering for preview and commit runs.

Formats:
    SUMMARY phase=preview rows={total} valid={valid} invalid={invalid} duplicate={dup}
    SUMMARY phase=commit submitted={n} created={c} updated={u} failed={f} elapsed_sec={s}
"""


def _format_seconds(seconds: float) -> str:
    # 指数表記を避ける
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_preview_summary(result: PreviewResult) -> str:
    """Render the SUMMARY line for a preview.

    >>> render_preview_summary(PreviewResult(rows=[], resolved_email_to_id={}))
    'SUMMARY phase=preview rows=0 valid=0 invalid=0 duplicate=0'
    """
    return (
        f"SUMMARY phase=preview rows={result.total_rows} "
        f"valid={result.valid_rows} "
        f"invalid={result.invalid_rows} "
        f"duplicate={result.duplicate_rows}"
    )


def render_commit_summary(result: ImportBatchResult, elapsed_seconds: float = 0.0) -> str:
    """Render the SUMMARY line for a commit.

    >>> render_commit_summary(ImportBatchResult(created=2, updated=1, failed=1), 1.5)
    'SUMMARY phase=commit submitted=4 created=2 updated=1 failed=1 elapsed_sec=1.5'
    """
    return (
        f"SUMMARY phase=commit submitted={result.submitted} "
        f"created={result.created} "
        f"updated={result.updated} "
        f"failed={result.failed} "
        f"elapsed_sec={_format_seconds(elapsed_seconds)}"
    )

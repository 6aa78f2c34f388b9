from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from ..models.parsed_row import ParsedRow
from ..models.project_record import StoredProject

"""Duplicate matching on the natural key (account name + use case summary).

The index is built once per import from a snapshot of existing projects and
queried per row. Rows of the same upload are matched against that pre-batch
snapshot only, so two rows sharing a key both target the same existing record
(applied in row order at commit, last one wins).
"""

logger = logging.getLogger(__name__)

__all__ = [
    "KEY_SEPARATOR",
    "compute_key",
    "build_index",
    "match_rows",
]

KEY_SEPARATOR = "::"


def compute_key(account_name: str, use_case_summary: str) -> str:
    """Case- and surrounding-whitespace-insensitive natural key."""
    return f"{account_name.strip().lower()}{KEY_SEPARATOR}{use_case_summary.strip().lower()}"


def build_index(projects: Iterable[StoredProject]) -> dict[str, str]:
    """key -> existing project id."""
    index: dict[str, str] = {}
    for project in projects:
        index[compute_key(project.account_name, project.payload.use_case_summary)] = project.id
    return index


def match_rows(rows: Sequence[ParsedRow], index: dict[str, str]) -> list[ParsedRow]:
    """Flag valid rows whose key exists in the index as duplicates.

    Invalid rows are returned unchanged (never classified).
    """
    matched: list[ParsedRow] = []
    seen: dict[str, list[int]] = {}
    for row in rows:
        if not row.is_valid or not row.fields.account_name or not row.fields.use_case_summary:
            matched.append(row)
            continue
        key = compute_key(row.fields.account_name, row.fields.use_case_summary)
        earlier = seen.setdefault(key, [])
        if earlier:
            # 同一バッチ内衝突: 重複排除せず行順で後勝ち
            logger.warning(
                "row %d shares duplicate key %r with rows %s; all are applied in row order",
                row.row_number,
                key,
                ", ".join(str(n) for n in earlier),
            )
        earlier.append(row.row_number)
        record_id = index.get(key)
        matched.append(row.as_duplicate_of(record_id) if record_id else row)
    return matched

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .enums import Outcome
from .parsed_row import ParsedRow

"""Preview / commit result models.

None of these are persisted; they are request/response objects built fresh
for each preview or commit call.
"""

__all__ = [
    "RowOutcome",
    "RowFailure",
    "ImportBatchResult",
    "PreviewResult",
    "CommitRequest",
]


@dataclass(frozen=True)
class RowOutcome:
    """Tagged result of committing one row."""
    row_number: int
    outcome: Outcome
    error_message: str | None = None
    record_id: str | None = None  # project id written (None when failed)

    @staticmethod
    def created(row_number: int, record_id: str) -> RowOutcome:
        return RowOutcome(row_number, Outcome.CREATED, record_id=record_id)

    @staticmethod
    def updated(row_number: int, record_id: str) -> RowOutcome:
        return RowOutcome(row_number, Outcome.UPDATED, record_id=record_id)

    @staticmethod
    def failed(row_number: int, error_message: str) -> RowOutcome:
        return RowOutcome(row_number, Outcome.FAILED, error_message=error_message)


@dataclass(frozen=True)
class RowFailure:
    row_number: int
    error: str


@dataclass
class ImportBatchResult:
    """Aggregate of one commit call.

    Invariant: created + updated + failed == len(outcomes) == rows submitted.
    """
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[RowFailure] = field(default_factory=list)
    outcomes: list[RowOutcome] = field(default_factory=list)

    @property
    def submitted(self) -> int:
        return self.created + self.updated + self.failed

    def add(self, outcome: RowOutcome) -> None:
        """Accumulate one row outcome. Earlier outcomes are never revisited."""
        self.outcomes.append(outcome)
        if outcome.outcome is Outcome.CREATED:
            self.created += 1
        elif outcome.outcome is Outcome.UPDATED:
            self.updated += 1
        else:
            self.failed += 1
            self.errors.append(RowFailure(outcome.row_number, outcome.error_message or "Unknown error"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "errors": [{"rowNumber": e.row_number, "error": e.error} for e in self.errors],
        }


@dataclass(frozen=True)
class PreviewResult:
    """Full per-row breakdown returned by preview (no project data written)."""
    rows: list[ParsedRow]
    resolved_email_to_id: dict[str, str]

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    @property
    def valid_rows(self) -> int:
        return sum(1 for r in self.rows if r.is_valid)

    @property
    def invalid_rows(self) -> int:
        return self.total_rows - self.valid_rows

    @property
    def duplicate_rows(self) -> int:
        return sum(1 for r in self.rows if r.is_valid and r.is_duplicate)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": [r.to_dict() for r in self.rows],
            "totalRows": self.total_rows,
            "validRows": self.valid_rows,
            "invalidRows": self.invalid_rows,
            "duplicateRows": self.duplicate_rows,
            "resolvedEmailToId": dict(self.resolved_email_to_id),
        }

    def to_commit_request(
        self,
        row_numbers: set[int] | None = None,
        include_duplicates: bool = True,
    ) -> CommitRequest:
        """Client-side selection: keep valid rows (optionally a subset) for commit."""
        selected = [
            r for r in self.rows
            if r.is_valid
            and (row_numbers is None or r.row_number in row_numbers)
            and (include_duplicates or not r.is_duplicate)
        ]
        return CommitRequest(rows=selected, resolved_email_to_id=dict(self.resolved_email_to_id))


@dataclass(frozen=True)
class CommitRequest:
    rows: list[ParsedRow]
    resolved_email_to_id: dict[str, str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": [r.to_dict() for r in self.rows],
            "resolvedEmailToId": dict(self.resolved_email_to_id),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> CommitRequest:
        """Build from a wire dict (shape is expected to be schema-checked already)."""
        return CommitRequest(
            rows=[ParsedRow.from_dict(r) for r in data.get("rows") or []],
            resolved_email_to_id={
                str(k).lower(): str(v) for k, v in (data.get("resolvedEmailToId") or {}).items()
            },
        )

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any

from .enums import Channel, Priority, Product, Stage, Status

"""ParsedRow model: the unit of work through the whole import pipeline.

A ParsedRow is produced by the validator, enriched (via ``dataclasses.replace``)
by the directory resolver and duplicate matcher during preview, and consumed
read-only by commit. It is never mutated in place.

Wire form (preview response / commit request) uses camelCase keys:
    {"rowNumber", "fields", "validationErrors", "isValid", "isDuplicate",
     "matchedRecordId"}
"""

__all__ = [
    "ACCOUNT_NAME",
    "ACCOUNT_MANAGER_EMAIL",
    "STAGE",
    "PRODUCT",
    "CHANNELS",
    "CUSTOMER_ENGINEER_EMAIL",
    "SPOC",
    "PRIORITY",
    "USE_CASE_SUMMARY",
    "TARGET_DATE",
    "STATUS",
    "JIRA_TICKET",
    "CSV_HEADERS",
    "REQUIRED_HEADERS",
    "OPTIONAL_HEADERS",
    "FIRST_DATA_ROW",
    "FieldError",
    "ProjectFields",
    "ParsedRow",
]

# Canonical column labels (also used as the `field` tag of FieldError)
ACCOUNT_NAME = "Account Name"
ACCOUNT_MANAGER_EMAIL = "Account Manager Email"
STAGE = "Stage"
PRODUCT = "Product"
CHANNELS = "Channels"
CUSTOMER_ENGINEER_EMAIL = "Customer Engineer Email"
SPOC = "SPOC"
PRIORITY = "Priority"
USE_CASE_SUMMARY = "Use Case Summary"
TARGET_DATE = "Target Date"
STATUS = "Status"
JIRA_TICKET = "Jira Ticket"

# 宣言順 = エラー出力順
CSV_HEADERS: tuple[str, ...] = (
    ACCOUNT_NAME,
    ACCOUNT_MANAGER_EMAIL,
    STAGE,
    PRODUCT,
    CHANNELS,
    CUSTOMER_ENGINEER_EMAIL,
    SPOC,
    PRIORITY,
    USE_CASE_SUMMARY,
    TARGET_DATE,
    STATUS,
    JIRA_TICKET,
)
OPTIONAL_HEADERS: frozenset[str] = frozenset({CHANNELS, CUSTOMER_ENGINEER_EMAIL, JIRA_TICKET})
REQUIRED_HEADERS: tuple[str, ...] = tuple(h for h in CSV_HEADERS if h not in OPTIONAL_HEADERS)

# 1-based row number of the first data line (line 1 is the header)
FIRST_DATA_ROW = 2


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation problem."""
    field: str  # canonical column label
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> FieldError:
        return FieldError(field=str(data["field"]), message=str(data["message"]))


@dataclass(frozen=True)
class ProjectFields:
    """Normalized, typed values of one import row.

    Values that failed validation are left as None (or empty tuples for the
    set-valued product/channels), so a partially valid row can still be shown
    back to the caller.
    """
    account_name: str | None = None
    account_manager_email: str | None = None  # lower-cased
    stage: Stage | None = None
    product: tuple[Product, ...] = ()
    channels: tuple[Channel, ...] = ()
    customer_engineer_email: str | None = None  # lower-cased, optional
    spoc: str | None = None
    priority: Priority | None = None
    use_case_summary: str | None = None
    target_date: date | None = None
    status: Status | None = None
    jira_ticket: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "accountName": self.account_name,
            "accountManagerEmail": self.account_manager_email,
            "stage": self.stage.value if self.stage else None,
            "product": [p.value for p in self.product],
            "channels": [c.value for c in self.channels],
            "customerEngineerEmail": self.customer_engineer_email,
            "spoc": self.spoc,
            "priority": self.priority.value if self.priority else None,
            "useCaseSummary": self.use_case_summary,
            "targetDate": self.target_date.isoformat() if self.target_date else None,
            "status": self.status.value if self.status else None,
            "jiraTicket": self.jira_ticket,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ProjectFields:
        """Inverse of to_dict. Raises ValueError on unknown enum values or bad dates."""
        def _opt(key: str) -> Any:
            value = data.get(key)
            return value if value not in ("", None) else None

        stage = _opt("stage")
        priority = _opt("priority")
        status = _opt("status")
        target = _opt("targetDate")
        return ProjectFields(
            account_name=_opt("accountName"),
            account_manager_email=_opt("accountManagerEmail"),
            stage=Stage(stage) if stage else None,
            product=tuple(Product(p) for p in data.get("product") or []),
            channels=tuple(Channel(c) for c in data.get("channels") or []),
            customer_engineer_email=_opt("customerEngineerEmail"),
            spoc=_opt("spoc"),
            priority=Priority(priority) if priority else None,
            use_case_summary=_opt("useCaseSummary"),
            target_date=date.fromisoformat(target) if target else None,
            status=Status(status) if status else None,
            jira_ticket=_opt("jiraTicket"),
        )


@dataclass(frozen=True)
class ParsedRow:
    """One validated (and, after preview, resolved + matched) import row."""
    row_number: int  # 1-based source line, header offset (first data row = 2)
    fields: ProjectFields
    validation_errors: tuple[FieldError, ...] = field(default_factory=tuple)
    is_duplicate: bool = False
    matched_record_id: str | None = None

    @property
    def is_valid(self) -> bool:
        # directory misses are folded into validation_errors by the resolver
        return not self.validation_errors

    def with_errors(self, *errors: FieldError) -> ParsedRow:
        """Return a copy with extra errors appended (original order kept)."""
        return replace(self, validation_errors=self.validation_errors + tuple(errors))

    def as_duplicate_of(self, record_id: str) -> ParsedRow:
        return replace(self, is_duplicate=True, matched_record_id=record_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rowNumber": self.row_number,
            "fields": self.fields.to_dict(),
            "validationErrors": [e.to_dict() for e in self.validation_errors],
            "isValid": self.is_valid,
            "isDuplicate": self.is_duplicate,
            "matchedRecordId": self.matched_record_id,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ParsedRow:
        """Rebuild a row round-tripped by the client.

        ``isValid`` is derived and therefore ignored on input; it is recomputed
        from ``validationErrors``.
        """
        return ParsedRow(
            row_number=int(data["rowNumber"]),
            fields=ProjectFields.from_dict(data.get("fields") or {}),
            validation_errors=tuple(
                FieldError.from_dict(e) for e in data.get("validationErrors") or []
            ),
            is_duplicate=bool(data.get("isDuplicate", False)),
            matched_record_id=data.get("matchedRecordId"),
        )

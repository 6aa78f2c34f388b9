from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from .enums import AuditAction

"""AuditEntry model (append-only change record) and the Actor that caused it."""

__all__ = [
    "Actor",
    "AuditEntry",
    "BULK_IMPORT_FIELD",
]

# field_name used for bulk-import entries (interactive edits log the real field label)
BULK_IMPORT_FIELD = "CSV Import"


@dataclass(frozen=True)
class Actor:
    """Who triggered a write (user id + display label)."""
    id: str
    label: str


@dataclass(frozen=True)
class AuditEntry:
    """Immutable change record. Never updated or deleted once written.

    Attributes:
        subject_record_id: id of the project the change applies to
        actor_id / actor_label: who made the change
        action: CREATE / UPDATE / DELETE
        field_name, old_value, new_value: optional change detail
        timestamp: UTC time the entry was created
    """
    subject_record_id: str
    actor_id: str
    actor_label: str
    action: AuditAction
    field_name: str | None
    old_value: str | None
    new_value: str | None
    timestamp: datetime

    @staticmethod
    def create(
        subject_record_id: str,
        actor: Actor,
        action: AuditAction,
        field_name: str | None = None,
        old_value: str | None = None,
        new_value: str | None = None,
    ) -> AuditEntry:
        """Create a new AuditEntry stamped with the current UTC time."""
        return AuditEntry(
            subject_record_id=subject_record_id,
            actor_id=actor.id,
            actor_label=actor.label,
            action=action,
            field_name=field_name,
            old_value=old_value,
            new_value=new_value,
            timestamp=datetime.now(UTC),
        )

    @staticmethod
    def bulk_import(subject_record_id: str, actor: Actor, action: AuditAction) -> AuditEntry:
        """Entry noting that a bulk import touched the record (no per-field diff)."""
        note = "Created via CSV import" if action is AuditAction.CREATE else "Bulk updated via CSV import"
        return AuditEntry.create(
            subject_record_id,
            actor,
            action,
            field_name=BULK_IMPORT_FIELD,
            old_value="",
            new_value=note,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "subjectRecordId": self.subject_record_id,
            "actorId": self.actor_id,
            "actorLabel": self.actor_label,
            "action": self.action.value,
            "fieldName": self.field_name,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> AuditEntry:
        return AuditEntry(
            subject_record_id=data["subjectRecordId"],
            actor_id=data["actorId"],
            actor_label=data["actorLabel"],
            action=AuditAction(data["action"]),
            field_name=data.get("fieldName"),
            old_value=data.get("oldValue"),
            new_value=data.get("newValue"),
            timestamp=datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00")),
        )

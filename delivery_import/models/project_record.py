from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from typing import Any

from .enums import Channel, Priority, Product, Stage, Status

"""Persisted project shapes: the write payload and the read-back record."""

__all__ = [
    "ProjectPayload",
    "StoredProject",
]


@dataclass(frozen=True)
class ProjectPayload:
    """Column values written by insert_project / update_project.

    Foreign references are already resolved to internal ids.
    """
    account_name_id: str
    account_manager_id: str
    stage: Stage
    product: tuple[Product, ...]
    channels: tuple[Channel, ...]
    customer_engineer_id: str | None
    spoc: str
    priority: Priority
    use_case_summary: str
    target_date: date
    status: Status
    jira_ticket: str | None = None

    def to_columns(self) -> dict[str, Any]:
        """Flatten to DB column -> value (product/channels stored as JSON text)."""
        return {
            "account_name_id": self.account_name_id,
            "account_manager_id": self.account_manager_id,
            "stage": self.stage.value,
            "product": json.dumps([p.value for p in self.product]),
            "channels": json.dumps([c.value for c in self.channels]) if self.channels else None,
            "customer_engineer_id": self.customer_engineer_id,
            "spoc": self.spoc,
            "priority": self.priority.value,
            "use_case_summary": self.use_case_summary,
            "target_date": self.target_date,
            "status": self.status.value,
            "jira_ticket": self.jira_ticket,
        }

    @staticmethod
    def from_columns(columns: dict[str, Any]) -> ProjectPayload:
        target = columns["target_date"]
        if isinstance(target, str):
            target = date.fromisoformat(target)
        return ProjectPayload(
            account_name_id=columns["account_name_id"],
            account_manager_id=columns["account_manager_id"],
            stage=Stage(columns["stage"]),
            product=tuple(Product(p) for p in json.loads(columns["product"] or "[]")),
            channels=tuple(Channel(c) for c in json.loads(columns["channels"] or "[]")),
            customer_engineer_id=columns.get("customer_engineer_id"),
            spoc=columns["spoc"],
            priority=Priority(columns["priority"]),
            use_case_summary=columns["use_case_summary"],
            target_date=target,
            status=Status(columns["status"]),
            jira_ticket=columns.get("jira_ticket"),
        )


@dataclass(frozen=True)
class StoredProject:
    """A project as read back from the store, with display references joined in."""
    id: str
    account_name: str
    account_manager_email: str
    customer_engineer_email: str | None
    payload: ProjectPayload

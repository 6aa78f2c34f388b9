from __future__ import annotations

from collections.abc import Iterable

import pandas as pd

from ..models.audit_entry import AuditEntry
from ..models.parsed_row import (
    ACCOUNT_MANAGER_EMAIL,
    ACCOUNT_NAME,
    CHANNELS,
    CSV_HEADERS,
    CUSTOMER_ENGINEER_EMAIL,
    JIRA_TICKET,
    PRIORITY,
    PRODUCT,
    SPOC,
    STAGE,
    STATUS,
    TARGET_DATE,
    USE_CASE_SUMMARY,
)
from ..models.project_record import StoredProject

"""CSV exports.

Projects are written with the canonical import headers so an export can be fed
straight back into preview (every row then reconciles as a duplicate/update).
"""

__all__ = [
    "AUDIT_CSV_HEADERS",
    "DELETED_PROJECT_LABEL",
    "export_projects_csv",
    "export_audit_csv",
]

AUDIT_CSV_HEADERS: tuple[str, ...] = (
    "Timestamp",
    "User",
    "Project",
    "Action",
    "Field Changed",
    "Old Value",
    "New Value",
)
DELETED_PROJECT_LABEL = "Deleted Project"
AUDIT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _project_record(project: StoredProject) -> dict[str, str]:
    p = project.payload
    return {
        ACCOUNT_NAME: project.account_name,
        ACCOUNT_MANAGER_EMAIL: project.account_manager_email,
        STAGE: p.stage.value,
        PRODUCT: ",".join(x.value for x in p.product),
        CHANNELS: ",".join(x.value for x in p.channels),
        CUSTOMER_ENGINEER_EMAIL: project.customer_engineer_email or "",
        SPOC: p.spoc,
        PRIORITY: p.priority.value,
        USE_CASE_SUMMARY: p.use_case_summary,
        TARGET_DATE: p.target_date.isoformat(),
        STATUS: p.status.value,
        JIRA_TICKET: p.jira_ticket or "",
    }


def export_projects_csv(projects: Iterable[StoredProject]) -> str:
    df = pd.DataFrame([_project_record(p) for p in projects], columns=list(CSV_HEADERS))
    return df.to_csv(index=False, lineterminator="\n")


def export_audit_csv(entries: Iterable[AuditEntry], projects: Iterable[StoredProject] = ()) -> str:
    """Render audit entries as CSV.

    The Project column shows the account name of the subject project; entries
    whose project no longer exists are labelled "Deleted Project".
    """
    names = {p.id: p.account_name for p in projects}
    records = [
        {
            "Timestamp": e.timestamp.strftime(AUDIT_TIMESTAMP_FORMAT),
            "User": e.actor_label,
            "Project": names.get(e.subject_record_id, DELETED_PROJECT_LABEL),
            "Action": e.action.value,
            "Field Changed": e.field_name or "",
            "Old Value": e.old_value or "",
            "New Value": e.new_value or "",
        }
        for e in entries
    ]
    df = pd.DataFrame(records, columns=list(AUDIT_CSV_HEADERS))
    return df.to_csv(index=False, lineterminator="\n")

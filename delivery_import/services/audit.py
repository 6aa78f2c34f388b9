from __future__ import annotations

import logging

from ..db.project_store import ProjectStore
from ..logging.error_log import ErrorLogBuffer
from ..models.audit_entry import AuditEntry
from ..models.error_record import ErrorRecord

"""Audit recorder: append-only, best-effort change log.

record() runs after the project write it describes has been committed, in its
own transaction, and never raises: a failed audit write is logged (and
buffered to the JSON Lines error log when one is attached) but does not turn
a successful row into a failed one.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "AuditRecorder",
]


class AuditRecorder:
    def __init__(
        self,
        store: ProjectStore,
        error_log: ErrorLogBuffer | None = None,
        source_name: str = "<commit-request>",
    ) -> None:
        self.store = store
        self.error_log = error_log
        self.source_name = source_name
        self.written = 0
        self.failed = 0

    def record(self, entry: AuditEntry, row_number: int = -1) -> bool:
        """Append one entry. Returns False (never raises) when the write failed."""
        try:
            with self.store.transaction():
                self.store.append_audit_entry(entry)
        except Exception as e:
            self.failed += 1
            logger.warning(
                "audit write failed project=%s action=%s row=%d: %s",
                entry.subject_record_id,
                entry.action.value,
                row_number,
                e,
            )
            if self.error_log is not None:
                self.error_log.append(
                    ErrorRecord.create(
                        file=self.source_name,
                        row=row_number,
                        error_type="AUDIT_WRITE_ERROR",
                        message=str(e),
                    )
                )
            return False
        self.written += 1
        return True

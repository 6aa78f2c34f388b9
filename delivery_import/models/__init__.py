"""Domain models for the delivery project CSV importer.

This package contains the value types that flow through the import pipeline:
raw rows are validated into ParsedRow, preview returns PreviewResult, commit
consumes a CommitRequest and returns ImportBatchResult.
"""

from .audit_entry import Actor, AuditEntry
from .config_models import CsvConfig, DatabaseConfig, ImportConfig, MockConfig, MockUser
from .enums import AuditAction, Channel, Outcome, Priority, Product, Stage, Status
from .error_record import ErrorRecord
from .import_result import CommitRequest, ImportBatchResult, PreviewResult, RowFailure, RowOutcome
from .parsed_row import FieldError, ParsedRow, ProjectFields
from .project_record import ProjectPayload, StoredProject

__all__ = [
    # Configuration models
    "CsvConfig",
    "DatabaseConfig",
    "ImportConfig",
    "MockConfig",
    "MockUser",
    # Enums
    "AuditAction",
    "Channel",
    "Outcome",
    "Priority",
    "Product",
    "Stage",
    "Status",
    # Pipeline models
    "FieldError",
    "ProjectFields",
    "ParsedRow",
    "RowOutcome",
    "RowFailure",
    "ImportBatchResult",
    "PreviewResult",
    "CommitRequest",
    # Persistence models
    "Actor",
    "AuditEntry",
    "ErrorRecord",
    "ProjectPayload",
    "StoredProject",
]

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import jsonschema
from jsonschema.exceptions import ValidationError

from ..config.loader import load_contract
from ..db.project_store import ProjectStore, StoreError
from ..logging.error_log import ErrorLogBuffer
from ..models.audit_entry import Actor, AuditEntry
from ..models.config_models import CsvConfig
from ..models.enums import AuditAction, Outcome
from ..models.error_record import ErrorRecord
from ..models.import_result import CommitRequest, ImportBatchResult, PreviewResult, RowOutcome
from ..models.parsed_row import FieldError, ParsedRow
from ..models.project_record import ProjectPayload
from ..tabular.reader import ImportFileError, read_csv_rows
from .audit import AuditRecorder
from .matcher import build_index, match_rows
from .progress import RowProgressTracker
from .resolver import resolve_account_names, resolve_users
from .validator import validate

"""Import orchestration: two-phase preview / commit protocol.

    UPLOADED -> PARSED -> VALIDATED -> MATCHED        preview (no project writes)
    MATCHED  -> client review + selection of rows
    CONFIRMED -> COMMITTING -> COMMITTED              commit (mutating)

Nothing is kept between the phases: the client round-trips the preview rows
and the resolved email map back in the commit request.

Commit processes rows sequentially; each row is an independent unit of work
whose failure is captured as a FAILED RowOutcome and never stops the rows
after it. There is no enclosing batch transaction, so a partially committed
batch is an expected result.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "CommitRequestError",
    "ResolutionError",
    "preview",
    "preview_file",
    "parse_commit_request",
    "commit",
]

COMMIT_REQUEST_SCHEMA = "commit_request_schema.json"
ROW_FIELD = "Row"  # field label for errors about the row as a whole


class CommitRequestError(Exception):
    """Raised when a commit request body is malformed (batch-level)."""


class ResolutionError(Exception):
    """Raised at commit time when a referenced user is missing from the resolved map."""


def preview(
    content: bytes,
    store: ProjectStore,
    *,
    csv_config: CsvConfig | None = None,
) -> PreviewResult:
    """Validate, resolve and match an upload without writing project data.

    The only write is get-or-create of account names referenced by valid rows.

    Raises:
        ImportFileError: the upload itself is unusable (empty, bad encoding,
            malformed, missing columns); no rows are produced.
    """
    cfg = csv_config or CsvConfig()
    data = read_csv_rows(content, delimiter=cfg.delimiter, encoding=cfg.encoding)

    rows: list[ParsedRow] = []
    for row_number, raw in data.numbered():
        row = validate(raw, row_number)
        field_count_error = data.field_count_error(row_number)
        if field_count_error:
            row = row.with_errors(FieldError(ROW_FIELD, field_count_error))
        rows.append(row)
    rows, email_to_id = resolve_users(rows, store)
    resolve_account_names(rows, store)

    # 既存レコードのスナップショットから索引を 1 回だけ構築
    index = build_index(store.list_projects())
    rows = match_rows(rows, index)

    result = PreviewResult(rows=rows, resolved_email_to_id=email_to_id)
    logger.info(
        "preview rows=%d valid=%d invalid=%d duplicate=%d",
        result.total_rows,
        result.valid_rows,
        result.invalid_rows,
        result.duplicate_rows,
    )
    return result


def preview_file(path: Path, store: ProjectStore, *, csv_config: CsvConfig | None = None) -> PreviewResult:
    """preview() over a file on disk."""
    try:
        content = path.read_bytes()
    except OSError as e:
        raise ImportFileError(f"cannot read {path}: {e}") from e
    return preview(content, store, csv_config=csv_config)


def parse_commit_request(data: Any) -> CommitRequest:
    """Check a wire commit request against its JSON schema and build the model.

    Raises:
        CommitRequestError: on any shape / value problem, before any row is touched.
    """
    try:
        jsonschema.validate(data, load_contract(COMMIT_REQUEST_SCHEMA))
    except ValidationError as e:
        raise CommitRequestError(f"invalid commit request: {e.message}") from e
    try:
        return CommitRequest.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise CommitRequestError(f"invalid commit request: {e}") from e


def _build_payload(row: ParsedRow, email_to_id: dict[str, str], account_name_id: str) -> ProjectPayload:
    f = row.fields
    if (
        f.account_manager_email is None
        or f.stage is None
        or not f.product
        or f.spoc is None
        or f.priority is None
        or f.use_case_summary is None
        or f.target_date is None
        or f.status is None
    ):
        raise ValueError("row is missing required normalized fields")

    account_manager_id = email_to_id.get(f.account_manager_email.lower())
    if account_manager_id is None:
        raise ResolutionError(f"Account manager not found: {f.account_manager_email}")
    customer_engineer_id: str | None = None
    if f.customer_engineer_email:
        customer_engineer_id = email_to_id.get(f.customer_engineer_email.lower())
        if customer_engineer_id is None:
            raise ResolutionError(f"Customer engineer not found: {f.customer_engineer_email}")

    return ProjectPayload(
        account_name_id=account_name_id,
        account_manager_id=account_manager_id,
        stage=f.stage,
        product=f.product,
        channels=f.channels,
        customer_engineer_id=customer_engineer_id,
        spoc=f.spoc,
        priority=f.priority,
        use_case_summary=f.use_case_summary,
        target_date=f.target_date,
        status=f.status,
        jira_ticket=f.jira_ticket,
    )


def _error_type(exc: Exception) -> str:
    if isinstance(exc, ResolutionError):
        return "RESOLUTION_ERROR"
    if isinstance(exc, StoreError):
        return "STORE_ERROR"
    if isinstance(exc, ValueError):
        return "ROW_DATA_ERROR"
    return "UNEXPECTED_ERROR"


def _commit_row(
    row: ParsedRow,
    email_to_id: dict[str, str],
    store: ProjectStore,
    recorder: AuditRecorder,
    actor: Actor,
    error_log: ErrorLogBuffer | None,
    source_name: str,
) -> RowOutcome:
    """Apply one row as an independent unit of work; failures become a FAILED outcome."""
    if not row.is_valid:
        message = "Row failed validation and cannot be committed: " + "; ".join(
            f"{e.field}: {e.message}" for e in row.validation_errors
        )
        if error_log is not None:
            error_log.append(ErrorRecord.create(source_name, row.row_number, "ROW_NOT_ELIGIBLE", message))
        return RowOutcome.failed(row.row_number, message)

    try:
        with store.transaction():
            if not row.fields.account_name:
                raise ValueError("row is missing required normalized fields")
            account_name_id = store.get_or_create_account_name(row.fields.account_name)
            payload = _build_payload(row, email_to_id, account_name_id)
            if row.is_duplicate and row.matched_record_id:
                store.update_project(row.matched_record_id, payload)
                outcome = RowOutcome.updated(row.row_number, row.matched_record_id)
            else:
                project_id = store.insert_project(payload)
                outcome = RowOutcome.created(row.row_number, project_id)
    except Exception as e:
        message = str(e) or type(e).__name__
        if error_log is not None:
            error_log.append(ErrorRecord.create(source_name, row.row_number, _error_type(e), message))
        return RowOutcome.failed(row.row_number, message)

    # プロジェクト行は確定済み。監査ログはベストエフォート
    action = AuditAction.UPDATE if outcome.outcome is Outcome.UPDATED else AuditAction.CREATE
    recorder.record(AuditEntry.bulk_import(outcome.record_id or "", actor, action), row.row_number)
    return outcome


def commit(
    request: CommitRequest,
    store: ProjectStore,
    actor: Actor,
    *,
    error_log: ErrorLogBuffer | None = None,
    source_name: str = "<commit-request>",
) -> ImportBatchResult:
    """Apply the confirmed rows one by one.

    Args:
        request: rows selected by the client plus the resolved email map
        store: persistence collaborator
        actor: recorded on every audit entry
        error_log: optional JSON Lines buffer for row failures
        source_name: file label used in error log records

    Returns:
        ImportBatchResult with created + updated + failed == len(request.rows)
    """
    recorder = AuditRecorder(store, error_log, source_name)
    result = ImportBatchResult()

    with RowProgressTracker(len(request.rows)) as progress:
        for row in request.rows:
            outcome = _commit_row(
                row,
                request.resolved_email_to_id,
                store,
                recorder,
                actor,
                error_log,
                source_name,
            )
            result.add(outcome)
            if outcome.error_message is not None:
                logger.warning("row=%d failed: %s", row.row_number, outcome.error_message)
            else:
                logger.debug(
                    "row=%d %s project=%s", row.row_number, outcome.outcome.value, outcome.record_id
                )
            progress.advance(created=result.created, updated=result.updated, failed=result.failed)

    if recorder.failed:
        logger.warning("audit entries not written: %d", recorder.failed)
    logger.info(
        "commit submitted=%d created=%d updated=%d failed=%d",
        result.submitted,
        result.created,
        result.updated,
        result.failed,
    )
    return result

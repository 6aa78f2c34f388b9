from __future__ import annotations

import uuid
from collections.abc import Collection, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol

from ..models.audit_entry import AuditEntry
from ..models.enums import AuditAction
from ..models.project_record import ProjectPayload, StoredProject

"""Persistence boundary for the import pipeline.

ProjectStore is the collaborator interface the pipeline consumes (user
directory, account-name registry, project table, audit log).
PostgresProjectStore implements it over a psycopg2 cursor; the connection is
expected to be in autocommit mode so that transaction() owns the explicit
BEGIN / COMMIT / ROLLBACK boundaries.

Any driver error is wrapped in StoreError so callers never need to import
psycopg2 to handle failures.
"""

__all__ = [
    "StoreError",
    "ProjectStore",
    "PostgresProjectStore",
    "SCHEMA_PATH",
]

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

_PROJECT_COLUMNS = (
    "account_name_id",
    "account_manager_id",
    "stage",
    "product",
    "channels",
    "customer_engineer_id",
    "spoc",
    "priority",
    "use_case_summary",
    "target_date",
    "status",
    "jira_ticket",
)


class StoreError(Exception):
    """Raised when a store operation fails (constraint violation, missing row, I/O)."""


class ProjectStore(Protocol):
    def find_users_by_emails(self, emails: Collection[str]) -> dict[str, str]:
        """Batched, case-insensitive lookup -> {lower-cased email: user id} (misses omitted)."""
        ...

    def get_or_create_account_name(self, name: str) -> str:
        """Return the id for an exact (case-sensitive) name, creating it if absent."""
        ...

    def list_projects(self) -> list[StoredProject]:
        ...

    def insert_project(self, payload: ProjectPayload) -> str:
        ...

    def update_project(self, project_id: str, payload: ProjectPayload) -> None:
        """Raise StoreError when project_id does not exist."""
        ...

    def append_audit_entry(self, entry: AuditEntry) -> None:
        ...

    def list_audit_entries(self, subject_record_id: str | None = None) -> list[AuditEntry]:
        ...

    def transaction(self) -> Any:
        """Context manager: commit on clean exit, roll back on exception."""
        ...


class PostgresProjectStore:
    """ProjectStore over a psycopg2 cursor (autocommit connection)."""

    def __init__(self, cursor: Any) -> None:
        self.cursor = cursor

    def _execute(self, sql: str, params: tuple[Any, ...] | None = None) -> None:
        try:
            self.cursor.execute(sql, params)
        except Exception as e:
            raise StoreError(str(e)) from e

    def _fetchall(self) -> list[tuple[Any, ...]]:
        try:
            return list(self.cursor.fetchall())
        except Exception as e:  # pragma: no cover
            raise StoreError(f"failed fetching rows: {e}") from e

    def _fetchone(self) -> tuple[Any, ...] | None:
        try:
            return self.cursor.fetchone()
        except Exception as e:  # pragma: no cover
            raise StoreError(f"failed fetching row: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self._execute("BEGIN")
        try:
            yield
        except Exception:
            try:
                self.cursor.execute("ROLLBACK")
            except Exception:  # pragma: no cover - 元の例外を優先
                pass
            raise
        self._execute("COMMIT")

    def create_schema(self) -> None:
        self._execute(SCHEMA_PATH.read_text(encoding="utf-8"))

    def find_users_by_emails(self, emails: Collection[str]) -> dict[str, str]:
        wanted = sorted({e.lower() for e in emails})
        if not wanted:
            return {}
        self._execute(
            "SELECT id, lower(email) FROM users WHERE lower(email) = ANY(%s)",
            (wanted,),
        )
        return {email: str(user_id) for user_id, email in self._fetchall()}

    def get_or_create_account_name(self, name: str) -> str:
        # ON CONFLICT で同名の同時作成も 1 件に収束
        self._execute(
            "INSERT INTO account_names (id, name) VALUES (%s, %s) ON CONFLICT (name) DO NOTHING",
            (str(uuid.uuid4()), name),
        )
        self._execute("SELECT id FROM account_names WHERE name = %s", (name,))
        row = self._fetchone()
        if row is None:  # pragma: no cover - 直後の SELECT で見えない場合のみ
            raise StoreError(f"account name not persisted: {name}")
        return str(row[0])

    def list_projects(self) -> list[StoredProject]:
        cols = ", ".join(f"p.{c}" for c in _PROJECT_COLUMNS)
        self._execute(
            f"SELECT p.id, a.name, am.email, ce.email, {cols} "
            "FROM projects p "
            "JOIN account_names a ON a.id = p.account_name_id "
            "JOIN users am ON am.id = p.account_manager_id "
            "LEFT JOIN users ce ON ce.id = p.customer_engineer_id "
            "ORDER BY p.created_at, p.id"
        )
        projects: list[StoredProject] = []
        for rec in self._fetchall():
            project_id, account_name, am_email, ce_email, *values = rec
            payload = ProjectPayload.from_columns(dict(zip(_PROJECT_COLUMNS, values, strict=True)))
            projects.append(
                StoredProject(
                    id=str(project_id),
                    account_name=account_name,
                    account_manager_email=am_email,
                    customer_engineer_email=ce_email,
                    payload=payload,
                )
            )
        return projects

    def insert_project(self, payload: ProjectPayload) -> str:
        project_id = str(uuid.uuid4())
        columns = payload.to_columns()
        cols_sql = ",".join(["id", *columns.keys()])
        placeholders = ",".join(["%s"] * (len(columns) + 1))
        self._execute(
            f"INSERT INTO projects ({cols_sql}) VALUES ({placeholders})",
            (project_id, *columns.values()),
        )
        return project_id

    def update_project(self, project_id: str, payload: ProjectPayload) -> None:
        columns = payload.to_columns()
        assignments = ", ".join(f"{c} = %s" for c in columns)
        self._execute(
            f"UPDATE projects SET {assignments}, updated_at = now() WHERE id = %s",
            (*columns.values(), project_id),
        )
        if getattr(self.cursor, "rowcount", 1) == 0:
            raise StoreError(f"Project not found: {project_id}")

    def append_audit_entry(self, entry: AuditEntry) -> None:
        self._execute(
            "INSERT INTO audit_logs "
            "(id, project_id, user_id, user_name, action, field_name, old_value, new_value, timestamp) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)",
            (
                str(uuid.uuid4()),
                entry.subject_record_id,
                entry.actor_id,
                entry.actor_label,
                entry.action.value,
                entry.field_name,
                entry.old_value,
                entry.new_value,
                entry.timestamp,
            ),
        )

    def list_audit_entries(self, subject_record_id: str | None = None) -> list[AuditEntry]:
        sql = (
            "SELECT project_id, user_id, user_name, action, field_name, old_value, new_value, timestamp "
            "FROM audit_logs"
        )
        params: tuple[Any, ...] | None = None
        if subject_record_id is not None:
            sql += " WHERE project_id = %s"
            params = (subject_record_id,)
        self._execute(sql + " ORDER BY timestamp", params)
        return [
            AuditEntry(
                subject_record_id=str(r[0]),
                actor_id=str(r[1]),
                actor_label=r[2],
                action=AuditAction(r[3]),
                field_name=r[4],
                old_value=r[5],
                new_value=r[6],
                timestamp=r[7],
            )
            for r in self._fetchall()
        ]

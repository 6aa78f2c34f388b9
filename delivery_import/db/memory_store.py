from __future__ import annotations

import json
import uuid
from collections.abc import Collection, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..models.audit_entry import AuditEntry
from ..models.project_record import ProjectPayload, StoredProject
from .project_store import StoreError

"""In-memory ProjectStore used for mock mode and tests.

State can be snapshotted to a JSON file so that a preview run and a later
commit run (separate processes) see the same directory and projects.
transaction() restores the pre-transaction state when the block raises, which
mirrors the per-row ROLLBACK of the PostgreSQL store.
"""

__all__ = [
    "InMemoryProjectStore",
]


class InMemoryProjectStore:
    def __init__(self) -> None:
        self.users: dict[str, str] = {}  # lower-cased email -> user id
        self.account_names: dict[str, str] = {}  # exact name -> id
        self.projects: dict[str, dict[str, Any]] = {}  # id -> column dict
        self.audit_entries: list[AuditEntry] = []

    # --- directory seeding -------------------------------------------------
    def add_user(self, email: str, user_id: str | None = None) -> str:
        uid = user_id or str(uuid.uuid4())
        self.users[email.strip().lower()] = uid
        return uid

    def _email_for(self, user_id: str | None) -> str | None:
        if user_id is None:
            return None
        for email, uid in self.users.items():
            if uid == user_id:
                return email
        return None

    # --- ProjectStore -------------------------------------------------------
    @contextmanager
    def transaction(self) -> Iterator[None]:
        snapshot = (
            dict(self.account_names),
            dict(self.projects),  # 列 dict は差し替えのみ (in-place 変更なし)
            list(self.audit_entries),
        )
        try:
            yield
        except Exception:
            self.account_names, self.projects, self.audit_entries = snapshot
            raise

    def find_users_by_emails(self, emails: Collection[str]) -> dict[str, str]:
        wanted = {e.lower() for e in emails}
        return {email: uid for email, uid in self.users.items() if email in wanted}

    def get_or_create_account_name(self, name: str) -> str:
        if name not in self.account_names:
            self.account_names[name] = str(uuid.uuid4())
        return self.account_names[name]

    def _account_name_for(self, account_name_id: str) -> str:
        for name, aid in self.account_names.items():
            if aid == account_name_id:
                return name
        raise StoreError(f"account name id not found: {account_name_id}")

    def list_projects(self) -> list[StoredProject]:
        projects: list[StoredProject] = []
        for project_id, columns in self.projects.items():
            payload = ProjectPayload.from_columns(columns)
            projects.append(
                StoredProject(
                    id=project_id,
                    account_name=self._account_name_for(payload.account_name_id),
                    account_manager_email=self._email_for(payload.account_manager_id) or "",
                    customer_engineer_email=self._email_for(payload.customer_engineer_id),
                    payload=payload,
                )
            )
        return projects

    def _check_references(self, payload: ProjectPayload) -> None:
        # FK 制約相当
        if payload.account_name_id not in self.account_names.values():
            raise StoreError(f"account name id not found: {payload.account_name_id}")
        known_users = set(self.users.values())
        if payload.account_manager_id not in known_users:
            raise StoreError(f"user id not found: {payload.account_manager_id}")
        if payload.customer_engineer_id is not None and payload.customer_engineer_id not in known_users:
            raise StoreError(f"user id not found: {payload.customer_engineer_id}")

    def insert_project(self, payload: ProjectPayload) -> str:
        self._check_references(payload)
        project_id = str(uuid.uuid4())
        self.projects[project_id] = payload.to_columns()
        return project_id

    def update_project(self, project_id: str, payload: ProjectPayload) -> None:
        if project_id not in self.projects:
            raise StoreError(f"Project not found: {project_id}")
        self._check_references(payload)
        self.projects[project_id] = payload.to_columns()

    def delete_project(self, project_id: str) -> None:
        """Remove a project (used by tests to simulate a concurrent delete)."""
        self.projects.pop(project_id, None)

    def append_audit_entry(self, entry: AuditEntry) -> None:
        self.audit_entries.append(entry)

    def list_audit_entries(self, subject_record_id: str | None = None) -> list[AuditEntry]:
        return [
            e for e in self.audit_entries
            if subject_record_id is None or e.subject_record_id == subject_record_id
        ]

    # --- JSON snapshot ------------------------------------------------------
    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        projects = {
            pid: {**cols, "target_date": cols["target_date"].isoformat()}
            for pid, cols in self.projects.items()
        }
        state = {
            "users": self.users,
            "account_names": self.account_names,
            "projects": projects,
            "audit_entries": [e.to_dict() for e in self.audit_entries],
        }
        path.write_text(json.dumps(state, ensure_ascii=False, indent=2), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> InMemoryProjectStore:
        """Load a snapshot; a missing file yields an empty store."""
        store = cls()
        if not path.exists():
            return store
        try:
            state = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise StoreError(f"invalid state file {path}: {e}") from e
        store.users = dict(state.get("users", {}))
        store.account_names = dict(state.get("account_names", {}))
        store.projects = {
            pid: ProjectPayload.from_columns(cols).to_columns()
            for pid, cols in state.get("projects", {}).items()
        }
        store.audit_entries = [AuditEntry.from_dict(e) for e in state.get("audit_entries", [])]
        return store

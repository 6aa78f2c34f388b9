from __future__ import annotations

import io
from datetime import UTC, datetime

import pandas as pd

from delivery_import.models.audit_entry import Actor, AuditEntry
from delivery_import.models.enums import AuditAction
from delivery_import.models.parsed_row import CSV_HEADERS
from delivery_import.services.export import AUDIT_CSV_HEADERS, export_audit_csv, export_projects_csv
from delivery_import.services.orchestrator import commit, preview


def test_export_projects_uses_import_headers(make_csv, raw_row, store, actor):
    rows = [
        raw_row(),
        raw_row(**{"Account Name": "Beta, Inc", "Product": "ANALYTICS,AI_AGENT", "Channels": "WHATSAPP"}),
    ]
    commit(preview(make_csv(rows), store).to_commit_request(), store, actor)

    text = export_projects_csv(store.list_projects())

    df = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)
    assert list(df.columns) == list(CSV_HEADERS)
    beta = df[df["Account Name"] == "Beta, Inc"].iloc[0]
    assert beta["Product"] == "ANALYTICS,AI_AGENT"
    assert beta["Channels"] == "WHATSAPP"
    assert beta["Target Date"] == "2024-03-15"
    assert beta["Customer Engineer Email"] == "ce@example.com"


def test_exported_projects_reimport_as_duplicates(make_csv, raw_row, store, actor):
    commit(preview(make_csv([raw_row(), raw_row(**{"Account Name": "Other"})]), store).to_commit_request(), store, actor)

    text = export_projects_csv(store.list_projects())
    result = preview(text.encode("utf-8"), store)

    assert result.valid_rows == 2
    assert result.duplicate_rows == 2


def test_export_projects_empty_has_header_only():
    assert export_projects_csv([]).strip() == ",".join(CSV_HEADERS)


def test_export_audit_csv(make_csv, raw_row, store, actor):
    commit(preview(make_csv([raw_row()]), store).to_commit_request(), store, actor)
    orphan = AuditEntry(
        "gone", "u-1", "Admin", AuditAction.DELETE, None, None, None, datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
    )

    text = export_audit_csv([*store.list_audit_entries(), orphan], store.list_projects())

    df = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)
    assert list(df.columns) == list(AUDIT_CSV_HEADERS)
    first, second = df.to_dict(orient="records")
    assert first["Project"] == "Acme Corp"
    assert first["User"] == "Admin User"
    assert first["Action"] == "CREATE"
    assert first["Field Changed"] == "CSV Import"
    assert first["New Value"] == "Created via CSV import"
    assert second["Project"] == "Deleted Project"
    assert second["Timestamp"] == "2024-01-02 03:04:05"
    assert second["Field Changed"] == ""


def test_export_audit_quotes_values():
    entry = AuditEntry.create("p", Actor("u", "A"), AuditAction.UPDATE, "SPOC", 'Jane "J" Doe', "a,b")
    df = pd.read_csv(io.StringIO(export_audit_csv([entry])), dtype=str, keep_default_na=False)
    assert df.iloc[0]["Old Value"] == 'Jane "J" Doe'
    assert df.iloc[0]["New Value"] == "a,b"

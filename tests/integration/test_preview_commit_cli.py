from __future__ import annotations

import json
import re
from pathlib import Path

import pandas as pd
import pytest

from delivery_import.cli import main as cli_main
from delivery_import.db.memory_store import InMemoryProjectStore

"""End-to-end CLI runs in mock mode (state persisted between preview and commit)."""


@pytest.fixture()
def cli_env(temp_workdir: Path, write_config, monkeypatch) -> Path:
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    return temp_workdir


def _state(workdir: Path) -> InMemoryProjectStore:
    return InMemoryProjectStore.load(workdir / "logs" / "mock-state.json")


def test_preview_then_commit_creates_projects(cli_env: Path, make_csv, raw_row, capsys):
    csv_path = cli_env / "data" / "projects.csv"
    csv_path.write_bytes(make_csv([raw_row(), raw_row(**{"Account Name": "Beta"})]))

    assert cli_main(["preview", str(csv_path)]) == 0
    assert _state(cli_env).projects == {}

    code = cli_main(["commit", str(cli_env / "data" / "projects.preview.json"), "--out", "result.json"])

    out = capsys.readouterr().out
    assert code == 0
    result = json.loads((cli_env / "result.json").read_text(encoding="utf-8"))
    assert result == {"created": 2, "updated": 0, "failed": 0, "errors": []}
    assert re.search(r"^SUMMARY phase=commit submitted=2 created=2 updated=0 failed=0 elapsed_sec=\S+$", out, re.M)
    state = _state(cli_env)
    assert len(state.projects) == 2
    assert len(state.audit_entries) == 2


def test_second_import_updates_and_skip_duplicates(cli_env: Path, make_csv, raw_row, capsys):
    csv_path = cli_env / "data" / "projects.csv"
    csv_path.write_bytes(make_csv([raw_row()]))
    cli_main(["preview", str(csv_path)])
    cli_main(["commit", str(cli_env / "data" / "projects.preview.json")])

    csv_path.write_bytes(make_csv([raw_row(Status="COMPLETED"), raw_row(**{"Account Name": "Gamma"})]))
    assert cli_main(["preview", str(csv_path)]) == 0
    preview = json.loads((cli_env / "data" / "projects.preview.json").read_text(encoding="utf-8"))
    assert preview["duplicateRows"] == 1

    assert cli_main(["commit", str(cli_env / "data" / "projects.preview.json"), "--skip-duplicates"]) == 0
    state = _state(cli_env)
    assert len(state.projects) == 2
    assert {p["status"] for p in state.projects.values()} == {"IN_PROGRESS"}

    assert cli_main(["commit", str(cli_env / "data" / "projects.preview.json"), "--rows", "2"]) == 0
    out = capsys.readouterr().out
    assert "SUMMARY phase=commit submitted=1 created=0 updated=1 failed=0" in out
    assert "COMPLETED" in {p["status"] for p in _state(cli_env).projects.values()}


def test_commit_partial_failure_exit_2(cli_env: Path, make_csv, raw_row, capsys):
    csv_path = cli_env / "data" / "projects.csv"
    csv_path.write_bytes(make_csv([raw_row(), raw_row(**{"Account Name": "Beta"})]))
    cli_main(["preview", str(csv_path)])
    preview_path = cli_env / "data" / "projects.preview.json"
    data = json.loads(preview_path.read_text(encoding="utf-8"))
    # 2 行目の AM を解決済みマップに無いユーザーへ差し替える
    data["rows"][1]["fields"]["accountManagerEmail"] = "ghost@example.com"
    preview_path.write_text(json.dumps(data), encoding="utf-8")

    code = cli_main(["commit", str(preview_path)])

    out = capsys.readouterr().out
    assert code == 2
    assert "WARN row=3 failed: Account manager not found: ghost@example.com" in out
    assert "SUMMARY phase=commit submitted=2 created=1 updated=0 failed=1" in out
    (log_path,) = (cli_env / "logs").glob("errors-*.log")
    record = json.loads(log_path.read_text(encoding="utf-8").splitlines()[0])
    assert record["error_type"] == "RESOLUTION_ERROR"
    assert record["file"] == "projects.preview.json"
    assert record["row"] == 3


def test_exports_after_commit(cli_env: Path, make_csv, raw_row):
    csv_path = cli_env / "data" / "projects.csv"
    csv_path.write_bytes(make_csv([raw_row()]))
    cli_main(["preview", str(csv_path)])
    cli_main(["commit", str(cli_env / "data" / "projects.preview.json")])

    assert cli_main(["export-projects", "--out", "projects.csv"]) == 0
    assert cli_main(["export-audit", "--out", "audit.csv"]) == 0

    projects = pd.read_csv(cli_env / "projects.csv", dtype=str, keep_default_na=False)
    audit = pd.read_csv(cli_env / "audit.csv", dtype=str, keep_default_na=False)
    assert projects.iloc[0]["Account Name"] == "Acme Corp"
    assert audit.iloc[0]["Project"] == "Acme Corp"
    assert audit.iloc[0]["User"] == "Admin User"

    # エクスポートを再取り込みすると全行が重複 (更新) 扱い
    assert cli_main(["preview", str(cli_env / "projects.csv"), "--out", "again.json"]) == 0
    again = json.loads((cli_env / "again.json").read_text(encoding="utf-8"))
    assert again["duplicateRows"] == 1

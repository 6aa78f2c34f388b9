# Shared pytest fixtures
from __future__ import annotations
import tempfile
from collections.abc import Callable
from pathlib import Path
import pandas as pd
import pytest

from delivery_import.db.memory_store import InMemoryProjectStore
from delivery_import.logging.init import reset_logging
from delivery_import.models.audit_entry import Actor
from delivery_import.models.parsed_row import CSV_HEADERS

AM_EMAIL = "am@example.com"
CE_EMAIL = "ce@example.com"
AM_ID = "u-am"
CE_ID = "u-ce"


@pytest.fixture(autouse=True)
def _reset_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return f"""actor:
  id: u-admin
  label: Admin User
csv:
  delimiter: ","
  encoding: utf-8-sig
logs_directory: ./logs
mock:
  state_file: ./logs/mock-state.json
  users:
    - id: {AM_ID}
      email: {AM_EMAIL}
    - id: {CE_ID}
      email: {CE_EMAIL}
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def actor() -> Actor:
    return Actor(id="u-admin", label="Admin User")


@pytest.fixture()
def store() -> InMemoryProjectStore:
    s = InMemoryProjectStore()
    s.add_user(AM_EMAIL, AM_ID)
    s.add_user(CE_EMAIL, CE_ID)
    return s


def make_raw_row(**overrides: str) -> dict[str, str]:
    """A fully valid raw row keyed by CSV header; keyword args use header labels with _ for spaces."""
    row = {
        "Account Name": "Acme Corp",
        "Account Manager Email": AM_EMAIL,
        "Stage": "POC",
        "Product": "ANALYTICS",
        "Channels": "",
        "Customer Engineer Email": CE_EMAIL,
        "SPOC": "Jane Doe",
        "Priority": "HIGH",
        "Use Case Summary": "Call analytics",
        "Target Date": "2024-03-15",
        "Status": "IN_PROGRESS",
        "Jira Ticket": "DEL-1",
    }
    for key, value in overrides.items():
        row[key.replace("_", " ")] = value
    return row


@pytest.fixture()
def valid_raw_row() -> dict[str, str]:
    return make_raw_row()


def csv_bytes(rows: list[dict[str, str]], headers: tuple[str, ...] | list[str] = CSV_HEADERS) -> bytes:
    df = pd.DataFrame(rows, columns=list(headers))
    return df.to_csv(index=False, lineterminator="\n").encode("utf-8")


@pytest.fixture()
def make_csv() -> Callable[..., bytes]:
    return csv_bytes


@pytest.fixture()
def raw_row() -> Callable[..., dict[str, str]]:
    return make_raw_row


def overlong_csv(bad_index: int, account_names: tuple[str, ...] = ("Acme Corp", "Beta", "Gamma")) -> bytes:
    """CSV whose row at bad_index has an unquoted comma in Use Case Summary (13 fields for 12 headers)."""
    lines = [",".join(CSV_HEADERS)]
    for i, name in enumerate(account_names):
        summary = "Onboarding, phase 2" if i == bad_index else f"Use case {i}"
        row = make_raw_row(**{"Account Name": name, "Use Case Summary": summary})
        lines.append(",".join(row[h] for h in CSV_HEADERS))
    return ("\n".join(lines) + "\n").encode("utf-8")


@pytest.fixture()
def make_overlong_csv() -> Callable[..., bytes]:
    return overlong_csv

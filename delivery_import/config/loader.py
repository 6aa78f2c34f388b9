from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.audit_entry import Actor
from ..models.config_models import CsvConfig, DatabaseConfig, ImportConfig, MockConfig, MockUser

"""Config loader.

Responsibilities:
- Load YAML config (default config/import.yml)
- Validate against contracts/config_schema.json (unknown keys rejected)
- Apply defaults (csv delimiter/encoding, logs directory)
"""

__all__ = [
    "ConfigError",
    "CONTRACTS_DIR",
    "load_contract",
    "load_config",
]

# delivery_import/config/loader.py -> delivery_import/contracts
CONTRACTS_DIR = Path(__file__).resolve().parent.parent / "contracts"
CONFIG_SCHEMA = "config_schema.json"


class ConfigError(Exception):
    pass


@lru_cache(maxsize=None)
def load_contract(name: str) -> dict[str, Any]:
    """Load a JSON schema shipped in the contracts directory."""
    path = CONTRACTS_DIR / name
    if not path.exists():
        raise ConfigError(f"contract schema not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file {name}: {e}") from e


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing/invalid, or the config violates it
            (missing required keys, wrong types, unknown keys).
    """
    schema = load_contract(CONFIG_SCHEMA)
    try:
        jsonschema.validate(data, schema)
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)

    actor_raw = data["actor"]
    db_raw = data.get("database") or {}
    csv_raw = data.get("csv") or {}
    mock_raw = data.get("mock") or {}

    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    csv_cfg = CsvConfig(
        delimiter=csv_raw.get("delimiter", ","),
        encoding=csv_raw.get("encoding", "utf-8-sig"),
    )
    mock = MockConfig(
        state_file=mock_raw.get("state_file"),
        users=[MockUser(id=str(u["id"]), email=u["email"]) for u in mock_raw.get("users", [])],
    )
    return ImportConfig(
        actor=Actor(id=str(actor_raw["id"]), label=actor_raw["label"]),
        database=db,
        csv=csv_cfg,
        logs_directory=data.get("logs_directory", "./logs"),
        mock=mock,
    )

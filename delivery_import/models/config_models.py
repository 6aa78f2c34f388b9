from __future__ import annotations

from dataclasses import dataclass, field

from .audit_entry import Actor

"""Config dataclasses for the delivery project CSV importer.

The YAML loader (delivery_import/config/loader.py) builds these after schema
validation; everything downstream only sees these typed objects.
"""


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class CsvConfig:
    """How the uploaded delimited-text file is decoded and split."""
    delimiter: str = ","
    encoding: str = "utf-8-sig"  # UTF-8, BOM tolerated


@dataclass(frozen=True)
class MockUser:
    id: str
    email: str


@dataclass(frozen=True)
class MockConfig:
    """In-memory store settings used when no database is reachable."""
    state_file: str | None = None  # JSON snapshot shared between preview / commit runs
    users: list[MockUser] = field(default_factory=list)


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for the importer."""
    actor: Actor  # recorded in audit entries for CLI-driven commits
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    csv: CsvConfig = field(default_factory=CsvConfig)
    logs_directory: str = "./logs"
    mock: MockConfig = field(default_factory=MockConfig)

from __future__ import annotations

import argparse
import json
import os
import sys
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from delivery_import.config.loader import ConfigError, load_config
from delivery_import.db.memory_store import InMemoryProjectStore
from delivery_import.db.project_store import PostgresProjectStore, ProjectStore, StoreError
from delivery_import.logging.error_log import ErrorLogBuffer
from delivery_import.logging.init import get_logger, log_summary, setup_logging
from delivery_import.models.config_models import ImportConfig
from delivery_import.models.error_record import ErrorRecord
from delivery_import.models.import_result import CommitRequest
from delivery_import.services.export import export_audit_csv, export_projects_csv
from delivery_import.services.orchestrator import (
    CommitRequestError,
    commit,
    parse_commit_request,
    preview_file,
)
from delivery_import.services.summary import render_commit_summary, render_preview_summary
from delivery_import.tabular.reader import ImportFileError

"""CLI entrypoint: ``python -m delivery_import.cli <command>``.

Commands:
- preview CSV            validate / resolve / match, write preview JSON
- commit PREVIEW_JSON    apply selected rows from a preview (or commit request) JSON
- export-projects        projects as CSV with the import headers
- export-audit           audit log as CSV
- init-db                create tables from db/schema.sql

Exit codes: 0 all rows ok, 2 partial (invalid preview rows / failed commit
rows), 1 fatal (config, unusable file, malformed request, store failure).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_CONFIG_PATH = "config/import.yml"

Handler = Callable[[argparse.Namespace, ImportConfig, ProjectStore, ErrorLogBuffer], int]


def _resolve_dsn(cfg: ImportConfig) -> str:
    """Build the psycopg2 DSN.

        接続情報の解決優先順位 (.env を最優先):
            1. `.env` で読み込まれた環境変数 (main() 冒頭で上書き済み)
                 - DATABASE_URL / PGDSN があれば DSN 全体をそのまま使用
                 - 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
            2. config/import.yml の database セクション (不足分のフォールバック)
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


def _connect(cfg: ImportConfig) -> Any:  # pragma: no cover (thin wrapper; tested via monkeypatch)
    import psycopg2  # psycopg2-binary

    conn = psycopg2.connect(_resolve_dsn(cfg))
    # store.transaction() が BEGIN / COMMIT / ROLLBACK を明示発行する
    conn.autocommit = True
    return conn


@contextmanager
def _db_cursor(conn: Any) -> Iterator[Any]:
    cur = conn.cursor()
    try:
        yield cur
    finally:
        cur.close()
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True により .env の値で既存環境変数を上書きし、PostgreSQL 接続情報を最優先化。
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _row_numbers(value: str) -> set[int]:
    try:
        numbers = {int(v) for v in value.split(",") if v.strip()}
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected comma separated row numbers: {value}") from e
    if not numbers:
        raise argparse.ArgumentTypeError("no row numbers given")
    return numbers


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Delivery project CSV importer")
    p.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to YAML config")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    sp = sub.add_parser("preview", help="Validate and match a CSV without writing projects")
    sp.add_argument("csv", type=Path)
    sp.add_argument("--out", type=Path, help="Preview JSON path (default: <csv>.preview.json)")

    sc = sub.add_parser("commit", help="Apply rows from a preview JSON")
    sc.add_argument("preview_json", type=Path)
    sc.add_argument("--rows", type=_row_numbers, help="Only these row numbers, e.g. 2,5,7")
    sc.add_argument("--skip-duplicates", action="store_true", help="Do not update matched projects")
    sc.add_argument("--out", type=Path, help="Write the commit result JSON here")

    se = sub.add_parser("export-projects", help="Export projects as CSV")
    se.add_argument("--out", type=Path)

    sa = sub.add_parser("export-audit", help="Export the audit log as CSV")
    sa.add_argument("--out", type=Path)

    sub.add_parser("init-db", help="Create database tables")
    return p.parse_args(argv)


def _write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def _cmd_preview(args: argparse.Namespace, cfg: ImportConfig, store: ProjectStore, error_log: ErrorLogBuffer) -> int:
    logger = get_logger()
    csv_path: Path = args.csv
    try:
        result = preview_file(csv_path, store, csv_config=cfg.csv)
    except ImportFileError as e:
        logger.error(f"file: {csv_path.name}: {e}")
        error_log.append(ErrorRecord.create(csv_path.name, -1, "FILE_ERROR", str(e)))
        return EXIT_FATAL

    for row in result.rows:
        if row.is_valid:
            continue
        message = "; ".join(f"{e.field}: {e.message}" for e in row.validation_errors)
        logger.warning(f"row={row.row_number} invalid: {message}")
        error_log.append(ErrorRecord.create(csv_path.name, row.row_number, "VALIDATION_ERROR", message))

    out = args.out or csv_path.with_suffix(".preview.json")
    _write_json(out, result.to_dict())
    logger.info(f"preview written: {out}")

    log_summary(render_preview_summary(result)[len("SUMMARY "):])
    return EXIT_PARTIAL_FAILURE if result.invalid_rows else EXIT_SUCCESS_ALL


def _cmd_commit(args: argparse.Namespace, cfg: ImportConfig, store: ProjectStore, error_log: ErrorLogBuffer) -> int:
    logger = get_logger()
    source: Path = args.preview_json
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.error(f"commit request: cannot read {source}: {e}")
        return EXIT_FATAL
    try:
        request = parse_commit_request(data)
    except CommitRequestError as e:
        logger.error(f"commit request: {e}")
        return EXIT_FATAL

    # 選択: --rows 指定時はその行のみ、未指定時は有効行のみ
    rows = [
        r for r in request.rows
        if (r.row_number in args.rows if args.rows is not None else r.is_valid)
        and not (args.skip_duplicates and r.is_duplicate)
    ]
    if args.rows is not None:
        missing = sorted(args.rows - {r.row_number for r in request.rows})
        if missing:
            logger.warning(f"rows not in preview: {missing}")
    request = CommitRequest(rows=rows, resolved_email_to_id=request.resolved_email_to_id)

    started = time.perf_counter()
    result = commit(request, store, cfg.actor, error_log=error_log, source_name=source.name)
    elapsed = time.perf_counter() - started

    if args.out:
        _write_json(args.out, result.to_dict())
        logger.info(f"commit result written: {args.out}")

    log_summary(render_commit_summary(result, elapsed)[len("SUMMARY "):])
    return EXIT_PARTIAL_FAILURE if result.failed else EXIT_SUCCESS_ALL


def _cmd_export_projects(
    args: argparse.Namespace, cfg: ImportConfig, store: ProjectStore, error_log: ErrorLogBuffer
) -> int:
    projects = store.list_projects()
    out = args.out or Path(f"projects-{date.today().isoformat()}.csv")
    out.write_text(export_projects_csv(projects), encoding="utf-8")
    get_logger().info(f"exported projects={len(projects)} -> {out}")
    return EXIT_SUCCESS_ALL


def _cmd_export_audit(
    args: argparse.Namespace, cfg: ImportConfig, store: ProjectStore, error_log: ErrorLogBuffer
) -> int:
    entries = store.list_audit_entries()
    out = args.out or Path(f"audit-logs-{date.today().isoformat()}.csv")
    out.write_text(export_audit_csv(entries, store.list_projects()), encoding="utf-8")
    get_logger().info(f"exported audit_entries={len(entries)} -> {out}")
    return EXIT_SUCCESS_ALL


def _cmd_init_db(args: argparse.Namespace, cfg: ImportConfig, store: ProjectStore, error_log: ErrorLogBuffer) -> int:
    if not isinstance(store, PostgresProjectStore):
        get_logger().error("init-db: requires a database connection")
        return EXIT_FATAL
    store.create_schema()
    get_logger().info("init-db: schema created")
    return EXIT_SUCCESS_ALL


COMMANDS: dict[str, Handler] = {
    "preview": _cmd_preview,
    "commit": _cmd_commit,
    "export-projects": _cmd_export_projects,
    "export-audit": _cmd_export_audit,
    "init-db": _cmd_init_db,
}

# 接続失敗時に mock へ落とさないコマンド (明示的な DISABLE_DB_CONNECT=1 のみ mock)
LIVE_ONLY_COMMANDS = frozenset({"commit", "init-db"})


def _mock_store(cfg: ImportConfig) -> InMemoryProjectStore:
    state_file = cfg.mock.state_file
    store = InMemoryProjectStore.load(Path(state_file)) if state_file else InMemoryProjectStore()
    for user in cfg.mock.users:
        store.add_user(user.email, user.id)
    return store


def _run_mock(handler: Handler, args: argparse.Namespace, cfg: ImportConfig, error_log: ErrorLogBuffer) -> int:
    store = _mock_store(cfg)
    code = handler(args, cfg, store, error_log)
    if cfg.mock.state_file:
        store.save(Path(cfg.mock.state_file))
    return code


def _dispatch(handler: Handler, args: argparse.Namespace, cfg: ImportConfig, error_log: ErrorLogBuffer) -> int:
    logger = get_logger()
    # DB 接続制御: テスト等で完全に無効化したい場合 DISABLE_DB_CONNECT=1
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
        return _run_mock(handler, args, cfg, error_log)
    try:
        conn = _connect(cfg)
    except Exception as db_e:
        if args.command in LIVE_ONLY_COMMANDS:
            logger.error(
                f"DB connection failed: {db_e}; {args.command} requires a database "
                "(set DISABLE_DB_CONNECT=1 to run it in mock mode)"
            )
            return EXIT_FATAL
        if os.getenv("SUPPRESS_DB_WARNING") == "1":
            logger.debug(f"DB connection failed (suppressed warn) -> fallback to mock mode: {db_e}")
        else:
            logger.info(f"DB connection failed -> fallback to mock mode: {db_e}")
        return _run_mock(handler, args, cfg, error_log)
    with _db_cursor(conn) as cur:
        logger.debug("mode=live")
        return handler(args, cfg, PostgresProjectStore(cur), error_log)


def main(argv: list[str] | None = None) -> int:
    # NOTE: 空リスト [] が与えられた場合に sys.argv[1:] が混入しないよう None のときのみ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    logger.debug("debug mode enabled")

    # .env を最優先で読み込む (DB 接続パラメータ優先順位保証)
    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(Path(args.config))
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    error_log = ErrorLogBuffer(Path(cfg.logs_directory))
    try:
        code = _dispatch(COMMANDS[args.command], args, cfg, error_log)
    except StoreError as e:
        logger.error(f"store: {e}")
        code = EXIT_FATAL
    finally:
        buffered = len(error_log)
        path = error_log.flush()
        if path is not None:
            logger.info(f"error log: {path} records={buffered}")
    return code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

from __future__ import annotations

import importlib
from pathlib import Path
from typing import Any, cast

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect, text

from visitdoc.bootstrap.startup import REQUIRED_TABLES, ensure_schema, initialize_database

MIGRATION_MODULE = "visitdoc.infrastructure.db.migrations.versions.0001_initial_visits"
ROOT_DIR = Path(__file__).resolve().parents[2]


def _run_migration(connection, *, fn_name: str) -> None:
    module = cast(Any, importlib.import_module(MIGRATION_MODULE))
    context = MigrationContext.configure(connection)
    operations = Operations(context)
    original_op = module.op
    try:
        module.op = operations
        getattr(module, fn_name)()
    finally:
        module.op = original_op


def _table_names(connection) -> set[str]:
    rows = connection.execute(text("SELECT name FROM sqlite_master WHERE type='table'")).fetchall()
    return {str(row[0]) for row in rows}


def test_initial_migration_creates_and_drops_visit_tables(tmp_path: Path) -> None:
    engine = create_engine(f"sqlite:///{(tmp_path / 'migration.db').as_posix()}", future=True)

    with engine.begin() as connection:
        _run_migration(connection, fn_name="upgrade")
        assert REQUIRED_TABLES <= _table_names(connection)

        unique_names = {item["name"] for item in inspect(connection).get_unique_constraints("visit_versions")}
        assert "uq_visit_versions_visit_number" in unique_names

        _run_migration(connection, fn_name="downgrade")
        assert not (REQUIRED_TABLES & _table_names(connection))


def test_initialize_database_runs_alembic_to_head(tmp_path: Path) -> None:
    db_file = tmp_path / "visits.db"
    database_url = f"sqlite:///{db_file.as_posix()}"

    assert ensure_schema(database_url) is False
    assert initialize_database(
        root_dir=ROOT_DIR,
        db_file=db_file,
        database_url=database_url,
        log_dir=tmp_path / "logs",
    )
    assert ensure_schema(database_url) is True
    assert not (tmp_path / "logs" / "migration_error.log").exists()


def test_initialize_database_reports_missing_alembic_config(tmp_path: Path) -> None:
    db_file = tmp_path / "visits.db"
    assert (
        initialize_database(
            root_dir=tmp_path,
            db_file=db_file,
            database_url=f"sqlite:///{db_file.as_posix()}",
            log_dir=tmp_path / "logs",
        )
        is False
    )

from __future__ import annotations

import logging
import traceback
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from visitdoc.infrastructure.db.engine import get_engine

logger = logging.getLogger(__name__)

MIGRATIONS_SUBDIR = Path("visitdoc") / "infrastructure" / "db" / "migrations"
REQUIRED_TABLES = frozenset({"users", "audit_log", "visits", "visit_versions"})


def check_startup_prerequisites(root_dir: Path, db_file: Path) -> bool:
    if not (root_dir / "alembic.ini").exists():
        logger.error("alembic.ini is missing from %s", root_dir)
        return False
    if not (root_dir / MIGRATIONS_SUBDIR).exists():
        logger.error("Migrations directory is missing: %s", root_dir / MIGRATIONS_SUBDIR)
        return False
    try:
        test_file = db_file.parent / ".write_test"
        test_file.write_text("ok", encoding="utf-8")
        test_file.unlink(missing_ok=True)
    except OSError:
        logger.exception("Database directory is not writable: %s", db_file.parent)
        return False
    return True


def run_migrations(root_dir: Path, database_url: str, log_dir: Path, db_file: Path) -> bool:
    cfg = Config(str(root_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(root_dir / MIGRATIONS_SUBDIR))
    cfg.set_main_option("sqlalchemy.url", database_url)
    # The application owns logging; keep alembic from reconfiguring it.
    cfg.attributes["configure_logger"] = False
    try:
        command.upgrade(cfg, "head")
    except Exception:  # noqa: BLE001
        logger.exception("Failed to run migrations")
        error_path = log_dir / "migration_error.log"
        try:
            error_path.parent.mkdir(parents=True, exist_ok=True)
            with error_path.open("a", encoding="utf-8") as handle:
                handle.write("\n--- Migration error ---\n")
                handle.write(f"DB: {db_file}\n")
                handle.write(f"Migrations: {root_dir / MIGRATIONS_SUBDIR}\n")
                handle.write(traceback.format_exc())
        except OSError:
            logger.exception("Failed to write migration error log")
        return False
    return True


def ensure_schema(database_url: str) -> bool:
    inspector = inspect(get_engine(database_url))
    missing = REQUIRED_TABLES - set(inspector.get_table_names())
    if missing:
        logger.error("Database schema is incomplete, missing tables: %s", ", ".join(sorted(missing)))
        return False
    return True


def initialize_database(
    *,
    root_dir: Path,
    db_file: Path,
    database_url: str,
    log_dir: Path,
) -> bool:
    if not check_startup_prerequisites(root_dir, db_file):
        return False
    if not run_migrations(root_dir, database_url, log_dir, db_file):
        return False
    return ensure_schema(database_url)

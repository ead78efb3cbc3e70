from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from visitdoc.bootstrap.startup import initialize_database
from visitdoc.config import DB_FILE, LOG_DIR, settings
from visitdoc.container import Container, build_container

ROOT_DIR = Path(__file__).resolve().parent.parent


def _setup_logging() -> Path:
    log_path = LOG_DIR / "visitdoc.log"
    handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    root_logger.addHandler(handler)
    return log_path


def _install_exception_hook() -> None:
    def _handle_exception(exc_type, exc, tb) -> None:
        logging.getLogger(__name__).error("Unhandled exception", exc_info=(exc_type, exc, tb))
        sys.__excepthook__(exc_type, exc, tb)

    sys.excepthook = _handle_exception


def bootstrap() -> Container | None:
    log_path = _setup_logging()
    _install_exception_hook()
    logging.getLogger(__name__).info("Logging to %s", log_path)
    if not initialize_database(
        root_dir=ROOT_DIR,
        db_file=DB_FILE,
        database_url=settings.database_url,
        log_dir=LOG_DIR,
    ):
        return None
    return build_container()


def main() -> int:
    container = bootstrap()
    if container is None:
        return 1
    logging.getLogger(__name__).info("Database ready at %s", container.settings.database_url)
    return 0


if __name__ == "__main__":
    sys.exit(main())

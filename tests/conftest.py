from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path
from uuid import uuid4

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
# Keep the module-level engine and log directory away from the user's data dir.
os.environ.setdefault("VISITDOC_DATA_DIR", str(Path(tempfile.gettempdir()) / f"visitdoc-tests-{os.getpid()}"))


@pytest.fixture(scope="session")
def qapp():
    from PySide6.QtWidgets import QApplication

    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    return app


@pytest.fixture
def tmp_path() -> Generator[Path, None, None]:
    base = Path("pytest_artifacts")
    base.mkdir(parents=True, exist_ok=True)
    path = base / uuid4().hex
    path.mkdir(parents=True, exist_ok=True)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def session_factory(tmp_path: Path):
    from tests.integration.support import make_session_factory

    return make_session_factory(tmp_path / "visits.db")


@pytest.fixture
def users(session_factory) -> tuple[int, int]:
    from tests.integration.support import seed_users

    return seed_users(session_factory)


@pytest.fixture
def container(session_factory):
    from visitdoc.container import build_container

    return build_container(session_factory=session_factory)

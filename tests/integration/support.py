from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from datetime import date
from pathlib import Path
from typing import cast

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from visitdoc.application.dto.visit_dto import VisitCreateRequest
from visitdoc.infrastructure.db.models_sqlalchemy import Base
from visitdoc.infrastructure.db.repositories.user_repo import UserRepository

SessionFactory = Callable[[], AbstractContextManager[Session]]


def make_session_factory(db_path: Path) -> SessionFactory:
    engine = create_engine(
        f"sqlite:///{db_path.as_posix()}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    session_local = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )

    @contextmanager
    def _session_scope() -> Iterator[Session]:
        session: Session = session_local()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _session_scope


def seed_users(session_factory: SessionFactory) -> tuple[int, int]:
    repo = UserRepository()
    with session_factory() as session:
        provider = repo.create(session, login="dr.house", role="provider", full_name="Gregory House")
        nurse = repo.create(session, login="nurse.joy", role="nurse")
        session.flush()
        return cast(int, provider.id), cast(int, nurse.id)


def make_create_request(**overrides) -> VisitCreateRequest:
    payload = {
        "patient_id": "patient-42",
        "provider_id": "provider-7",
        "visit_date": date(2026, 3, 2),
        "visit_type": "FOLLOW_UP",
        "sections": {
            "soap": {"subjective": "Cough for 3 days", "plan": "Fluids"},
            "vitals": {"heart_rate": 88},
        },
    }
    payload.update(overrides)
    return VisitCreateRequest.model_validate(payload)

from __future__ import annotations

from collections.abc import Callable

from visitdoc.application.dto.visit_dto import VisitCreateRequest, VisitFilters, VisitListItemDto
from visitdoc.application.services.version_store import VersionStore
from visitdoc.domain.models.visit import VisitRecord, VisitSections
from visitdoc.infrastructure.db.repositories.visit_repo import VisitRepository
from visitdoc.infrastructure.db.session import session_scope


class VisitService:
    def __init__(
        self,
        version_store: VersionStore,
        repo: VisitRepository | None = None,
        session_factory: Callable = session_scope,
    ) -> None:
        self.version_store = version_store
        self.repo = repo or VisitRepository()
        self.session_factory = session_factory

    def create_visit(self, request: VisitCreateRequest, actor_id: int | None) -> VisitRecord:
        actor_login, actor_role = self.version_store.resolve_actor(actor_id)
        with self.session_factory() as session:
            row = self.repo.create_visit(
                session,
                patient_id=request.patient_id,
                provider_id=request.provider_id,
                visit_date=request.visit_date,
                visit_type=request.visit_type,
                sections_payload=request.sections.to_domain().to_dict(),
                actor_login=actor_login,
            )
            self.version_store.record_initial(session, row, actor_login)
            self.version_store.write_audit(
                session=session,
                actor_id=actor_id,
                actor_role=actor_role,
                visit_id=str(row.id),
                action="create",
                status_from=None,
                status_to=str(row.status),
                expected_version=None,
                new_version=int(row.version_number),
                changes={"before": {}, "after": self.repo.to_visit_dict(row)},
            )
            return self.repo.to_record(row)

    def get_visit(self, visit_id: str) -> VisitRecord:
        with self.session_factory() as session:
            return self.repo.to_record(self.repo.require_visit(session, visit_id))

    def list_visits(
        self,
        filters: VisitFilters | None = None,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[VisitListItemDto]:
        filter_payload = filters.model_dump(exclude_none=True) if filters else {}
        with self.session_factory() as session:
            rows = self.repo.list_visits(session, filters=filter_payload, limit=limit, offset=offset)
            return [VisitListItemDto.from_record(self.repo.to_record(row)) for row in rows]

    def save_sections(
        self,
        visit_id: str,
        sections: VisitSections,
        *,
        expected_version: int,
        actor_id: int | None,
        change_reason: str = "autosave",
    ) -> VisitRecord:
        self.version_store.commit(
            visit_id,
            sections=sections,
            expected_version=expected_version,
            actor_id=actor_id,
            change_reason=change_reason,
        )
        return self.get_visit(visit_id)

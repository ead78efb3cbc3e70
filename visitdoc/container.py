from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from visitdoc.application.scheduling import InlineSaveRunner, SaveRunner, Scheduler, ThreadTimerScheduler
from visitdoc.application.services.interaction_gate import InteractionChecker
from visitdoc.application.services.lifecycle_service import LifecycleController
from visitdoc.application.services.version_store import VersionStore
from visitdoc.application.services.visit_editor import VisitEditor
from visitdoc.application.services.visit_service import VisitService
from visitdoc.config import Settings, settings
from visitdoc.infrastructure.db.repositories.audit_repo import AuditLogRepository
from visitdoc.infrastructure.db.repositories.user_repo import UserRepository
from visitdoc.infrastructure.db.repositories.visit_repo import VisitRepository
from visitdoc.infrastructure.db.session import session_scope


@dataclass
class Container:
    settings: Settings
    user_repo: UserRepository
    audit_repo: AuditLogRepository
    visit_repo: VisitRepository

    lifecycle: LifecycleController
    version_store: VersionStore
    visit_service: VisitService

    def open_editor(
        self,
        visit_id: str,
        *,
        actor_id: int | None,
        scheduler: Scheduler | None = None,
        runner: SaveRunner | None = None,
        interaction_checker: InteractionChecker | None = None,
        current_medications: Sequence[str] = (),
    ) -> VisitEditor:
        return VisitEditor(
            self.visit_service.get_visit(visit_id),
            lifecycle=self.lifecycle,
            gateway=self.visit_service,
            scheduler=scheduler or ThreadTimerScheduler(),
            runner=runner or InlineSaveRunner(),
            actor_id=actor_id,
            interaction_checker=interaction_checker,
            current_medications=current_medications,
            debounce_seconds=self.settings.autosave_debounce_seconds,
            saved_display_seconds=self.settings.autosave_saved_display_seconds,
        )


def build_container(
    session_factory: Callable = session_scope,
    app_settings: Settings = settings,
) -> Container:
    user_repo = UserRepository()
    audit_repo = AuditLogRepository()
    visit_repo = VisitRepository()

    lifecycle = LifecycleController(
        repo=visit_repo,
        user_repo=user_repo,
        audit_repo=audit_repo,
        session_factory=session_factory,
    )
    version_store = lifecycle.version_store
    visit_service = VisitService(
        version_store=version_store,
        repo=visit_repo,
        session_factory=session_factory,
    )

    return Container(
        settings=app_settings,
        user_repo=user_repo,
        audit_repo=audit_repo,
        visit_repo=visit_repo,
        lifecycle=lifecycle,
        version_store=version_store,
        visit_service=visit_service,
    )

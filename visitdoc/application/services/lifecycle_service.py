from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from visitdoc.application.services.version_store import VersionStore
from visitdoc.domain.constants import VisitStatus
from visitdoc.domain.models.visit import VisitRecord
from visitdoc.domain.rules.visit_rules import (
    is_editable_status,
    signature_content,
    validate_status_transition,
)
from visitdoc.errors import LockedError
from visitdoc.infrastructure.db.repositories.audit_repo import AuditLogRepository
from visitdoc.infrastructure.db.repositories.user_repo import UserRepository
from visitdoc.infrastructure.db.repositories.visit_repo import VisitRepository
from visitdoc.infrastructure.db.session import session_scope
from visitdoc.infrastructure.security.sha256 import sha256_text

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class LifecycleController:
    """Visit status state machine and the write-permission authority.

    ``can_edit`` is the one place that decides whether a visit accepts changes; the
    version store, the autosave pipeline and the editor all ask it.
    """

    def __init__(
        self,
        repo: VisitRepository | None = None,
        user_repo: UserRepository | None = None,
        audit_repo: AuditLogRepository | None = None,
        session_factory: Callable = session_scope,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.repo = repo or VisitRepository()
        self.session_factory = session_factory
        self._clock = clock
        self.version_store = VersionStore(
            self,
            repo=self.repo,
            user_repo=user_repo,
            audit_repo=audit_repo,
            session_factory=session_factory,
            clock=clock,
        )

    def can_edit(self, visit: VisitRecord) -> bool:
        return is_editable_status(visit.status)

    def require_editable(self, visit: VisitRecord) -> None:
        if self.can_edit(visit):
            return
        raise LockedError(
            f"Visit {visit.id} is {visit.status} and can no longer be edited",
            status=str(visit.status),
        )

    def start(self, visit_id: str, *, actor_id: int | None, expected_version: int) -> VisitRecord:
        return self._transition(
            visit_id,
            VisitStatus.IN_PROGRESS,
            actor_id=actor_id,
            expected_version=expected_version,
            action="start",
        )

    def complete(self, visit_id: str, *, actor_id: int | None, expected_version: int) -> VisitRecord:
        return self._transition(
            visit_id,
            VisitStatus.COMPLETED,
            actor_id=actor_id,
            expected_version=expected_version,
            action="complete",
        )

    def sign(
        self,
        visit_id: str,
        *,
        actor_id: int | None,
        expected_version: int,
        signed_by: str | None = None,
    ) -> VisitRecord:
        actor_login, _role = self.version_store.resolve_actor(actor_id)

        def _signature(current: VisitRecord) -> dict[str, object]:
            return {
                "signed_by": signed_by or actor_login,
                "signed_at": self._clock(),
                "signature_hash": sha256_text(signature_content(current.sections.soap)),
            }

        return self._transition(
            visit_id,
            VisitStatus.SIGNED,
            actor_id=actor_id,
            expected_version=expected_version,
            action="sign",
            extra=_signature,
        )

    def lock(self, visit_id: str, *, actor_id: int | None, expected_version: int) -> VisitRecord:
        return self._transition(
            visit_id,
            VisitStatus.LOCKED,
            actor_id=actor_id,
            expected_version=expected_version,
            action="lock",
            extra=lambda _current: {"locked_at": self._clock()},
        )

    def _transition(
        self,
        visit_id: str,
        to_status: VisitStatus,
        *,
        actor_id: int | None,
        expected_version: int,
        action: str,
        extra: Callable[[VisitRecord], dict[str, object]] | None = None,
    ) -> VisitRecord:
        def _prepare(current: VisitRecord) -> dict[str, object]:
            if current.status == VisitStatus.LOCKED:
                raise LockedError(f"Visit {current.id} is locked", status=str(current.status))
            validate_status_transition(current.status, to_status)
            payload: dict[str, object] = {"status": to_status}
            if extra is not None:
                payload.update(extra(current))
            return payload

        record, _version = self.version_store.apply(
            visit_id,
            prepare=_prepare,
            sections_payload=None,
            expected_version=expected_version,
            actor_id=actor_id,
            change_reason=to_status.value.lower(),
            action=action,
        )
        logger.info("Visit %s moved to %s", visit_id, to_status)
        return record

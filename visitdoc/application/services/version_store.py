from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from visitdoc.domain.models.visit import SectionDiff, VisitRecord, VisitSections, VisitVersion
from visitdoc.domain.rules.visit_rules import RESTORABLE_STATUSES, build_changed_paths, diff_versions
from visitdoc.errors import ConcurrentCommitConflictError, NotFoundError, SaveFailedError, ValidationError
from visitdoc.infrastructure.db import models_sqlalchemy as models
from visitdoc.infrastructure.db.repositories.audit_repo import AuditLogRepository
from visitdoc.infrastructure.db.repositories.user_repo import UserRepository
from visitdoc.infrastructure.db.repositories.visit_repo import VisitRepository
from visitdoc.infrastructure.db.session import session_scope

if TYPE_CHECKING:
    from visitdoc.application.services.lifecycle_service import LifecycleController

logger = logging.getLogger(__name__)

Prepare = Callable[[VisitRecord], dict[str, object]]

VERSION_UNIQUE_CONSTRAINT = "uq_visit_versions_visit_number"


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _is_version_collision(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    # SQLite names the columns, other backends name the constraint
    return VERSION_UNIQUE_CONSTRAINT in message or (
        "visit_versions.visit_id" in message and "visit_versions.version_number" in message
    )


@dataclass(frozen=True)
class TimelineEntry:
    version: VisitVersion
    changes: list[SectionDiff]


class VersionStore:
    """Append-only log of visit snapshots.

    Every write to a visit goes through here: the record update and the new snapshot are
    stored in one transaction, and commits for the same visit are serialized by a
    per-visit lock. A stale ``expected_version`` raises ``ConcurrentCommitConflictError``.
    """

    def __init__(
        self,
        lifecycle: LifecycleController,
        repo: VisitRepository | None = None,
        user_repo: UserRepository | None = None,
        audit_repo: AuditLogRepository | None = None,
        session_factory: Callable = session_scope,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.lifecycle = lifecycle
        self.repo = repo or VisitRepository()
        self.user_repo = user_repo or UserRepository()
        self.audit_repo = audit_repo or AuditLogRepository()
        self.session_factory = session_factory
        self._clock = clock
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def commit(
        self,
        visit_id: str,
        *,
        sections: VisitSections,
        expected_version: int,
        actor_id: int | None,
        change_reason: str = "save",
    ) -> VisitVersion:
        _record, version = self.apply(
            visit_id,
            prepare=self._prepare_edit,
            sections_payload=sections.to_dict(),
            expected_version=expected_version,
            actor_id=actor_id,
            change_reason=change_reason,
            action="save",
        )
        return version

    def apply(
        self,
        visit_id: str,
        *,
        prepare: Prepare,
        sections_payload: dict[str, Any] | None,
        expected_version: int,
        actor_id: int | None,
        change_reason: str,
        action: str,
    ) -> tuple[VisitRecord, VisitVersion]:
        """Update the record and append its snapshot in one step.

        ``prepare`` sees the current record under the visit lock; it raises to refuse the
        change or returns record columns (status, signature fields) to update.
        """
        actor_login, actor_role = self.resolve_actor(actor_id)
        with self._visit_lock(visit_id):
            try:
                with self.session_factory() as session:
                    row = self.repo.require_visit(session, visit_id)
                    current = self.repo.to_record(row)
                    payload = prepare(current)
                    before_payload = self.repo.to_visit_dict(row)
                    status_from = str(row.status)
                    row = self.repo.update_visit(
                        session,
                        visit_id=visit_id,
                        payload=payload,
                        sections_payload=sections_payload,
                        expected_version=expected_version,
                        actor_login=actor_login,
                    )
                    version_row = self._append_version(session, row, actor_login, change_reason)
                    self.write_audit(
                        session=session,
                        actor_id=actor_id,
                        actor_role=actor_role,
                        visit_id=visit_id,
                        action=action,
                        status_from=status_from,
                        status_to=str(row.status),
                        expected_version=expected_version,
                        new_version=int(row.version_number),
                        changes=build_changed_paths(before_payload, self.repo.to_visit_dict(row)),
                    )
                    record = self.repo.to_record(row)
                    version = self.repo.to_version(version_row)
            except IntegrityError as exc:
                if not _is_version_collision(exc):
                    raise SaveFailedError(f"Visit {visit_id} could not be stored: {exc.orig}") from exc
                raise ConcurrentCommitConflictError(
                    f"Version {expected_version + 1} of visit {visit_id} was committed concurrently",
                    expected_version=expected_version,
                    current_version=None,
                ) from exc
        logger.info(
            "Committed visit %s version %s (%s) by %s",
            visit_id,
            version.version_number,
            change_reason,
            actor_login,
        )
        return record, version

    def record_initial(self, session: Session, row: models.Visit, actor_login: str) -> VisitVersion:
        version_row = self._append_version(session, row, actor_login, "created")
        return self.repo.to_version(version_row)

    def restore(
        self,
        visit_id: str,
        target_version_number: int,
        *,
        expected_version: int,
        actor_id: int | None,
    ) -> VisitVersion:
        target = self.get_version(visit_id, target_version_number)

        def _prepare(current: VisitRecord) -> dict[str, object]:
            self.lifecycle.require_editable(current)
            if target.status not in RESTORABLE_STATUSES:
                raise ValidationError(
                    f"Version {target.version_number} was captured in status {target.status} and cannot be restored"
                )
            return {"visit_type": target.visit_type}

        _record, version = self.apply(
            visit_id,
            prepare=_prepare,
            sections_payload=target.sections.to_dict(),
            expected_version=expected_version,
            actor_id=actor_id,
            change_reason=f"restore of version {target.version_number}",
            action="restore",
        )
        return version

    def list_versions(self, visit_id: str) -> list[VisitVersion]:
        with self.session_factory() as session:
            self.repo.require_visit(session, visit_id)
            return [self.repo.to_version(row) for row in self.repo.list_versions(session, visit_id)]

    def get_version(self, visit_id: str, version_number: int) -> VisitVersion:
        with self.session_factory() as session:
            row = self.repo.get_version(session, visit_id, version_number)
            if row is None:
                raise NotFoundError(f"Version {version_number} of visit {visit_id} not found")
            return self.repo.to_version(row)

    def diff(self, from_version: VisitVersion, to_version: VisitVersion) -> list[SectionDiff]:
        return diff_versions(from_version, to_version)

    def compare(self, visit_id: str, from_number: int, to_number: int) -> list[SectionDiff]:
        return self.diff(self.get_version(visit_id, from_number), self.get_version(visit_id, to_number))

    def timeline(self, visit_id: str) -> list[TimelineEntry]:
        versions = self.list_versions(visit_id)
        entries: list[TimelineEntry] = []
        for index, version in enumerate(versions):
            previous = versions[index + 1] if index + 1 < len(versions) else None
            changes = self.diff(previous, version) if previous is not None else []
            entries.append(TimelineEntry(version=version, changes=changes))
        return entries

    def _prepare_edit(self, current: VisitRecord) -> dict[str, object]:
        self.lifecycle.require_editable(current)
        return {}

    def _append_version(
        self,
        session: Session,
        row: models.Visit,
        actor_login: str,
        change_reason: str,
    ) -> models.VisitVersionRow:
        version_number = self.repo.max_version_number(session, str(row.id)) + 1
        if version_number != int(row.version_number):
            raise ConcurrentCommitConflictError(
                f"Visit {row.id} is at version {row.version_number} but its log ends at {version_number - 1}",
                expected_version=int(row.version_number),
                current_version=version_number - 1,
            )
        return self.repo.add_version(
            session,
            row=row,
            version_number=version_number,
            changed_by=actor_login,
            changed_at=self._clock(),
            change_reason=change_reason,
        )

    @contextmanager
    def _visit_lock(self, visit_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(visit_id, threading.Lock())
        with lock:
            yield

    def write_audit(
        self,
        *,
        session: Session,
        actor_id: int | None,
        actor_role: str,
        visit_id: str,
        action: str,
        status_from: str | None,
        status_to: str | None,
        expected_version: int | None,
        new_version: int,
        changes: dict[str, Any],
    ) -> None:
        payload_json = json.dumps(
            {
                "schema": "visitdoc.audit.v1",
                "actor": {"user_id": actor_id, "role": actor_role},
                "event": {
                    "ts": self._clock().isoformat(),
                    "action": action,
                    "status_from": status_from,
                    "status_to": status_to,
                },
                "entity": {"type": "visit", "id": visit_id},
                "changes": {
                    "format": "before_after",
                    "before": changes.get("before", {}),
                    "after": changes.get("after", {}),
                },
                "meta": {"expected_version": expected_version, "new_version": new_version},
            },
            ensure_ascii=False,
            default=str,
        )
        self.audit_repo.add_event(
            session,
            user_id=actor_id,
            entity_type="visit",
            entity_id=visit_id,
            action=f"visit_{action}",
            payload_json=payload_json,
        )

    def resolve_actor(self, actor_id: int | None) -> tuple[str, str]:
        if actor_id is None:
            return "system", "system"
        with self.session_factory() as session:
            actor = self.user_repo.get_by_id(session, actor_id)
            if actor is None:
                return f"user_{actor_id}", "unknown"
            return str(actor.login), str(actor.role)

from __future__ import annotations

import json
from datetime import UTC, date, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from visitdoc.domain.constants import VisitStatus, VisitType
from visitdoc.domain.models.visit import VisitRecord, VisitSections, VisitVersion
from visitdoc.errors import ConcurrentCommitConflictError, NotFoundError
from visitdoc.infrastructure.db import models_sqlalchemy as models

_SECTION_JSON_FIELD_MAP = {
    "vitals": ("vitals_json", "{}"),
    "soap": ("soap_json", "{}"),
    "notes": ("notes_json", "{}"),
    "diagnoses": ("diagnoses_json", "[]"),
    "prescriptions": ("prescriptions_json", "[]"),
}

_RECORD_COLUMNS = frozenset(
    {
        "visit_type",
        "status",
        "signed_by",
        "signed_at",
        "signature_hash",
        "locked_at",
    }
)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _normalize_datetime(dt: datetime | None) -> datetime | None:
    # SQLite DateTime columns are naive; everything is stored as UTC.
    if dt is None:
        return None
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def _as_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _to_json(value: object, *, default: str) -> str:
    if value is None:
        return default
    return json.dumps(value, ensure_ascii=False, default=str)


def _from_json(value: object, *, default: object) -> Any:
    if value is None:
        return default
    if isinstance(value, (list, dict)):
        return value
    try:
        return json.loads(str(value))
    except (TypeError, ValueError):
        return default


class VisitRepository:
    def create_visit(
        self,
        session: Session,
        *,
        patient_id: str,
        provider_id: str,
        visit_date: date,
        visit_type: str,
        sections_payload: dict[str, Any],
        actor_login: str,
        visit_id: str | None = None,
    ) -> models.Visit:
        now = _normalize_datetime(_utc_now())
        row = models.Visit(
            id=visit_id or str(uuid4()),
            patient_id=patient_id,
            provider_id=provider_id,
            visit_date=visit_date,
            visit_type=str(visit_type),
            status=VisitStatus.DRAFT.value,
            version_number=1,
            created_at=now,
            created_by=actor_login,
            updated_at=now,
            updated_by=actor_login,
        )
        self._apply_sections_payload(row, sections_payload)
        session.add(row)
        session.flush()
        return row

    def get_visit(self, session: Session, visit_id: str) -> models.Visit | None:
        return session.get(models.Visit, visit_id)

    def require_visit(self, session: Session, visit_id: str) -> models.Visit:
        row = self.get_visit(session, visit_id)
        if row is None:
            raise NotFoundError(f"Visit {visit_id} not found")
        return row

    def list_visits(
        self,
        session: Session,
        *,
        filters: dict[str, object] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[models.Visit]:
        filters = filters or {}
        stmt = select(models.Visit)

        patient_id = str(filters.get("patient_id") or "").strip()
        if patient_id:
            stmt = stmt.where(models.Visit.patient_id == patient_id)

        provider_id = str(filters.get("provider_id") or "").strip()
        if provider_id:
            stmt = stmt.where(models.Visit.provider_id == provider_id)

        status = filters.get("status")
        if status:
            stmt = stmt.where(models.Visit.status == str(status))

        date_from = filters.get("date_from")
        if isinstance(date_from, date):
            stmt = stmt.where(models.Visit.visit_date >= date_from)
        date_to = filters.get("date_to")
        if isinstance(date_to, date):
            stmt = stmt.where(models.Visit.visit_date <= date_to)

        stmt = (
            stmt.order_by(models.Visit.visit_date.desc(), models.Visit.updated_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(session.execute(stmt).scalars())

    def update_visit(
        self,
        session: Session,
        *,
        visit_id: str,
        payload: dict[str, object],
        sections_payload: dict[str, Any] | None,
        expected_version: int,
        actor_login: str,
    ) -> models.Visit:
        row = self.require_visit(session, visit_id)
        current = int(row.version_number)
        if current != expected_version:
            raise ConcurrentCommitConflictError(
                f"Visit {visit_id} was saved elsewhere (expected version {expected_version}, found {current})",
                expected_version=expected_version,
                current_version=current,
            )
        self._apply_record_payload(row, payload)
        if sections_payload is not None:
            self._apply_sections_payload(row, sections_payload)
        row.updated_at = _normalize_datetime(_utc_now())  # type: ignore[assignment]
        row.updated_by = actor_login  # type: ignore[assignment]
        row.version_number = current + 1  # type: ignore[assignment]
        session.flush()
        return row

    def max_version_number(self, session: Session, visit_id: str) -> int:
        stmt = select(func.coalesce(func.max(models.VisitVersionRow.version_number), 0)).where(
            models.VisitVersionRow.visit_id == visit_id
        )
        return int(session.execute(stmt).scalar_one())

    def add_version(
        self,
        session: Session,
        *,
        row: models.Visit,
        version_number: int,
        changed_by: str,
        changed_at: datetime,
        change_reason: str | None,
    ) -> models.VisitVersionRow:
        version_row = models.VisitVersionRow(
            id=str(uuid4()),
            visit_id=row.id,
            version_number=version_number,
            status=str(row.status),
            visit_type=str(row.visit_type),
            visit_data_json=json.dumps(self.to_sections_dict(row), ensure_ascii=False, default=str),
            changed_by=changed_by,
            changed_at=_normalize_datetime(changed_at),
            change_reason=change_reason,
        )
        session.add(version_row)
        session.flush()
        return version_row

    def list_versions(self, session: Session, visit_id: str) -> list[models.VisitVersionRow]:
        stmt = (
            select(models.VisitVersionRow)
            .where(models.VisitVersionRow.visit_id == visit_id)
            .order_by(models.VisitVersionRow.version_number.desc())
        )
        return list(session.execute(stmt).scalars())

    def get_version(self, session: Session, visit_id: str, version_number: int) -> models.VisitVersionRow | None:
        stmt = select(models.VisitVersionRow).where(
            models.VisitVersionRow.visit_id == visit_id,
            models.VisitVersionRow.version_number == version_number,
        )
        return session.execute(stmt).scalar_one_or_none()

    def to_sections_dict(self, row: models.Visit) -> dict[str, Any]:
        return {
            section: _from_json(getattr(row, column), default=_from_json(default, default=None))
            for section, (column, default) in _SECTION_JSON_FIELD_MAP.items()
        }

    def to_visit_dict(self, row: models.Visit) -> dict[str, Any]:
        payload = {
            column.name: getattr(row, column.name)
            for column in row.__table__.columns
            if not column.name.endswith("_json")
        }
        payload["sections"] = self.to_sections_dict(row)
        return payload

    def to_record(self, row: models.Visit) -> VisitRecord:
        return VisitRecord(
            id=str(row.id),
            patient_id=str(row.patient_id),
            provider_id=str(row.provider_id),
            visit_date=row.visit_date,  # type: ignore[arg-type]
            visit_type=VisitType(str(row.visit_type)),
            status=VisitStatus(str(row.status)),
            version_number=int(row.version_number),
            sections=VisitSections.from_dict(self.to_sections_dict(row)),
            signed_by=row.signed_by,  # type: ignore[arg-type]
            signed_at=_as_utc(row.signed_at),  # type: ignore[arg-type]
            signature_hash=row.signature_hash,  # type: ignore[arg-type]
            locked_at=_as_utc(row.locked_at),  # type: ignore[arg-type]
            created_at=_as_utc(row.created_at),  # type: ignore[arg-type]
            created_by=row.created_by,  # type: ignore[arg-type]
            updated_at=_as_utc(row.updated_at),  # type: ignore[arg-type]
            updated_by=row.updated_by,  # type: ignore[arg-type]
        )

    def to_version(self, row: models.VisitVersionRow) -> VisitVersion:
        return VisitVersion(
            id=str(row.id),
            visit_id=str(row.visit_id),
            version_number=int(row.version_number),
            status=VisitStatus(str(row.status)),
            visit_type=VisitType(str(row.visit_type)),
            data=_from_json(row.visit_data_json, default={}),
            changed_by=str(row.changed_by),
            changed_at=_as_utc(row.changed_at),  # type: ignore[arg-type]
            change_reason=row.change_reason,  # type: ignore[arg-type]
        )

    def _apply_record_payload(self, row: models.Visit, payload: dict[str, object]) -> None:
        for key, value in payload.items():
            if key not in _RECORD_COLUMNS:
                continue
            if key in {"signed_at", "locked_at"}:
                value = _normalize_datetime(value)  # type: ignore[arg-type]
            elif key in {"status", "visit_type"}:
                value = str(value)
            setattr(row, key, value)

    def _apply_sections_payload(self, row: models.Visit, payload: dict[str, Any]) -> None:
        for key, value in payload.items():
            mapped = _SECTION_JSON_FIELD_MAP.get(key)
            if not mapped:
                continue
            column, default = mapped
            setattr(row, column, _to_json(value, default=default))

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship
from sqlalchemy.sql import expression

naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=naming_convention)


class Base(DeclarativeBase):
    metadata = metadata


def utc_now() -> datetime:
    return datetime.now(UTC)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    login = Column(String, unique=True, nullable=False)
    full_name = Column(String, nullable=True)
    role = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=expression.true())
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("role in ('admin','provider','nurse')", name="ck_users_role"),
    )


class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True)
    event_ts = Column(DateTime, nullable=False, default=utc_now)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)
    action = Column(String, nullable=False)
    payload_json = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_audit_log_entity_type_entity_id", "entity_type", "entity_id"),
    )


class Visit(Base):
    __tablename__ = "visits"

    id = Column(String(36), primary_key=True)
    patient_id = Column(String, nullable=False, index=True)
    provider_id = Column(String, nullable=False)
    visit_date = Column(Date, nullable=False)
    visit_type = Column(String, nullable=False)
    status = Column(String, nullable=False, server_default="DRAFT")
    version_number = Column(Integer, nullable=False, server_default="1")

    vitals_json = Column(Text, nullable=False, server_default="{}")
    soap_json = Column(Text, nullable=False, server_default="{}")
    notes_json = Column(Text, nullable=False, server_default="{}")
    diagnoses_json = Column(Text, nullable=False, server_default="[]")
    prescriptions_json = Column(Text, nullable=False, server_default="[]")

    signed_by = Column(String, nullable=True)
    signed_at = Column(DateTime, nullable=True)
    signature_hash = Column(String(64), nullable=True)
    locked_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    created_by = Column(String, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utc_now)
    updated_by = Column(String, nullable=True)

    versions = relationship(
        "VisitVersionRow",
        back_populates="visit",
        order_by="VisitVersionRow.version_number",
    )

    __table_args__ = (
        CheckConstraint(
            "status in ('DRAFT','IN_PROGRESS','COMPLETED','SIGNED','LOCKED')",
            name="ck_visits_status",
        ),
        CheckConstraint("version_number >= 1", name="ck_visits_version_number"),
        Index("ix_visits_patient_date", "patient_id", "visit_date"),
    )


class VisitVersionRow(Base):
    __tablename__ = "visit_versions"

    id = Column(String(36), primary_key=True)
    visit_id = Column(String(36), ForeignKey("visits.id"), nullable=False)
    version_number = Column(Integer, nullable=False)
    status = Column(String, nullable=False)
    visit_type = Column(String, nullable=False)
    visit_data_json = Column(Text, nullable=False)
    changed_by = Column(String, nullable=False)
    changed_at = Column(DateTime, nullable=False, default=utc_now)
    change_reason = Column(String, nullable=True)

    visit = relationship("Visit", back_populates="versions")

    __table_args__ = (
        UniqueConstraint("visit_id", "version_number", name="uq_visit_versions_visit_number"),
        Index("ix_visit_versions_visit_id", "visit_id"),
    )

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field, fields, replace
from collections.abc import Mapping
from datetime import date, datetime
from types import MappingProxyType
from typing import Any

from visitdoc.domain.constants import (
    DiagnosisType,
    InteractionSeverity,
    VisitSection,
    VisitStatus,
    VisitType,
)


def calculate_bmi(weight_kg: float | None, height_cm: float | None) -> float | None:
    if not weight_kg or not height_cm:
        return None
    height_m = height_cm / 100.0
    return weight_kg / (height_m * height_m)


@dataclass(slots=True)
class VitalSigns:
    blood_pressure_systolic: float | None = None
    blood_pressure_diastolic: float | None = None
    heart_rate: float | None = None
    respiratory_rate: float | None = None
    temperature_celsius: float | None = None
    weight_kg: float | None = None
    height_cm: float | None = None
    oxygen_saturation: float | None = None
    bmi: float | None = None

    def with_bmi(self) -> VitalSigns:
        return replace(self, bmi=calculate_bmi(self.weight_kg, self.height_cm))


@dataclass(slots=True)
class SoapNote:
    subjective: str | None = None
    objective: str | None = None
    assessment: str | None = None
    plan: str | None = None


@dataclass(slots=True)
class ClinicalNotes:
    additional_notes: str | None = None
    follow_up_instructions: str | None = None


@dataclass(slots=True)
class SelectedDiagnosis:
    icd10_code: str
    description: str
    diagnosis_type: DiagnosisType = DiagnosisType.PROVISIONAL
    is_primary: bool = False
    notes: str | None = None


@dataclass(slots=True)
class PrescriptionDraft:
    medication_name: str
    dosage: str
    frequency: str
    generic_name: str | None = None
    form: str | None = None
    route: str | None = None
    duration: str | None = None
    quantity: int | None = None
    refills: int | None = None
    instructions: str | None = None
    pharmacy_notes: str | None = None
    prescribed_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None


@dataclass(slots=True)
class VisitSections:
    vitals: VitalSigns = field(default_factory=VitalSigns)
    soap: SoapNote = field(default_factory=SoapNote)
    notes: ClinicalNotes = field(default_factory=ClinicalNotes)
    diagnoses: list[SelectedDiagnosis] = field(default_factory=list)
    prescriptions: list[PrescriptionDraft] = field(default_factory=list)

    def get(self, section: VisitSection) -> Any:
        return copy.deepcopy(getattr(self, VisitSection(section).value))

    def with_section(self, section: VisitSection, value: Any) -> VisitSections:
        updated = copy.deepcopy(self)
        setattr(updated, VisitSection(section).value, copy.deepcopy(value))
        return updated

    def to_dict(self) -> dict[str, Any]:
        return {
            "vitals": asdict(self.vitals),
            "soap": asdict(self.soap),
            "notes": asdict(self.notes),
            "diagnoses": [asdict(item) for item in self.diagnoses],
            "prescriptions": [_prescription_to_dict(item) for item in self.prescriptions],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> VisitSections:
        payload = payload or {}
        return cls(
            vitals=_build(VitalSigns, payload.get("vitals")),
            soap=_build(SoapNote, payload.get("soap")),
            notes=_build(ClinicalNotes, payload.get("notes")),
            diagnoses=[_diagnosis_from_dict(item) for item in payload.get("diagnoses") or []],
            prescriptions=[_prescription_from_dict(item) for item in payload.get("prescriptions") or []],
        )


@dataclass(slots=True)
class VisitRecord:
    id: str
    patient_id: str
    provider_id: str
    visit_date: date
    visit_type: VisitType
    status: VisitStatus
    version_number: int
    sections: VisitSections = field(default_factory=VisitSections)
    signed_by: str | None = None
    signed_at: datetime | None = None
    signature_hash: str | None = None
    locked_at: datetime | None = None
    created_at: datetime | None = None
    created_by: str | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None


@dataclass(frozen=True, slots=True)
class VisitVersion:
    id: str
    visit_id: str
    version_number: int
    status: VisitStatus
    visit_type: VisitType
    data: Mapping[str, Any]
    changed_by: str
    changed_at: datetime
    change_reason: str | None = None

    def __post_init__(self) -> None:
        # snapshots are read-only all the way down
        object.__setattr__(self, "data", _freeze(self.data))

    @property
    def sections(self) -> VisitSections:
        return VisitSections.from_dict(_thaw(self.data))


@dataclass(frozen=True, slots=True)
class SectionDiff:
    field: str
    title: str
    from_value: str | None
    to_value: str | None
    changed: bool


@dataclass(frozen=True, slots=True)
class DrugInteractionWarning:
    medication_name: str
    severity: InteractionSeverity
    description: str


def _build(cls: type, payload: dict[str, Any] | None) -> Any:
    payload = payload or {}
    names = {item.name for item in fields(cls)}
    return cls(**{key: value for key, value in payload.items() if key in names})


def _diagnosis_from_dict(payload: dict[str, Any]) -> SelectedDiagnosis:
    item = _build(SelectedDiagnosis, payload)
    item.diagnosis_type = DiagnosisType(item.diagnosis_type)
    return item


def _prescription_to_dict(item: PrescriptionDraft) -> dict[str, Any]:
    payload = asdict(item)
    for key in ("prescribed_date", "start_date", "end_date"):
        value = payload.get(key)
        if isinstance(value, date):
            payload[key] = value.isoformat()
    return payload


def _prescription_from_dict(payload: dict[str, Any]) -> PrescriptionDraft:
    item = _build(PrescriptionDraft, payload)
    for key in ("prescribed_date", "start_date", "end_date"):
        value = getattr(item, key)
        if isinstance(value, str) and value:
            setattr(item, key, date.fromisoformat(value))
    return item


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value

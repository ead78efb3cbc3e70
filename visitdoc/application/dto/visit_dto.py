from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from visitdoc.domain.constants import (
    DiagnosisType,
    MedicationForm,
    RouteOfAdministration,
    VisitStatus,
    VisitType,
)
from visitdoc.domain.models.visit import (
    ClinicalNotes,
    PrescriptionDraft,
    SelectedDiagnosis,
    SoapNote,
    VisitRecord,
    VisitSections,
    VitalSigns,
)


class VitalSignsDto(BaseModel):
    model_config = ConfigDict(extra="ignore")

    blood_pressure_systolic: float | None = Field(default=None, ge=70, le=250)
    blood_pressure_diastolic: float | None = Field(default=None, ge=40, le=150)
    heart_rate: float | None = Field(default=None, ge=30, le=250)
    respiratory_rate: float | None = Field(default=None, ge=8, le=60)
    temperature_celsius: float | None = Field(default=None, ge=35, le=42)
    weight_kg: float | None = Field(default=None, ge=0.5, le=500)
    height_cm: float | None = Field(default=None, ge=20, le=300)
    oxygen_saturation: float | None = Field(default=None, ge=70, le=100)

    def to_domain(self) -> VitalSigns:
        # bmi is always derived, never taken from input
        return VitalSigns(**self.model_dump()).with_bmi()


class SoapNoteDto(BaseModel):
    # Free text is stored exactly as typed; the version diff is literal.
    subjective: str | None = None
    objective: str | None = None
    assessment: str | None = None
    plan: str | None = None

    def to_domain(self) -> SoapNote:
        return SoapNote(**self.model_dump())


class ClinicalNotesDto(BaseModel):
    additional_notes: str | None = None
    follow_up_instructions: str | None = None

    def to_domain(self) -> ClinicalNotes:
        return ClinicalNotes(**self.model_dump())


class DiagnosisDto(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    icd10_code: str = Field(min_length=1)
    description: str = Field(min_length=1)
    diagnosis_type: DiagnosisType = DiagnosisType.PROVISIONAL
    is_primary: bool = False
    notes: str | None = None

    def to_domain(self) -> SelectedDiagnosis:
        return SelectedDiagnosis(**self.model_dump())


class PrescriptionDto(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    medication_name: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    frequency: str = Field(min_length=1)
    generic_name: str | None = None
    form: MedicationForm | None = None
    route: RouteOfAdministration | None = None
    duration: str | None = None
    quantity: int | None = Field(default=None, ge=0)
    refills: int | None = Field(default=None, ge=0)
    instructions: str | None = None
    pharmacy_notes: str | None = None
    prescribed_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None

    @model_validator(mode="after")
    def _check_dates(self) -> PrescriptionDto:
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot precede start_date")
        return self

    def to_domain(self) -> PrescriptionDraft:
        payload = self.model_dump()
        payload["form"] = str(self.form) if self.form else None
        payload["route"] = str(self.route) if self.route else None
        return PrescriptionDraft(**payload)

    @classmethod
    def from_domain(cls, draft: PrescriptionDraft) -> PrescriptionDto:
        return cls.model_validate(asdict(draft))


class VisitSectionsDto(BaseModel):
    vitals: VitalSignsDto = Field(default_factory=VitalSignsDto)
    soap: SoapNoteDto = Field(default_factory=SoapNoteDto)
    notes: ClinicalNotesDto = Field(default_factory=ClinicalNotesDto)
    diagnoses: list[DiagnosisDto] = Field(default_factory=list)
    prescriptions: list[PrescriptionDto] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_single_primary(self) -> VisitSectionsDto:
        if sum(1 for item in self.diagnoses if item.is_primary) > 1:
            raise ValueError("Only one diagnosis can be marked primary")
        return self

    def to_domain(self) -> VisitSections:
        return VisitSections(
            vitals=self.vitals.to_domain(),
            soap=self.soap.to_domain(),
            notes=self.notes.to_domain(),
            diagnoses=[item.to_domain() for item in self.diagnoses],
            prescriptions=[item.to_domain() for item in self.prescriptions],
        )


class VisitCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    patient_id: str = Field(min_length=1)
    provider_id: str = Field(min_length=1)
    visit_date: date
    visit_type: VisitType = VisitType.FOLLOW_UP
    sections: VisitSectionsDto = Field(default_factory=VisitSectionsDto)


class VisitFilters(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    patient_id: str | None = None
    provider_id: str | None = None
    status: VisitStatus | None = None
    date_from: date | None = None
    date_to: date | None = None


class VisitListItemDto(BaseModel):
    id: str
    patient_id: str
    provider_id: str
    visit_date: date
    visit_type: VisitType
    status: VisitStatus
    version_number: int
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record: VisitRecord) -> VisitListItemDto:
        return cls(
            id=record.id,
            patient_id=record.patient_id,
            provider_id=record.provider_id,
            visit_date=record.visit_date,
            visit_type=record.visit_type,
            status=record.status,
            version_number=record.version_number,
            updated_at=record.updated_at,
        )


from __future__ import annotations

from enum import StrEnum


class VisitStatus(StrEnum):
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    SIGNED = "SIGNED"
    LOCKED = "LOCKED"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class VisitType(StrEnum):
    NEW_PATIENT = "NEW_PATIENT"
    FOLLOW_UP = "FOLLOW_UP"
    URGENT = "URGENT"
    CONSULTATION = "CONSULTATION"
    ROUTINE_CHECKUP = "ROUTINE_CHECKUP"
    ACUPUNCTURE = "ACUPUNCTURE"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class DiagnosisType(StrEnum):
    PROVISIONAL = "PROVISIONAL"
    CONFIRMED = "CONFIRMED"
    DIFFERENTIAL = "DIFFERENTIAL"
    RULE_OUT = "RULE_OUT"


class MedicationForm(StrEnum):
    TABLET = "TABLET"
    CAPSULE = "CAPSULE"
    LIQUID = "LIQUID"
    SYRUP = "SYRUP"
    SUSPENSION = "SUSPENSION"
    INJECTION = "INJECTION"
    TOPICAL = "TOPICAL"
    CREAM = "CREAM"
    OINTMENT = "OINTMENT"
    GEL = "GEL"
    PATCH = "PATCH"
    INHALER = "INHALER"
    DROPS = "DROPS"
    SUPPOSITORY = "SUPPOSITORY"
    OTHER = "OTHER"


class RouteOfAdministration(StrEnum):
    ORAL = "ORAL"
    TOPICAL = "TOPICAL"
    INTRAVENOUS = "INTRAVENOUS"
    INTRAMUSCULAR = "INTRAMUSCULAR"
    SUBCUTANEOUS = "SUBCUTANEOUS"
    SUBLINGUAL = "SUBLINGUAL"
    RECTAL = "RECTAL"
    INHALATION = "INHALATION"
    OPHTHALMIC = "OPHTHALMIC"
    OTIC = "OTIC"
    NASAL = "NASAL"
    TRANSDERMAL = "TRANSDERMAL"
    OTHER = "OTHER"


class InteractionSeverity(StrEnum):
    CONTRAINDICATED = "contraindicated"
    MAJOR = "major"
    MODERATE = "moderate"
    MINOR = "minor"
    UNKNOWN = "unknown"

    @property
    def priority(self) -> int:
        return _SEVERITY_PRIORITY[self]


_SEVERITY_PRIORITY = {
    InteractionSeverity.CONTRAINDICATED: 5,
    InteractionSeverity.MAJOR: 4,
    InteractionSeverity.MODERATE: 3,
    InteractionSeverity.MINOR: 2,
    InteractionSeverity.UNKNOWN: 1,
}


class VisitSection(StrEnum):
    VITALS = "vitals"
    SOAP = "soap"
    NOTES = "notes"
    DIAGNOSES = "diagnoses"
    PRESCRIPTIONS = "prescriptions"


class AutoSaveStatus(StrEnum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class Sex(StrEnum):
    MALE = "male"
    FEMALE = "female"

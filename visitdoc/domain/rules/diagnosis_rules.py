from __future__ import annotations

from dataclasses import replace

from visitdoc.domain.models.visit import SelectedDiagnosis


def add_diagnosis(diagnoses: list[SelectedDiagnosis], diagnosis: SelectedDiagnosis) -> list[SelectedDiagnosis]:
    # The first diagnosis added to an empty list becomes primary.
    if any(item.icd10_code == diagnosis.icd10_code for item in diagnoses):
        raise ValueError(f"Diagnosis {diagnosis.icd10_code} is already on the visit")
    updated = [replace(item) for item in diagnoses]
    updated.append(replace(diagnosis, is_primary=not updated))
    return updated


def remove_diagnosis(diagnoses: list[SelectedDiagnosis], index: int) -> list[SelectedDiagnosis]:
    if not 0 <= index < len(diagnoses):
        raise IndexError(f"No diagnosis at position {index}")
    removed = diagnoses[index]
    updated = [replace(item) for i, item in enumerate(diagnoses) if i != index]
    if removed.is_primary and updated:
        updated[0].is_primary = True
    return updated


def set_primary(diagnoses: list[SelectedDiagnosis], index: int) -> list[SelectedDiagnosis]:
    if not 0 <= index < len(diagnoses):
        raise IndexError(f"No diagnosis at position {index}")
    return [replace(item, is_primary=i == index) for i, item in enumerate(diagnoses)]


def primary_diagnosis(diagnoses: list[SelectedDiagnosis]) -> SelectedDiagnosis | None:
    return next((item for item in diagnoses if item.is_primary), None)


def validate_single_primary(diagnoses: list[SelectedDiagnosis]) -> None:
    if sum(1 for item in diagnoses if item.is_primary) > 1:
        raise ValueError("Only one diagnosis can be marked primary")

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import asdict
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from visitdoc.application.dto.visit_dto import (
    ClinicalNotesDto,
    DiagnosisDto,
    PrescriptionDto,
    SoapNoteDto,
    VitalSignsDto,
)
from visitdoc.application.scheduling import SaveRunner, Scheduler
from visitdoc.application.services.autosave_pipeline import AutoSavePipeline, VisitGateway
from visitdoc.application.services.interaction_gate import GateOutcome, InteractionChecker, InteractionGate
from visitdoc.application.services.lifecycle_service import LifecycleController
from visitdoc.domain.constants import VisitSection
from visitdoc.domain.models.visit import (
    ClinicalNotes,
    DrugInteractionWarning,
    PrescriptionDraft,
    SelectedDiagnosis,
    SoapNote,
    VisitRecord,
    VitalSigns,
)
from visitdoc.domain.rules import diagnosis_rules
from visitdoc.errors import ValidationError

logger = logging.getLogger(__name__)


def _validated(dto_cls: type[BaseModel], value: object) -> Any:
    payload = dict(value) if isinstance(value, Mapping) else asdict(value)  # type: ignore[arg-type]
    try:
        return dto_cls.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(str(exc)) from exc


class VisitEditor:
    """Editing session for one visit.

    Every edit is checked with the lifecycle controller before it reaches the autosave
    pipeline. Prescriptions pass through the interaction gate first.
    """

    def __init__(
        self,
        visit: VisitRecord,
        *,
        lifecycle: LifecycleController,
        gateway: VisitGateway,
        scheduler: Scheduler,
        runner: SaveRunner,
        actor_id: int | None = None,
        interaction_checker: InteractionChecker | None = None,
        current_medications: Sequence[str] = (),
        debounce_seconds: float = 30.0,
        saved_display_seconds: float = 2.0,
    ) -> None:
        self.lifecycle = lifecycle
        self.actor_id = actor_id
        self.interaction_checker = interaction_checker
        # medications the patient already takes outside this visit
        self.current_medications = list(current_medications)
        self.pipeline = AutoSavePipeline(
            visit,
            gateway=gateway,
            permission=lifecycle,
            scheduler=scheduler,
            runner=runner,
            actor_id=actor_id,
            debounce_seconds=debounce_seconds,
            saved_display_seconds=saved_display_seconds,
        )
        self.gate = InteractionGate(on_release=self._append_prescription)

    @property
    def visit(self) -> VisitRecord:
        return self.pipeline.visit

    def can_edit(self) -> bool:
        return self.lifecycle.can_edit(self.pipeline.visit)

    def set_vitals(self, vitals: VitalSigns | Mapping[str, object]) -> VitalSigns:
        self._require_editable()
        value = _validated(VitalSignsDto, vitals).to_domain()
        self.pipeline.update_section(VisitSection.VITALS, value)
        return value

    def set_soap(self, soap: SoapNote | Mapping[str, object]) -> SoapNote:
        self._require_editable()
        value = _validated(SoapNoteDto, soap).to_domain()
        self.pipeline.update_section(VisitSection.SOAP, value)
        return value

    def set_notes(self, notes: ClinicalNotes | Mapping[str, object]) -> ClinicalNotes:
        self._require_editable()
        value = _validated(ClinicalNotesDto, notes).to_domain()
        self.pipeline.update_section(VisitSection.NOTES, value)
        return value

    def add_diagnosis(self, diagnosis: SelectedDiagnosis | Mapping[str, object]) -> list[SelectedDiagnosis]:
        self._require_editable()
        item = _validated(DiagnosisDto, diagnosis).to_domain()
        return self._set_diagnoses(diagnosis_rules.add_diagnosis(self._diagnoses(), item))

    def remove_diagnosis(self, index: int) -> list[SelectedDiagnosis]:
        self._require_editable()
        return self._set_diagnoses(diagnosis_rules.remove_diagnosis(self._diagnoses(), index))

    def set_primary_diagnosis(self, index: int) -> list[SelectedDiagnosis]:
        self._require_editable()
        return self._set_diagnoses(diagnosis_rules.set_primary(self._diagnoses(), index))

    def check_medication(self, medication_name: str) -> list[DrugInteractionWarning]:
        if self.interaction_checker is None:
            return []
        return self.gate.detect_new_interactions(
            self.interaction_checker,
            medication_name,
            self.medication_list(),
        )

    def medication_list(self) -> list[str]:
        """Patient medications plus this visit's prescriptions, without duplicates."""
        names: list[str] = []
        seen: set[str] = set()
        for name in [*self.current_medications, *(item.medication_name for item in self._prescriptions())]:
            key = name.strip().casefold()
            if key and key not in seen:
                seen.add(key)
                names.append(name.strip())
        return names

    def submit_prescription(
        self,
        draft: PrescriptionDraft | Mapping[str, object],
        warnings: Sequence[DrugInteractionWarning] | None = None,
    ) -> GateOutcome:
        self._require_editable()
        prescription = _validated(PrescriptionDto, draft).to_domain()
        if warnings is None:
            warnings = self.check_medication(prescription.medication_name)
        return self.gate.submit(prescription, warnings)

    def confirm_prescription(self) -> PrescriptionDraft:
        return self.gate.confirm()

    def cancel_prescription(self) -> None:
        self.gate.cancel()

    def remove_prescription(self, index: int) -> list[PrescriptionDraft]:
        self._require_editable()
        prescriptions = self._prescriptions()
        if not 0 <= index < len(prescriptions):
            raise IndexError(f"No prescription at position {index}")
        del prescriptions[index]
        self.pipeline.update_section(VisitSection.PRESCRIPTIONS, prescriptions)
        return prescriptions

    def save_now(self) -> bool:
        self._require_editable()
        return self.pipeline.save_now()

    def sign(self, signed_by: str | None = None) -> VisitRecord:
        self._require_saved()
        visit = self.pipeline.visit
        record = self.lifecycle.sign(
            visit.id,
            actor_id=self.actor_id,
            expected_version=visit.version_number,
            signed_by=signed_by,
        )
        self.pipeline.sync_visit(record)
        return record

    def lock(self) -> VisitRecord:
        self._require_saved()
        visit = self.pipeline.visit
        record = self.lifecycle.lock(visit.id, actor_id=self.actor_id, expected_version=visit.version_number)
        self.pipeline.sync_visit(record)
        return record

    def close(self) -> None:
        if self.gate.is_holding:
            self.gate.cancel()
        self.pipeline.close()

    def _append_prescription(self, draft: PrescriptionDraft) -> None:
        self._require_editable()
        prescriptions = self._prescriptions()
        prescriptions.append(draft)
        self.pipeline.update_section(VisitSection.PRESCRIPTIONS, prescriptions)
        logger.info("Prescription for %s added to visit %s", draft.medication_name, self.pipeline.visit.id)

    def _diagnoses(self) -> list[SelectedDiagnosis]:
        return self.pipeline.get_section(VisitSection.DIAGNOSES)

    def _prescriptions(self) -> list[PrescriptionDraft]:
        return self.pipeline.get_section(VisitSection.PRESCRIPTIONS)

    def _set_diagnoses(self, diagnoses: list[SelectedDiagnosis]) -> list[SelectedDiagnosis]:
        diagnosis_rules.validate_single_primary(diagnoses)
        self.pipeline.update_section(VisitSection.DIAGNOSES, diagnoses)
        return diagnoses

    def _require_editable(self) -> None:
        self.lifecycle.require_editable(self.pipeline.visit)

    def _require_saved(self) -> None:
        if self.pipeline.has_unsaved_changes:
            raise ValidationError("Save pending changes before finalizing the visit")

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from visitdoc.domain.models.visit import DrugInteractionWarning, PrescriptionDraft
from visitdoc.errors import ValidationError

logger = logging.getLogger(__name__)


class InteractionChecker(Protocol):
    def check(self, medication_name: str, current_medications: Sequence[str]) -> list[DrugInteractionWarning]: ...


class GateOutcome(StrEnum):
    RELEASED = "released"
    HELD = "held"


@dataclass(frozen=True)
class HeldSubmission:
    draft: PrescriptionDraft
    warnings: tuple[DrugInteractionWarning, ...]


def sort_warnings(warnings: Iterable[DrugInteractionWarning]) -> list[DrugInteractionWarning]:
    return sorted(warnings, key=lambda item: item.severity.priority, reverse=True)


def _warning_key(warning: DrugInteractionWarning) -> tuple[str, str]:
    return warning.medication_name.strip().casefold(), warning.description.strip()


class InteractionGate:
    """Holds a prescription back until the prescriber confirms its interaction warnings."""

    def __init__(self, on_release: Callable[[PrescriptionDraft], None]) -> None:
        self._on_release = on_release
        self._held: HeldSubmission | None = None
        self._acknowledged: set[tuple[str, str]] = set()

    @property
    def is_holding(self) -> bool:
        return self._held is not None

    @property
    def held(self) -> HeldSubmission | None:
        return self._held

    @property
    def warnings(self) -> list[DrugInteractionWarning]:
        return list(self._held.warnings) if self._held else []

    def submit(self, draft: PrescriptionDraft, warnings: Sequence[DrugInteractionWarning]) -> GateOutcome:
        if self._held is not None:
            raise ValidationError("Another prescription is waiting for interaction confirmation")
        if not warnings:
            self._on_release(draft)
            return GateOutcome.RELEASED
        self._held = HeldSubmission(draft=draft, warnings=tuple(sort_warnings(warnings)))
        logger.info(
            "Prescription for %s held on %d interaction warning(s)",
            draft.medication_name,
            len(warnings),
        )
        return GateOutcome.HELD

    def confirm(self) -> PrescriptionDraft:
        held = self._require_held()
        self._held = None
        self._acknowledged.update(_warning_key(item) for item in held.warnings)
        logger.info("Interaction warnings confirmed for %s", held.draft.medication_name)
        self._on_release(held.draft)
        return held.draft

    def cancel(self) -> None:
        held = self._require_held()
        self._held = None
        logger.info("Prescription for %s cancelled at interaction check", held.draft.medication_name)

    def is_acknowledged(self, warning: DrugInteractionWarning) -> bool:
        return _warning_key(warning) in self._acknowledged

    def detect_new_interactions(
        self,
        checker: InteractionChecker,
        medication_name: str,
        current_medications: Sequence[str],
    ) -> list[DrugInteractionWarning]:
        warnings = checker.check(medication_name, list(current_medications))
        return sort_warnings(item for item in warnings if not self.is_acknowledged(item))

    def _require_held(self) -> HeldSubmission:
        if self._held is None:
            raise ValidationError("No prescription is waiting for interaction confirmation")
        return self._held

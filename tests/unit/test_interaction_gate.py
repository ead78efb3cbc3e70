from __future__ import annotations

import pytest

from tests.fakes import FakeInteractionChecker
from visitdoc.application.services.interaction_gate import GateOutcome, InteractionGate, sort_warnings
from visitdoc.domain.constants import InteractionSeverity
from visitdoc.domain.models.visit import DrugInteractionWarning, PrescriptionDraft
from visitdoc.errors import ValidationError


def _draft(name: str = "Warfarin") -> PrescriptionDraft:
    return PrescriptionDraft(medication_name=name, dosage="5 mg", frequency="daily")


def _warning(severity: InteractionSeverity, name: str = "Aspirin", text: str = "bleeding") -> DrugInteractionWarning:
    return DrugInteractionWarning(medication_name=name, severity=severity, description=text)


def test_no_warnings_passes_straight_through() -> None:
    released: list[PrescriptionDraft] = []
    gate = InteractionGate(on_release=released.append)
    assert gate.submit(_draft(), []) == GateOutcome.RELEASED
    assert [item.medication_name for item in released] == ["Warfarin"]
    assert gate.is_holding is False


def test_major_warning_holds_until_cancel() -> None:
    released: list[PrescriptionDraft] = []
    gate = InteractionGate(on_release=released.append)
    assert gate.submit(_draft(), [_warning(InteractionSeverity.MAJOR)]) == GateOutcome.HELD
    assert gate.is_holding is True
    gate.cancel()
    assert released == []
    assert gate.is_holding is False


def test_confirm_releases_unchanged_draft() -> None:
    released: list[PrescriptionDraft] = []
    gate = InteractionGate(on_release=released.append)
    draft = _draft()
    gate.submit(draft, [_warning(InteractionSeverity.MAJOR)])
    assert gate.confirm() == draft
    assert released == [draft]


def test_warnings_are_sorted_by_severity() -> None:
    gate = InteractionGate(on_release=lambda _draft: None)
    gate.submit(
        _draft(),
        [
            _warning(InteractionSeverity.UNKNOWN, text="u"),
            _warning(InteractionSeverity.MINOR, text="m"),
            _warning(InteractionSeverity.CONTRAINDICATED, text="c"),
            _warning(InteractionSeverity.MODERATE, text="mod"),
            _warning(InteractionSeverity.MAJOR, text="maj"),
        ],
    )
    assert [item.severity for item in gate.warnings] == [
        InteractionSeverity.CONTRAINDICATED,
        InteractionSeverity.MAJOR,
        InteractionSeverity.MODERATE,
        InteractionSeverity.MINOR,
        InteractionSeverity.UNKNOWN,
    ]


def test_second_submission_while_holding_is_rejected() -> None:
    gate = InteractionGate(on_release=lambda _draft: None)
    gate.submit(_draft(), [_warning(InteractionSeverity.MINOR)])
    with pytest.raises(ValidationError):
        gate.submit(_draft("Ibuprofen"), [])


def test_confirm_or_cancel_without_held_submission() -> None:
    gate = InteractionGate(on_release=lambda _draft: None)
    with pytest.raises(ValidationError):
        gate.confirm()
    with pytest.raises(ValidationError):
        gate.cancel()


def test_acknowledged_warnings_do_not_resurface() -> None:
    warning = _warning(InteractionSeverity.MAJOR)
    checker = FakeInteractionChecker({"warfarin": [warning]})
    gate = InteractionGate(on_release=lambda _draft: None)

    found = gate.detect_new_interactions(checker, "Warfarin", ["Aspirin"])
    assert found == [warning]
    gate.submit(_draft(), found)
    gate.confirm()

    assert gate.detect_new_interactions(checker, "Warfarin", ["Aspirin"]) == []
    assert checker.calls[-1] == ("Warfarin", ["Aspirin"])


def test_cancelled_warnings_are_not_acknowledged() -> None:
    warning = _warning(InteractionSeverity.MODERATE)
    gate = InteractionGate(on_release=lambda _draft: None)
    gate.submit(_draft(), [warning])
    gate.cancel()
    assert gate.is_acknowledged(warning) is False


def test_sort_warnings_is_stable_within_severity() -> None:
    first = _warning(InteractionSeverity.MINOR, text="first")
    second = _warning(InteractionSeverity.MINOR, text="second")
    assert sort_warnings([first, second]) == [first, second]

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from visitdoc.domain.constants import VisitStatus
from visitdoc.domain.models.visit import SectionDiff, SoapNote, VisitVersion
from visitdoc.errors import InvalidTransitionError

EDITABLE_STATUSES = frozenset({VisitStatus.DRAFT, VisitStatus.IN_PROGRESS, VisitStatus.COMPLETED})
RESTORABLE_STATUSES = frozenset({VisitStatus.DRAFT})

_ALLOWED_TRANSITIONS: dict[VisitStatus, frozenset[VisitStatus]] = {
    VisitStatus.DRAFT: frozenset({VisitStatus.IN_PROGRESS, VisitStatus.COMPLETED, VisitStatus.SIGNED}),
    VisitStatus.IN_PROGRESS: frozenset({VisitStatus.COMPLETED, VisitStatus.SIGNED}),
    VisitStatus.COMPLETED: frozenset({VisitStatus.SIGNED}),
    VisitStatus.SIGNED: frozenset({VisitStatus.LOCKED}),
    VisitStatus.LOCKED: frozenset(),
}

# (field, title) pairs compared by the version diff, in display order.
DIFF_FIELDS: tuple[tuple[str, str], ...] = (
    ("visit_type", "Visit type"),
    ("status", "Status"),
    ("subjective", "Subjective"),
    ("objective", "Objective"),
    ("assessment", "Assessment"),
    ("plan", "Plan"),
    ("additional_notes", "Additional notes"),
    ("follow_up_instructions", "Follow-up instructions"),
)


def is_editable_status(status: str) -> bool:
    return VisitStatus(status) in EDITABLE_STATUSES


def can_transition(from_status: str, to_status: str) -> bool:
    return VisitStatus(to_status) in _ALLOWED_TRANSITIONS[VisitStatus(from_status)]


def validate_status_transition(from_status: str, to_status: str) -> None:
    if can_transition(from_status, to_status):
        return
    raise InvalidTransitionError(f"Status transition {from_status} -> {to_status} is not allowed")


def diff_versions(from_version: VisitVersion, to_version: VisitVersion) -> list[SectionDiff]:
    """Literal field-by-field comparison of two snapshots.

    Values are compared with ``!=`` and never normalized, so a whitespace-only edit is
    reported as a change. Fields empty on both sides are left out.
    """
    before = _diff_values(from_version)
    after = _diff_values(to_version)
    result: list[SectionDiff] = []
    for field_name, title in DIFF_FIELDS:
        from_value = before.get(field_name)
        to_value = after.get(field_name)
        if not from_value and not to_value:
            continue
        result.append(
            SectionDiff(
                field=field_name,
                title=title,
                from_value=from_value,
                to_value=to_value,
                changed=from_value != to_value,
            )
        )
    return result


def build_changed_paths(before: Mapping[str, Any], after: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    before_changes: dict[str, Any] = {}
    after_changes: dict[str, Any] = {}
    _walk_diff(before, after, "", before_changes, after_changes)
    return {"before": before_changes, "after": after_changes}


def signature_content(soap: SoapNote) -> str:
    return "".join(
        value or "" for value in (soap.subjective, soap.objective, soap.assessment, soap.plan)
    )


def _diff_values(version: VisitVersion) -> dict[str, str | None]:
    soap = version.data.get("soap") or {}
    notes = version.data.get("notes") or {}
    return {
        "visit_type": str(version.visit_type) if version.visit_type else None,
        "status": str(version.status) if version.status else None,
        "subjective": soap.get("subjective"),
        "objective": soap.get("objective"),
        "assessment": soap.get("assessment"),
        "plan": soap.get("plan"),
        "additional_notes": notes.get("additional_notes"),
        "follow_up_instructions": notes.get("follow_up_instructions"),
    }


def _walk_diff(
    before: Any,
    after: Any,
    path: str,
    before_changes: dict[str, Any],
    after_changes: dict[str, Any],
) -> None:
    if isinstance(before, Mapping) and isinstance(after, Mapping):
        keys = sorted(set(before.keys()) | set(after.keys()))
        for key in keys:
            child_path = f"{path}.{key}" if path else str(key)
            _walk_diff(before.get(key), after.get(key), child_path, before_changes, after_changes)
        return

    if before != after:
        before_changes[path] = before
        after_changes[path] = after

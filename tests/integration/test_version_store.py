from __future__ import annotations

import threading

import pytest

from tests.integration.support import make_create_request
from visitdoc.domain.constants import VisitStatus, VisitType
from visitdoc.domain.models.visit import SoapNote, VisitSections
from visitdoc.errors import ConcurrentCommitConflictError, NotFoundError, SaveFailedError, ValidationError


def _sections(subjective: str, plan: str = "Fluids") -> VisitSections:
    return VisitSections(soap=SoapNote(subjective=subjective, plan=plan))


def test_commit_appends_versions_newest_first(container, users) -> None:
    provider_id, nurse_id = users
    visit = container.visit_service.create_visit(make_create_request(), actor_id=provider_id)

    second = container.version_store.commit(
        visit.id, sections=_sections("Cough for 4 days"), expected_version=1, actor_id=nurse_id
    )
    third = container.version_store.commit(
        visit.id, sections=_sections("Cough for 5 days"), expected_version=2, actor_id=provider_id
    )

    assert (second.version_number, third.version_number) == (2, 3)
    assert second.changed_by == "nurse.joy"
    versions = container.version_store.list_versions(visit.id)
    assert [item.version_number for item in versions] == [3, 2, 1]
    assert versions[-1].change_reason == "created"
    assert versions[-1].sections.vitals.heart_rate == 88

    fetched = container.version_store.get_version(visit.id, 2)
    assert fetched.sections.soap.subjective == "Cough for 4 days"
    assert container.visit_service.get_visit(visit.id).version_number == 3


def test_missing_version_is_not_found(container, users) -> None:
    provider_id, _ = users
    visit = container.visit_service.create_visit(make_create_request(), actor_id=provider_id)
    with pytest.raises(NotFoundError):
        container.version_store.get_version(visit.id, 9)
    with pytest.raises(NotFoundError):
        container.version_store.list_versions("no-such-visit")


def test_whitespace_only_edit_is_reported_as_change(container, users) -> None:
    provider_id, _ = users
    visit = container.visit_service.create_visit(make_create_request(), actor_id=provider_id)
    container.version_store.commit(
        visit.id, sections=_sections("Cough for 3 days "), expected_version=1, actor_id=provider_id
    )

    changes = {item.field: item for item in container.version_store.compare(visit.id, 1, 2)}

    assert changes["subjective"].changed is True
    assert changes["subjective"].from_value == "Cough for 3 days"
    assert changes["subjective"].to_value == "Cough for 3 days "
    assert changes["plan"].changed is False
    assert changes["status"].changed is False
    assert "objective" not in changes


def test_restore_appends_copy_of_target(container, users) -> None:
    provider_id, _ = users
    visit = container.visit_service.create_visit(make_create_request(), actor_id=provider_id)
    container.version_store.commit(
        visit.id, sections=_sections("Rewritten", plan="Antibiotics"), expected_version=1, actor_id=provider_id
    )

    restored = container.version_store.restore(visit.id, 1, expected_version=2, actor_id=provider_id)

    assert restored.version_number == 3
    assert restored.change_reason == "restore of version 1"
    assert restored.sections == container.version_store.get_version(visit.id, 1).sections
    assert restored.visit_type == VisitType.FOLLOW_UP
    assert container.version_store.get_version(visit.id, 2).sections.soap.subjective == "Rewritten"
    current = container.visit_service.get_visit(visit.id)
    assert current.version_number == 3
    assert current.status == VisitStatus.DRAFT
    assert current.sections.soap.plan == "Fluids"


def test_restore_refuses_version_outside_draft(container, users) -> None:
    provider_id, _ = users
    visit = container.visit_service.create_visit(make_create_request(), actor_id=provider_id)
    container.lifecycle.start(visit.id, actor_id=provider_id, expected_version=1)
    container.version_store.commit(visit.id, sections=_sections("Later"), expected_version=2, actor_id=provider_id)

    with pytest.raises(ValidationError):
        container.version_store.restore(visit.id, 2, expected_version=3, actor_id=provider_id)

    restored = container.version_store.restore(visit.id, 1, expected_version=3, actor_id=provider_id)
    assert restored.version_number == 4
    assert restored.status == VisitStatus.IN_PROGRESS


def test_stale_commit_conflicts_without_new_version(container, users) -> None:
    provider_id, _ = users
    visit = container.visit_service.create_visit(make_create_request(), actor_id=provider_id)
    container.version_store.commit(visit.id, sections=_sections("First"), expected_version=1, actor_id=provider_id)

    with pytest.raises(ConcurrentCommitConflictError) as exc_info:
        container.version_store.commit(visit.id, sections=_sections("Second"), expected_version=1, actor_id=provider_id)

    assert exc_info.value.expected_version == 1
    assert len(container.version_store.list_versions(visit.id)) == 2
    assert container.visit_service.get_visit(visit.id).sections.soap.subjective == "First"


def test_concurrent_commits_on_same_version_admit_one(container, users) -> None:
    provider_id, nurse_id = users
    visit = container.visit_service.create_visit(make_create_request(), actor_id=provider_id)
    barrier = threading.Barrier(2)
    outcomes: list[object] = []
    outcomes_lock = threading.Lock()

    def _commit(actor_id: int, text: str) -> None:
        barrier.wait()
        try:
            result: object = container.version_store.commit(
                visit.id, sections=_sections(text), expected_version=1, actor_id=actor_id
            )
        except ConcurrentCommitConflictError as exc:
            result = exc
        with outcomes_lock:
            outcomes.append(result)

    threads = [
        threading.Thread(target=_commit, args=(provider_id, "From provider")),
        threading.Thread(target=_commit, args=(nurse_id, "From nurse")),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    conflicts = [item for item in outcomes if isinstance(item, ConcurrentCommitConflictError)]
    assert len(outcomes) == 2
    assert len(conflicts) == 1
    assert [item.version_number for item in container.version_store.list_versions(visit.id)] == [2, 1]


def test_timeline_pairs_each_version_with_its_changes(container, users) -> None:
    provider_id, _ = users
    visit = container.visit_service.create_visit(make_create_request(), actor_id=provider_id)
    container.version_store.commit(visit.id, sections=_sections("Better"), expected_version=1, actor_id=provider_id)
    container.lifecycle.sign(visit.id, actor_id=provider_id, expected_version=2)

    timeline = container.version_store.timeline(visit.id)

    assert [entry.version.version_number for entry in timeline] == [3, 2, 1]
    assert [item.field for item in timeline[0].changes if item.changed] == ["status"]
    assert [item.field for item in timeline[1].changes if item.changed] == ["subjective"]
    assert timeline[2].changes == []


def test_commits_write_audit_trail(container, users, session_factory) -> None:
    provider_id, _ = users
    visit = container.visit_service.create_visit(make_create_request(), actor_id=provider_id)
    container.version_store.commit(visit.id, sections=_sections("Better"), expected_version=1, actor_id=provider_id)
    container.version_store.restore(visit.id, 1, expected_version=2, actor_id=provider_id)

    with session_factory() as session:
        actions = [str(item.action) for item in container.audit_repo.list_for_entity(session, "visit", visit.id)]

    assert actions == ["visit_create", "visit_save", "visit_restore"]


def test_duplicate_version_number_is_reported_as_conflict(container, users, monkeypatch) -> None:
    provider_id, _ = users
    visit = container.visit_service.create_visit(make_create_request(), actor_id=provider_id)
    add_version = container.visit_repo.add_version

    def _add_colliding_version(session, **kwargs):
        return add_version(session, **{**kwargs, "version_number": 1})

    monkeypatch.setattr(container.visit_repo, "add_version", _add_colliding_version)

    with pytest.raises(ConcurrentCommitConflictError):
        container.version_store.commit(visit.id, sections=_sections("Race"), expected_version=1, actor_id=provider_id)
    assert container.visit_service.get_visit(visit.id).version_number == 1


def test_other_integrity_failures_are_save_failures(container, users) -> None:
    provider_id, _ = users
    visit = container.visit_service.create_visit(make_create_request(), actor_id=provider_id)

    with pytest.raises(SaveFailedError):
        container.version_store.apply(
            visit.id,
            prepare=lambda current: {"status": "ARCHIVED"},
            sections_payload=None,
            expected_version=1,
            actor_id=provider_id,
            change_reason="archived",
            action="archive",
        )

    current = container.visit_service.get_visit(visit.id)
    assert (current.status, current.version_number) == (VisitStatus.DRAFT, 1)
    assert len(container.version_store.list_versions(visit.id)) == 1

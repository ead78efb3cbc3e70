from __future__ import annotations

from datetime import date

import pytest

from tests.integration.support import make_create_request
from visitdoc.application.dto.visit_dto import VisitFilters
from visitdoc.domain.constants import VisitStatus, VisitType
from visitdoc.errors import NotFoundError


def test_create_visit_stores_draft_at_version_one(container, users) -> None:
    provider_id, _ = users

    visit = container.visit_service.create_visit(
        make_create_request(visit_type="URGENT"),
        actor_id=provider_id,
    )

    assert len(visit.id) == 36
    assert visit.status == VisitStatus.DRAFT
    assert visit.visit_type == VisitType.URGENT
    assert visit.version_number == 1
    assert visit.created_by == "dr.house"

    loaded = container.visit_service.get_visit(visit.id)
    assert loaded.sections.soap.subjective == "Cough for 3 days"
    assert loaded.sections.vitals.heart_rate == 88
    assert loaded.sections.diagnoses == []


def test_get_unknown_visit_raises_not_found(container) -> None:
    with pytest.raises(NotFoundError):
        container.visit_service.get_visit("missing")


def test_list_visits_filters_by_patient_status_and_date(container, users) -> None:
    provider_id, _ = users
    march = container.visit_service.create_visit(make_create_request(), actor_id=provider_id)
    april = container.visit_service.create_visit(
        make_create_request(visit_date=date(2026, 4, 10)),
        actor_id=provider_id,
    )
    other = container.visit_service.create_visit(
        make_create_request(patient_id="patient-7"),
        actor_id=provider_id,
    )
    container.lifecycle.sign(april.id, actor_id=provider_id, expected_version=1)

    by_patient = container.visit_service.list_visits(VisitFilters(patient_id="patient-42"))
    assert [item.id for item in by_patient] == [april.id, march.id]

    signed = container.visit_service.list_visits(VisitFilters(status=VisitStatus.SIGNED))
    assert [(item.id, item.version_number) for item in signed] == [(april.id, 2)]

    in_march = container.visit_service.list_visits(
        VisitFilters(date_from=date(2026, 3, 1), date_to=date(2026, 3, 31))
    )
    assert {item.id for item in in_march} == {march.id, other.id}

    assert len(container.visit_service.list_visits(limit=2)) == 2
    assert len(container.visit_service.list_visits()) == 3

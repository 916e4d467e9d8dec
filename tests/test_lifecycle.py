from datetime import timedelta

import pydantic
import pytest

from cb_core_lib.core import (
    SYSTEM_ACTOR,
    allowed_transitions,
    archive_case,
    close_case,
    is_read_only,
    mark_in_progress,
    open_case,
    submit_for_review,
)
from cb_core_lib.exceptions import ForbiddenTransition, ValidationError
from cb_core_lib.models import Case, CaseStatus


def test_open_case_seeds_opening_message(case, referrer, specialist, t0):
    assert case.status == CaseStatus.ASSIGNED
    assert case.closed_at is None
    assert case.created_by.id == referrer.id
    assert case.assigned_to.id == specialist.id
    assert len(case.chat) == 1
    assert case.chat[0].sender_id == referrer.id
    assert case.chat[0].content == "Case created for John Doe. Summary: Suspected stable angina."
    assert case.chat[0].created_at == t0


def test_open_case_copies_patient(patient, referrer, specialist):
    case = open_case(patient, referrer, specialist, "summary")
    assert case.patient == patient
    assert case.patient is not patient


def test_open_case_requires_referrer_and_specialist(patient, referrer, specialist, outsider):
    with pytest.raises(ValidationError):
        open_case(patient, specialist, outsider, "summary")
    with pytest.raises(ValidationError):
        open_case(patient, referrer, referrer.model_copy(update={"id": "u-other"}), "summary")


def test_submit_for_review_by_assignee(case, specialist, t0):
    reviewed = submit_for_review(case, specialist.id, now=t0 + timedelta(hours=1))
    assert reviewed.status == CaseStatus.PENDING_REVIEW
    assert reviewed.status_history[-1].from_status == CaseStatus.ASSIGNED
    assert reviewed.status_history[-1].triggered_by == specialist.id
    assert case.status == CaseStatus.ASSIGNED


def test_creator_cannot_submit_for_review(case, referrer):
    with pytest.raises(ForbiddenTransition):
        submit_for_review(case, referrer.id)
    assert case.status == CaseStatus.ASSIGNED
    assert case.status_history == []


def test_close_requires_pending_review(case, referrer):
    with pytest.raises(ForbiddenTransition):
        close_case(case, referrer.id)


def test_full_lifecycle_to_closed(case, referrer, specialist, t0):
    reviewed = submit_for_review(case, specialist.id, now=t0 + timedelta(hours=1))
    with pytest.raises(ForbiddenTransition):
        close_case(reviewed, specialist.id)

    closed = close_case(reviewed, referrer.id, now=t0 + timedelta(hours=2))
    assert closed.status == CaseStatus.CLOSED
    assert closed.closed_at == t0 + timedelta(hours=2)
    assert closed.time_to_close == timedelta(hours=2)
    assert is_read_only(closed)
    assert [t.to_status for t in closed.status_history] == [CaseStatus.PENDING_REVIEW, CaseStatus.CLOSED]


def test_archive_by_either_participant(case, referrer, specialist):
    assert archive_case(case, referrer.id).status == CaseStatus.ARCHIVED
    archived = archive_case(case, specialist.id)
    assert archived.status == CaseStatus.ARCHIVED
    assert archived.closed_at is not None


def test_archive_keeps_existing_closed_at(case, referrer, specialist, t0):
    closed = close_case(submit_for_review(case, specialist.id, now=t0), referrer.id, now=t0 + timedelta(days=1))
    archived = archive_case(closed, specialist.id, now=t0 + timedelta(days=30))
    assert archived.status == CaseStatus.ARCHIVED
    assert archived.closed_at == t0 + timedelta(days=1)


def test_archived_is_final(case, referrer, outsider):
    with pytest.raises(ForbiddenTransition):
        archive_case(case, outsider.id)
    archived = archive_case(case, referrer.id)
    with pytest.raises(ForbiddenTransition):
        archive_case(archived, referrer.id)


def test_mark_in_progress_only_from_assigned(case, specialist):
    started = mark_in_progress(case)
    assert started.status == CaseStatus.IN_PROGRESS
    assert started.status_history[-1].triggered_by == SYSTEM_ACTOR

    reviewed = submit_for_review(started, specialist.id)
    assert mark_in_progress(reviewed) is reviewed


def test_allowed_transitions(case, referrer, specialist, outsider):
    assert allowed_transitions(case, specialist.id) == [CaseStatus.PENDING_REVIEW, CaseStatus.ARCHIVED]
    assert allowed_transitions(case, referrer.id) == [CaseStatus.ARCHIVED]
    assert allowed_transitions(case, outsider.id) == []

    reviewed = submit_for_review(case, specialist.id)
    assert allowed_transitions(reviewed, referrer.id) == [CaseStatus.CLOSED, CaseStatus.ARCHIVED]


def test_case_rejects_closed_at_on_active_status(case, t0):
    with pytest.raises(ValidationError, match="closed_at can only be set"):
        case.evolve(closed_at=t0)


def test_close_with_lagging_clock_keeps_history_ordered(case, referrer, specialist, t0):
    reviewed = submit_for_review(case, specialist.id, now=t0 + timedelta(minutes=10))
    closed = close_case(reviewed, referrer.id, now=t0 + timedelta(minutes=6))

    assert closed.status == CaseStatus.CLOSED
    assert [h.triggered_at for h in closed.status_history] == [t0 + timedelta(minutes=10)] * 2
    assert closed.closed_at == t0 + timedelta(minutes=10)


def test_case_rejects_same_creator_and_assignee(patient, referrer):
    with pytest.raises(pydantic.ValidationError):
        Case(patient=patient, created_by=referrer, assigned_to=referrer)

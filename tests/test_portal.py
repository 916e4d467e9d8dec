import asyncio
import logging
from datetime import timedelta

import pytest

from cb_core_lib.auth import InMemoryAuthProvider, SignUpForm
from cb_core_lib.exceptions import ForbiddenTransition, RemoteUnavailable, ValidationError
from cb_core_lib.infrastructure.llm import FailureKind
from cb_core_lib.models import CaseStatus, Jurisdiction, ScheduleStatus, Specialty
from cb_core_lib.services import CasePortal
from cb_core_lib.sync import encode_patient, encode_user


@pytest.fixture
def portal(store, patient, referrer, specialist, outsider):
    store.seed("patients", patient.id, encode_patient(patient))
    for user in (referrer, specialist, outsider):
        store.seed("users", user.id, encode_user(user))
    return CasePortal(store)


def stored_case(store, case_id):
    return asyncio.run(store.get("cases", case_id)).data


def test_create_case_appears_in_feed(portal, store, patient, referrer, specialist):
    async def scenario():
        await portal.start(referrer.id)
        case_id = await portal.create_case(patient, referrer, specialist, "Please review the ECG.")
        return case_id, await portal.load_case(case_id)

    case_id, case = asyncio.run(scenario())
    assert case.id == case_id
    assert case.status == CaseStatus.ASSIGNED
    assert case.chat[0].sender_id == referrer.id
    assert [c.id for c in portal.my_cases(referrer.id)] == [case_id]
    assert {s.id for s in portal.list_specialists()} == {specialist.id, "u-iyer"}
    assert [s.id for s in portal.list_specialists(Specialty.NEUROLOGY)] == ["u-iyer"]
    assert portal.list_specialists(Specialty.ONCOLOGY) == []


def test_first_reply_moves_case_in_progress(portal, store, patient, referrer, specialist):
    async def scenario():
        case_id = await portal.create_case(patient, referrer, specialist, "Please review the ECG.")
        await portal.send_message(case_id, specialist.id, "Looking at it now.")
        await portal.send_message(case_id, referrer.id, "Thanks.")
        return case_id

    case_id = asyncio.run(scenario())
    data = stored_case(store, case_id)
    assert data["status"] == "In Progress"
    assert [h["toStatus"] for h in data["statusHistory"]] == ["In Progress"]
    assert [m["content"] for m in data["chat"][1:]] == ["Looking at it now.", "Thanks."]


def test_review_close_then_read_only(portal, store, patient, referrer, specialist):
    async def scenario():
        await portal.start(specialist.id)
        case_id = await portal.create_case(patient, referrer, specialist, "Please review the ECG.")
        await portal.send_message(case_id, specialist.id, "Report attached.")
        await portal.submit_for_review(case_id, specialist.id)
        closed = await portal.close_case(case_id, referrer.id)
        return case_id, closed

    case_id, closed = asyncio.run(scenario())
    assert closed.status == CaseStatus.CLOSED
    assert closed.closed_at is not None
    assert stored_case(store, case_id)["status"] == "Closed"

    writes = store.write_count
    with pytest.raises(ForbiddenTransition):
        asyncio.run(portal.send_message(case_id, specialist.id, "One more thing"))
    assert store.write_count == writes


def test_referrer_cannot_submit_for_review(portal, store, patient, referrer, specialist):
    async def scenario():
        case_id = await portal.create_case(patient, referrer, specialist, "Please review the ECG.")
        await portal.submit_for_review(case_id, referrer.id)

    with pytest.raises(ForbiddenTransition):
        asyncio.run(scenario())


def test_propose_and_confirm_call(portal, store, patient, referrer, specialist, t0):
    slots = [t0 + timedelta(days=1), t0 + timedelta(days=1, hours=2)]

    async def scenario():
        await portal.start(referrer.id)
        case_id = await portal.create_case(patient, referrer, specialist, "Please review the ECG.")
        schedule = await portal.propose_call(case_id, referrer.id, slots)
        case = await portal.confirm_call(case_id, schedule.id, specialist.id, slots[1])
        return case_id, schedule, case

    case_id, schedule, case = asyncio.run(scenario())
    assert schedule.responder_id == specialist.id
    assert case.video_calls[0].status == ScheduleStatus.CONFIRMED

    stored = stored_case(store, case_id)["videoCalls"][0]
    assert stored["status"] == "Confirmed"
    assert stored["confirmedSlot"].to_datetime() == slots[1]


def test_describe_slot_uses_both_calendars(portal, t0):
    assert portal.describe_slot(t0) == "Mar 15, 2024, 3:00 PM (IST) / Mar 15, 2024, 5:30 AM (US-ET)"


def test_store_outage_is_logged_and_raised(portal, store, patient, referrer, specialist, caplog):
    store.set_unavailable()
    with caplog.at_level(logging.ERROR, logger="cb_core_lib.services.portal"):
        with pytest.raises(RemoteUnavailable):
            asyncio.run(portal.create_case(patient, referrer, specialist, "Please review the ECG."))
    assert "Failed to create case for patient p-001" in caplog.text


def test_unknown_case(portal):
    with pytest.raises(ValidationError):
        asyncio.run(portal.load_case("missing"))


def registration(**overrides):
    values = dict(
        name="Meera Iyer",
        email="m.iyer@hospital.example",
        password="Secur3#pass",
        confirm_password="Secur3#pass",
        country=Jurisdiction.INDIA,
        specialty=Specialty.NEUROLOGY,
        experience="11 years",
    )
    values.update(overrides)
    return SignUpForm(**values)


def test_register_writes_profile(store):
    auth = InMemoryAuthProvider()
    portal = CasePortal(store, auth=auth)

    profile = asyncio.run(portal.register(registration()))

    assert portal.session.uid == profile.id
    data = asyncio.run(store.get("users", profile.id)).data
    assert data["name"] == "Dr. Meera Iyer"
    assert data["experience"] == 11
    assert data["availability"] == "Available"


def test_register_rejects_mismatch_before_sign_up(store):
    auth = InMemoryAuthProvider()
    portal = CasePortal(store, auth=auth)

    with pytest.raises(ValidationError, match="Passwords do not match."):
        asyncio.run(portal.register(registration(confirm_password="different#1")))
    assert portal.session is None
    assert store.write_count == 0


def test_sign_in_requires_both_fields(store):
    portal = CasePortal(store)
    with pytest.raises(ValidationError):
        asyncio.run(portal.sign_in("", "secret"))


def test_sign_out_resets_feed(portal, referrer):
    async def scenario():
        await portal.start(referrer.id)
        old_feed = portal.feed
        await portal.sign_out()
        return old_feed

    old_feed = asyncio.run(scenario())
    assert old_feed.closed
    assert portal.feed is not old_feed
    assert portal.list_specialists() == []


def test_archive_and_cancel_are_persisted(portal, store, patient, referrer, specialist, t0):
    async def scenario():
        await portal.start(specialist.id)
        case_id = await portal.create_case(patient, referrer, specialist, "Please review the ECG.")
        schedule = await portal.propose_call(case_id, specialist.id, [t0 + timedelta(days=3)])
        await portal.cancel_call(case_id, schedule.id, referrer.id)
        archived = await portal.archive_case(case_id, specialist.id)
        return case_id, archived

    case_id, archived = asyncio.run(scenario())
    data = stored_case(store, case_id)
    assert data["videoCalls"][0]["status"] == "Cancelled"
    assert data["status"] == "Archived"
    assert data["closedAt"].to_datetime() == archived.closed_at
    assert portal.my_cases(specialist.id)[0].status == CaseStatus.ARCHIVED


def test_summary_without_ai_key_reports_not_configured(portal, patient):
    result = asyncio.run(portal.summarize_patient(patient))
    assert not result.ok
    assert result.kind == FailureKind.NOT_CONFIGURED

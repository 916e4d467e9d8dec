from datetime import datetime, timedelta, timezone

import pytest

from cb_core_lib.core import (
    append_message,
    archive_case,
    close_case,
    compose_message,
    confirm_call,
    propose_call,
    submit_for_review,
)
from cb_core_lib.exceptions import ValidationError
from cb_core_lib.models import CaseStatus
from cb_core_lib.store import CollectionSnapshot, DocumentSnapshot, StoreTimestamp
from cb_core_lib.sync import (
    decode_case,
    decode_snapshot,
    decode_user,
    encode_case,
    encode_user,
    status_update,
    to_datetime,
)


def test_store_timestamp_conversion(t0):
    stamp = StoreTimestamp.from_datetime(t0 + timedelta(microseconds=250))
    assert stamp.seconds == 1710495000
    assert stamp.nanoseconds == 250_000
    assert stamp.to_datetime() == t0 + timedelta(microseconds=250)
    assert StoreTimestamp.from_wire(stamp.to_wire()) == stamp


def test_encode_case_body(case, t0):
    doc = encode_case(case)
    assert "id" not in doc
    assert "closedAt" not in doc
    assert doc["createdAt"] == StoreTimestamp.from_datetime(t0)
    assert doc["createdBy"]["id"] == case.created_by.id
    assert doc["assignedTo"]["id"] == case.assigned_to.id
    assert doc["chat"][0]["senderId"] == case.created_by.id
    assert doc["chat"][0]["createdAt"] == StoreTimestamp.from_datetime(t0)
    assert doc["patient"]["bloodType"] == "O+"
    assert doc["status"] == "Assigned"


def test_case_round_trip(case, referrer, specialist, t0):
    busy = append_message(case, compose_message(specialist.id, "Looking now", now=t0 + timedelta(minutes=3)))
    busy, schedule = propose_call(busy, specialist.id, [t0 + timedelta(days=1), t0 + timedelta(days=2)])
    busy = confirm_call(busy, schedule.id, referrer.id, t0 + timedelta(days=2))
    busy = submit_for_review(busy, specialist.id, now=t0 + timedelta(hours=4))
    busy = close_case(busy, referrer.id, now=t0 + timedelta(hours=5))

    doc = encode_case(busy)
    assert doc["closedAt"] == StoreTimestamp.from_datetime(t0 + timedelta(hours=5))
    assert doc["videoCalls"][0]["confirmedSlot"] == StoreTimestamp.from_datetime(t0 + timedelta(days=2))

    decoded = decode_case("case-1", doc)
    assert decoded == busy
    assert decoded.status == CaseStatus.CLOSED


def test_decode_accepts_every_instant_form(case, t0):
    doc = encode_case(case)
    doc["createdAt"] = {"_seconds": 1710495000, "_nanoseconds": 0}
    doc["chat"][0]["createdAt"] = "2024-03-15T09:30:00Z"
    assert decode_case("case-1", doc) == case

    doc["createdAt"] = datetime(2024, 3, 15, 9, 30)
    assert decode_case("case-1", doc).created_at == t0


def test_decode_defaults_missing_collections(case):
    doc = encode_case(case)
    del doc["chat"]
    del doc["videoCalls"]
    del doc["statusHistory"]
    decoded = decode_case("case-1", doc)
    assert decoded.chat == []
    assert decoded.video_calls == []
    assert decoded.closed_at is None


def test_decode_rejects_invalid_documents(case):
    doc = encode_case(case)
    doc["createdAt"] = "not a date"
    with pytest.raises(ValidationError):
        decode_case("case-1", doc)

    doc = encode_case(case)
    doc["status"] = "Closed"
    with pytest.raises(ValidationError):
        decode_case("case-1", doc)


def test_status_update_partial(case, referrer):
    archived = archive_case(case, referrer.id)
    partial = status_update(archived)
    assert set(partial) == {"status", "statusHistory", "closedAt"}
    assert partial["status"] == "Archived"


def test_decode_snapshot_skips_bad_documents(case, specialist):
    snapshot = CollectionSnapshot(
        collection="cases",
        documents=[
            DocumentSnapshot(id="case-1", data=encode_case(case)),
            DocumentSnapshot(id="case-2", data={"status": "Assigned"}),
        ],
    )
    decoded = decode_snapshot(snapshot)
    assert [c.id for c in decoded] == ["case-1"]

    users = CollectionSnapshot(
        collection="users",
        documents=[DocumentSnapshot(id=specialist.id, data=encode_user(specialist))],
    )
    assert decode_snapshot(users) == [specialist]


def test_user_document_is_camel_case(specialist):
    doc = encode_user(specialist)
    assert "id" not in doc
    assert doc["profileImageUrl"] == ""
    assert decode_user(specialist.id, doc) == specialist


def test_to_datetime_passthrough():
    assert to_datetime(None) is None
    aware = datetime(2024, 3, 15, 15, 0, tzinfo=timezone(timedelta(hours=5, minutes=30)))
    assert to_datetime(aware) == datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)

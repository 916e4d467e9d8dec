import asyncio
from datetime import timedelta

import pytest

from cb_core_lib.store import CollectionSnapshot, DocumentSnapshot
from cb_core_lib.sync import SnapshotFeed, encode_case, encode_patient, encode_user


def seed_portal(store, case, patient, referrer, specialist, outsider):
    store.seed("patients", patient.id, encode_patient(patient))
    for user in (referrer, specialist, outsider):
        store.seed("users", user.id, encode_user(user))
    store.seed("cases", case.id, encode_case(case))


def test_watch_portal_decodes_every_collection(store, case, patient, referrer, specialist, outsider):
    seed_portal(store, case, patient, referrer, specialist, outsider)
    feed = SnapshotFeed(store)
    asyncio.run(feed.watch_portal())

    assert feed.patients == [patient]
    assert feed.case("case-1") == case
    assert {u.id for u in feed.specialists()} == {specialist.id, outsider.id}
    assert feed.user(referrer.id) == referrer
    assert feed.status_counts() == {"Assigned": 1}


def test_cases_scoped_to_user(store, case, patient, referrer, specialist, outsider):
    seed_portal(store, case, patient, referrer, specialist, outsider)
    feed = SnapshotFeed(store)
    asyncio.run(feed.watch_portal(outsider.id))
    assert feed.cases == []
    assert feed.has_view("cases")

    mine = SnapshotFeed(store)
    asyncio.run(mine.watch_portal(specialist.id))
    assert [c.id for c in mine.cases_for(specialist.id)] == ["case-1"]


def test_last_snapshot_wins(case):
    feed = SnapshotFeed(store=None)
    feed.receive(CollectionSnapshot("cases", [DocumentSnapshot(case.id, encode_case(case))]))
    assert feed.case(case.id) == case

    feed.receive(CollectionSnapshot("cases", []))
    assert feed.case(case.id) is None
    assert feed.cases == []


def test_closed_feed_discards_late_snapshots(store, case):
    feed = SnapshotFeed(store)
    changes = []
    feed.on_change(changes.append)
    asyncio.run(feed.watch("cases"))
    feed.close()

    asyncio.run(store.set("cases", case.id, encode_case(case)))
    feed.receive(CollectionSnapshot("cases", [DocumentSnapshot(case.id, encode_case(case))]))

    assert feed.closed
    assert feed.case(case.id) is None
    assert changes == ["cases"]
    with pytest.raises(RuntimeError):
        asyncio.run(feed.watch("users"))


def test_change_listener_can_be_removed(case):
    feed = SnapshotFeed(store=None)
    changes = []
    remove = feed.on_change(changes.append)
    feed.receive(CollectionSnapshot("cases", []))
    remove()
    feed.receive(CollectionSnapshot("cases", []))
    assert changes == ["cases"]


def test_recent_cases_newest_first(case, t0):
    older = case.evolve(id="case-0", created_at=t0 - timedelta(days=2))
    feed = SnapshotFeed(store=None)
    feed.receive(CollectionSnapshot("cases", [
        DocumentSnapshot(older.id, encode_case(older)),
        DocumentSnapshot(case.id, encode_case(case)),
    ]))
    assert [c.id for c in feed.recent_cases(limit=1)] == ["case-1"]

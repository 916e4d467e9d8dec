import asyncio

import pytest

from cb_core_lib.exceptions import RemoteUnavailable
from cb_core_lib.store import InMemoryDocumentStore, StoreTimestamp


def test_subscribe_delivers_current_then_changes(store):
    seen = []

    async def scenario():
        await store.subscribe("cases", lambda snap: seen.append(sorted(d.id for d in snap.documents)))
        first = await store.create("cases", {"status": "Assigned"})
        second = await store.create("cases", {"status": "Assigned"})
        return first, second

    first, second = asyncio.run(scenario())
    assert seen == [[], [first], sorted([first, second])]


def test_scoped_subscription_sees_only_its_document(store):
    seen = []

    async def scenario():
        mine = await store.create("cases", {"owner": "a"})
        await store.create("cases", {"owner": "b"})
        await store.subscribe("cases", lambda snap: seen.append([d.id for d in snap.documents]), doc_id=mine)
        await store.update("cases", mine, {"status": "In Progress"})
        return mine

    mine = asyncio.run(scenario())
    assert seen == [[mine], [mine]]


def test_predicate_subscription(store):
    seen = []

    async def scenario():
        await store.subscribe(
            "cases",
            lambda snap: seen.append([d.data["owner"] for d in snap.documents]),
            predicate=lambda doc: doc.data["owner"] == "a",
        )
        await store.create("cases", {"owner": "a"})
        await store.create("cases", {"owner": "b"})

    asyncio.run(scenario())
    assert seen == [[], ["a"], ["a"]]


def test_append_is_add_to_set_and_idempotent(store):
    message = {"id": "M-1", "content": "hi", "createdAt": StoreTimestamp(1710495000)}

    async def scenario():
        case_id = await store.create("cases", {"chat": []})
        await store.append("cases", case_id, "chat", message, idempotency_key="k1")
        await store.append("cases", case_id, "chat", message, idempotency_key="k1")
        await store.append("cases", case_id, "chat", message)
        return (await store.get("cases", case_id)).data

    data = asyncio.run(scenario())
    assert data["chat"] == [message]
    assert store.write_count == 3


def test_append_applies_updates_in_same_write(store):
    async def scenario():
        case_id = await store.create("cases", {"status": "Assigned", "chat": []})
        await store.append("cases", case_id, "chat", {"id": "M-1"}, updates={"status": "In Progress"})
        return (await store.get("cases", case_id)).data

    data = asyncio.run(scenario())
    assert data == {"status": "In Progress", "chat": [{"id": "M-1"}]}


def test_create_replay_returns_same_id(store):
    async def scenario():
        first = await store.create("cases", {"a": 1}, idempotency_key="create-1")
        second = await store.create("cases", {"a": 1}, idempotency_key="create-1")
        return first, second

    first, second = asyncio.run(scenario())
    assert first == second
    assert store.write_count == 1


def test_oldest_idempotency_keys_are_forgotten():
    store = InMemoryDocumentStore(max_applied_keys=2)

    async def scenario():
        first = await store.create("cases", {"a": 1}, idempotency_key="k1")
        await store.create("cases", {"a": 2}, idempotency_key="k2")
        await store.create("cases", {"a": 3}, idempotency_key="k3")
        return first, await store.create("cases", {"a": 1}, idempotency_key="k1")

    first, replayed = asyncio.run(scenario())
    assert replayed != first
    assert store.write_count == 4
    assert list(store._applied_keys) == ["k3", "k1"]


def test_update_none_removes_field(store):
    async def scenario():
        doc_id = await store.create("cases", {"a": 1, "b": 2})
        await store.update("cases", doc_id, {"a": None, "c": 3})
        return (await store.get("cases", doc_id)).data

    assert asyncio.run(scenario()) == {"b": 2, "c": 3}


def test_missing_and_unavailable(store):
    async def missing():
        assert await store.get("cases", "nope") is None
        await store.update("cases", "nope", {"a": 1})

    with pytest.raises(RemoteUnavailable) as exc:
        asyncio.run(missing())
    assert exc.value.error_code == "NOT_FOUND"

    store.set_unavailable()
    with pytest.raises(RemoteUnavailable):
        asyncio.run(store.create("cases", {}))


def test_unsubscribe_stops_delivery(store):
    seen = []

    async def scenario():
        subscription = await store.subscribe("users", lambda snap: seen.append(len(snap)))
        subscription.unsubscribe()
        subscription.unsubscribe()
        await store.set("users", "u-1", {"name": "Dr. A"})
        return subscription

    subscription = asyncio.run(scenario())
    assert seen == [0]
    assert not subscription.active


def test_listener_errors_go_to_on_error():
    store = InMemoryDocumentStore()
    errors = []

    def broken(snapshot):
        raise RuntimeError("render failed")

    asyncio.run(store.subscribe("cases", broken, on_error=errors.append))
    assert len(errors) == 1
    assert isinstance(errors[0], RuntimeError)

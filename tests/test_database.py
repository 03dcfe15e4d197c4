import asyncio

import pytest

from facilitator.database import SERVER_TIMESTAMP, Query
from facilitator.errors import DocumentNotFound


async def test_server_timestamps_are_strictly_increasing(store):
    first = await store.create("notes", {"session_id": "s1", "created_at": SERVER_TIMESTAMP})
    second = await store.create("notes", {"session_id": "s1", "created_at": SERVER_TIMESTAMP})

    a = await store.get("notes", first)
    b = await store.get("notes", second)
    assert isinstance(a["created_at"], float)
    assert b["created_at"] > a["created_at"]


async def test_one_write_uses_one_timestamp(store):
    doc_id = await store.create(
        "sessions", {"created_at": SERVER_TIMESTAMP, "updated_at": SERVER_TIMESTAMP}
    )
    doc = await store.get("sessions", doc_id)
    assert doc["created_at"] == doc["updated_at"]
    assert doc["id"] == doc_id


async def test_nested_timestamps_share_the_write_stamp(store):
    await store.set(
        "notes", "n1", {"created_at": SERVER_TIMESTAMP, "file": {"created_at": SERVER_TIMESTAMP}}
    )
    doc = await store.get("notes", "n1")
    assert isinstance(doc["file"]["created_at"], float)
    assert doc["file"]["created_at"] == doc["created_at"]


async def test_overlapping_updates_merge_fields(store):
    doc_id = await store.create("notes", {"session_id": "s1", "title": None})

    await asyncio.gather(
        store.update("notes", doc_id, {"title": "Titel"}),
        store.update("notes", doc_id, {"full_text": "tekst"}),
    )

    doc = await store.get("notes", doc_id)
    assert doc["title"] == "Titel"
    assert doc["full_text"] == "tekst"
    assert doc["session_id"] == "s1"


async def test_update_missing_document_raises(store):
    with pytest.raises(DocumentNotFound):
        await store.update("notes", "missing", {"title": "x"})


async def test_query_filters_and_orders(store):
    await store.set("responses", "r1", {"session_id": "s1", "slide_id": "a", "created_at": 2})
    await store.set("responses", "r2", {"session_id": "s1", "slide_id": "a", "created_at": 1})
    await store.set("responses", "r3", {"session_id": "s1", "slide_id": "b", "created_at": 3})
    await store.set("responses", "r4", {"session_id": "s2", "slide_id": "a", "created_at": 0})

    docs = await store.query(Query("responses", {"session_id": "s1", "slide_id": "a"}))
    assert [d["id"] for d in docs] == ["r2", "r1"]

    newest_first = await store.query(Query("responses", {"session_id": "s1"}, descending=True))
    assert [d["id"] for d in newest_first] == ["r3", "r1", "r2"]


async def test_unknown_collection_and_field_rejected(store):
    with pytest.raises(ValueError):
        await store.create("users", {})
    with pytest.raises(ValueError):
        await store.query(Query("notes", {"session_id') OR 1=1 --": "x"}))


async def test_subscribe_pushes_initial_snapshot_and_changes(store):
    snapshots = []
    sub = store.subscribe(Query("notes", {"session_id": "s1"}), snapshots.append)
    await store.wait_idle()
    assert snapshots == [[]]

    await store.create("notes", {"session_id": "s1", "created_at": SERVER_TIMESTAMP})
    await store.create("notes", {"session_id": "s2", "created_at": SERVER_TIMESTAMP})
    await store.wait_idle()
    assert [len(s) for s in snapshots] == [0, 1, 1]

    sub.cancel()
    sub.cancel()
    await store.create("notes", {"session_id": "s1", "created_at": SERVER_TIMESTAMP})
    await store.wait_idle()
    assert len(snapshots) == 3


async def test_subscribe_document_reports_absence(store):
    seen = []
    store.subscribe_document("sessions", "s1", seen.append)
    await store.wait_idle()
    await store.set("sessions", "s1", {"title": "Kick-off"})
    await store.wait_idle()
    assert seen[0] is None
    assert seen[-1]["title"] == "Kick-off"


async def test_callback_failure_goes_to_on_error(store):
    errors = []

    def broken(_docs):
        raise RuntimeError("boom")

    store.subscribe(Query("notes"), broken, errors.append)
    await store.wait_idle()
    assert len(errors) == 1
    assert isinstance(errors[0], RuntimeError)


async def test_async_callbacks_are_awaited(store):
    seen = []

    async def on_change(docs):
        await asyncio.sleep(0)
        seen.append(len(docs))

    store.subscribe(Query("sessions"), on_change)
    await store.create("sessions", {"title": "x"})
    await store.wait_idle()
    assert seen[-1] == 1

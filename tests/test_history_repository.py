import asyncio
import json
import re
import time
import uuid

import pytest

from rag_chat.infrastructure.blob.store import FileSystemBlobStore, InMemoryBlobStore
from rag_chat.infrastructure.database.connection import init_db
from rag_chat.repositories.history import (
    InMemoryHistoryRepository,
    SqlHistoryRepository,
    deserialize_history,
    serialize_history,
)
from rag_chat.services.exceptions import PersistenceError
from rag_chat.state.models import ChatHistoryEntry


@pytest.fixture(scope="module", autouse=True)
def _tables():
    init_db()


@pytest.fixture(params=["memory", "sql"])
def repository(request, tmp_path):
    if request.param == "memory":
        return InMemoryHistoryRepository()
    return SqlHistoryRepository(blob_store=FileSystemBlobStore(str(tmp_path)))


def _entry(message: str) -> ChatHistoryEntry:
    return ChatHistoryEntry(user_message=message, llm_response=f"re: {message}")


def _session() -> str:
    return str(uuid.uuid4())


def test_unknown_session_has_empty_history(repository):
    assert asyncio.run(repository.get(_session())) == []
    assert asyncio.run(repository.get_record(_session())) is None


def test_put_then_get_round_trips_entries(repository):
    session_id = _session()
    entries = [_entry("one"), _entry("two")]

    asyncio.run(repository.put(session_id, entries, owner_id="alice"))
    loaded = asyncio.run(repository.get(session_id))

    assert [e.user_message for e in loaded] == ["one", "two"]
    assert [e.timestamp for e in loaded] == [e.timestamp for e in entries]


def test_put_upserts_single_record(repository):
    session_id = _session()

    first_location = asyncio.run(repository.put(session_id, [_entry("one")], owner_id="alice"))
    second_location = asyncio.run(repository.put(session_id, [_entry("one"), _entry("two")]))
    record = asyncio.run(repository.get_record(session_id))

    assert first_location == second_location == record.history_blob_location
    assert record.owner_id == "alice"
    assert record.updated_at >= record.created_at


def test_title_is_write_once(repository):
    session_id = _session()
    asyncio.run(repository.put(session_id, [_entry("one")]))

    assert asyncio.run(repository.set_title_if_absent(session_id, "First")) is True
    assert asyncio.run(repository.set_title_if_absent(session_id, "Second")) is False
    assert asyncio.run(repository.get_record(session_id)).title == "First"


def test_title_needs_existing_record_and_text(repository):
    session_id = _session()

    assert asyncio.run(repository.set_title_if_absent(session_id, "Orphan")) is False
    asyncio.run(repository.put(session_id, [_entry("one")]))
    assert asyncio.run(repository.set_title_if_absent(session_id, "")) is False
    assert asyncio.run(repository.get_record(session_id)).title is None


def test_list_sessions_by_owner_newest_first(repository):
    owner = f"owner-{uuid.uuid4().hex}"
    older, newer, other = _session(), _session(), _session()

    asyncio.run(repository.put(older, [_entry("a")], owner_id=owner))
    time.sleep(0.002)
    asyncio.run(repository.put(newer, [_entry("b")], owner_id=owner))
    time.sleep(0.002)
    asyncio.run(repository.put(other, [_entry("c")], owner_id="someone-else"))
    # Touching the older session makes it the most recently updated
    asyncio.run(repository.put(older, [_entry("a"), _entry("a2")], owner_id=owner))

    sessions = asyncio.run(repository.list_sessions(owner))

    assert [s.session_id for s in sessions] == [older, newer]


def test_demo_owner_is_stored_as_no_owner(repository):
    session_id = _session()

    asyncio.run(repository.put(session_id, [_entry("a")], owner_id="demo"))

    assert asyncio.run(repository.get_record(session_id)).owner_id is None
    assert session_id in [s.session_id for s in asyncio.run(repository.list_sessions("demo"))]


def test_blob_uses_camel_case_keys():
    data = serialize_history([ChatHistoryEntry(timestamp="2024-01-01T00:00:00Z", user_message="u", llm_response="a")])

    assert json.loads(data) == [{"timestamp": "2024-01-01T00:00:00Z", "userMessage": "u", "llmResponse": "a"}]


def test_new_entries_use_millisecond_utc_timestamps():
    entry = ChatHistoryEntry(user_message="u", llm_response="a")

    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z", entry.timestamp)


def test_existing_camel_case_blob_is_readable():
    raw = b'[{"timestamp": "2024-01-01T00:00:00.000Z", "userMessage": "hello", "llmResponse": "hi"}]'

    entries = deserialize_history(raw)

    assert entries[0].user_message == "hello"
    assert entries[0].llm_response == "hi"


def test_malformed_blob_raises_persistence_error():
    with pytest.raises(PersistenceError):
        deserialize_history(b'{"not": "a list"}')


def test_sql_history_is_stored_as_blob_file(tmp_path):
    repository = SqlHistoryRepository(blob_store=FileSystemBlobStore(str(tmp_path)))
    session_id = _session()

    location = asyncio.run(repository.put(session_id, [_entry("one")]))

    assert location == str(tmp_path.resolve() / "chat_history" / f"{session_id}.json")
    assert json.loads((tmp_path / "chat_history" / f"{session_id}.json").read_text())[0]["userMessage"] == "one"


def test_sql_missing_blob_reads_as_empty(tmp_path):
    blobs = InMemoryBlobStore()
    repository = SqlHistoryRepository(blob_store=blobs)
    session_id = _session()
    location = asyncio.run(repository.put(session_id, [_entry("one")]))

    blobs._blobs.pop(location)

    assert asyncio.run(repository.get(session_id)) == []


def test_blob_keys_cannot_escape_root(tmp_path):
    store = FileSystemBlobStore(str(tmp_path / "root"))

    with pytest.raises(PersistenceError):
        store.write("../outside.json", b"{}")

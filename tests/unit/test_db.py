"""Tests for both storage implementations."""
import pytest

from docchat.db import InMemoryStorage, SQLiteStorage, Storage
from docchat.models import ASSISTANT, USER


def test_implementations_satisfy_protocol(memory_storage, sqlite_storage):
    assert isinstance(memory_storage, Storage)
    assert isinstance(sqlite_storage, Storage)


# ------------------------------------------------------------------
# Documents and chunks
# ------------------------------------------------------------------


def test_create_and_get_document(storage):
    document = storage.create_document("guide.pdf", "PDF", 1234)

    fetched = storage.get_document(document.id)
    assert fetched.id == document.id
    assert fetched.name == "guide.pdf"
    assert fetched.type == "PDF"
    assert fetched.size == 1234


def test_document_ids_are_unique(storage):
    ids = {storage.create_document(f"d{i}.txt", "TXT", 1).id for i in range(10)}
    assert len(ids) == 10


def test_get_missing_document_returns_none(storage):
    assert storage.get_document("does-not-exist") is None


def test_list_documents_newest_first(storage):
    first = storage.create_document("a.txt", "TXT", 1)
    second = storage.create_document("b.txt", "TXT", 1)
    third = storage.create_document("c.txt", "TXT", 1)

    assert [d.id for d in storage.list_documents()] == [third.id, second.id, first.id]


def test_chunks_start_without_embedding(storage):
    document = storage.create_document("a.txt", "TXT", 1)
    chunk = storage.create_chunk(document.id, "hello")

    assert chunk.embedding is None
    assert not chunk.has_embedding
    assert [c.id for c in storage.get_unembedded_chunks()] == [chunk.id]
    assert storage.get_embedded_chunks() == []


def test_set_chunk_embedding(storage):
    document = storage.create_document("a.txt", "TXT", 1)
    chunk = storage.create_chunk(document.id, "hello")

    assert storage.set_chunk_embedding(chunk.id, [0.5, -1.0, 2.0]) is True

    (embedded,) = storage.get_embedded_chunks()
    assert embedded.id == chunk.id
    assert embedded.embedding == [0.5, -1.0, 2.0]
    assert storage.get_unembedded_chunks() == []


def test_set_embedding_on_missing_chunk_returns_false(storage):
    assert storage.set_chunk_embedding(999, [1.0]) is False


def test_returned_chunks_are_copies(storage):
    document = storage.create_document("a.txt", "TXT", 1)
    chunk = storage.create_chunk(document.id, "hello")
    storage.set_chunk_embedding(chunk.id, [1.0, 2.0])

    storage.get_embedded_chunks()[0].embedding.append(3.0)

    assert storage.get_embedded_chunks()[0].embedding == [1.0, 2.0]


def test_document_chunks_in_creation_order(storage):
    document = storage.create_document("a.txt", "TXT", 1)
    other = storage.create_document("b.txt", "TXT", 1)
    created = [storage.create_chunk(document.id, f"part {i}") for i in range(3)]
    storage.create_chunk(other.id, "elsewhere")

    chunks = storage.get_document_chunks(document.id)
    assert [c.id for c in chunks] == [c.id for c in created]
    assert [c.content for c in chunks] == ["part 0", "part 1", "part 2"]


def test_delete_document_cascades_to_chunks(storage):
    keep = storage.create_document("keep.txt", "TXT", 1)
    doomed = storage.create_document("doomed.txt", "TXT", 1)
    kept_chunk = storage.create_chunk(keep.id, "keep me")
    doomed_chunks = [storage.create_chunk(doomed.id, f"drop {i}") for i in range(3)]
    storage.set_chunk_embedding(doomed_chunks[0].id, [1.0])

    assert storage.delete_document(doomed.id) is True

    assert storage.get_document(doomed.id) is None
    assert storage.get_document_chunks(doomed.id) == []
    remaining = storage.get_embedded_chunks() + storage.get_unembedded_chunks()
    assert [c.id for c in remaining] == [kept_chunk.id]
    assert storage.set_chunk_embedding(doomed_chunks[1].id, [1.0]) is False


def test_delete_missing_document_returns_false(storage):
    assert storage.delete_document("nope") is False


# ------------------------------------------------------------------
# Messages
# ------------------------------------------------------------------


def test_messages_in_insertion_order(storage):
    for i in range(6):
        storage.create_message("c1", USER if i % 2 == 0 else ASSISTANT, f"m{i}")

    messages = storage.get_messages("c1")
    assert [m.content for m in messages] == [f"m{i}" for i in range(6)]
    assert [m.role for m in messages] == [USER, ASSISTANT] * 3


def test_conversations_are_isolated(storage):
    storage.create_message("c1", USER, "for one")
    storage.create_message("c2", USER, "for two")

    assert [m.content for m in storage.get_messages("c1")] == ["for one"]
    assert [m.content for m in storage.get_messages("c2")] == ["for two"]


def test_invalid_role_rejected(storage):
    with pytest.raises(ValueError):
        storage.create_message("c1", "system", "nope")
    assert storage.get_messages("c1") == []


def test_clear_messages_only_touches_one_conversation(storage):
    storage.create_message("c1", USER, "a")
    storage.create_message("c1", ASSISTANT, "b")
    storage.create_message("c2", USER, "c")

    assert storage.clear_messages("c1") == 2
    assert storage.get_messages("c1") == []
    assert len(storage.get_messages("c2")) == 1
    assert storage.clear_messages("c1") == 0


def test_reset_does_not_touch_documents(storage):
    document = storage.create_document("a.txt", "TXT", 1)
    storage.create_chunk(document.id, "text")
    storage.create_message("c1", USER, "hi")

    storage.clear_messages("c1")

    assert storage.get_document(document.id) is not None
    assert len(storage.get_document_chunks(document.id)) == 1


# ------------------------------------------------------------------
# SQLite specifics
# ------------------------------------------------------------------


def test_sqlite_persists_across_instances(tmp_path):
    path = tmp_path / "persist.sqlite"
    first = SQLiteStorage(path)
    document = first.create_document("a.md", "MD", 5)
    chunk = first.create_chunk(document.id, "content")
    first.set_chunk_embedding(chunk.id, [0.25, 0.75])
    first.create_message("c1", USER, "hello")

    second = SQLiteStorage(path)

    assert second.get_document(document.id).name == "a.md"
    assert second.get_embedded_chunks()[0].embedding == [0.25, 0.75]
    assert second.get_messages("c1")[0].content == "hello"


def test_sqlite_init_is_idempotent(tmp_path):
    path = tmp_path / "twice.sqlite"
    SQLiteStorage(path).create_document("a.txt", "TXT", 1)
    assert len(SQLiteStorage(path).list_documents()) == 1


def test_memory_storage_starts_empty():
    storage = InMemoryStorage()
    assert storage.list_documents() == []
    assert storage.get_embedded_chunks() == []

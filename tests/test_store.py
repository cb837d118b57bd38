"""Tests for the chunk store — CRUD, cascade delete, JSON persistence."""

from __future__ import annotations

import json

import pytest

from hybridrag.chunking.schemas import Chunk
from hybridrag.documents.store import STORE_FORMAT_VERSION, ChunkStore, InMemoryChunkStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _populate(store: InMemoryChunkStore) -> tuple[int, int]:
    a = store.add_document("a.txt", "alpha content")
    b = store.add_document("b.md", "beta content")
    store.save(a.id, ["a0", "a1", "a2"])
    store.save(b.id, ["b0"])
    return a.id, b.id


class TestChunkStoreABC:
    def test_cannot_instantiate_base(self):
        with pytest.raises(TypeError):
            ChunkStore()  # type: ignore[abstract]

    def test_store_name(self):
        assert InMemoryChunkStore.store_name() == "InMemoryChunkStore"


# ---------------------------------------------------------------------------
# Documents and chunks
# ---------------------------------------------------------------------------


class TestInMemoryChunkStore:
    def test_document_ids_are_sequential(self, store):
        first = store.add_document("a.txt", "x")
        second = store.add_document("b.txt", "y")
        assert (first.id, second.id) == (1, 2)
        assert [d.filename for d in store.get_documents()] == ["a.txt", "b.txt"]

    def test_get_document(self, store):
        doc = store.add_document("a.txt", "content")
        assert store.get_document(doc.id) == doc
        assert store.get_document(999) is None

    def test_save_assigns_indexes(self, store):
        doc = store.add_document("a.txt", "x")
        chunks = store.save(doc.id, ["one", "two"])
        assert [c.chunk_index for c in chunks] == [0, 1]
        assert all(c.document_id == doc.id for c in chunks)
        assert all(c.embedding is None for c in chunks)

    def test_save_replaces_previous_chunks(self, store):
        doc = store.add_document("a.txt", "x")
        store.save(doc.id, ["old0", "old1", "old2"])
        store.save(doc.id, ["new0"])
        assert [c.content for c in store.load_chunks(doc.id)] == ["new0"]
        assert store.count() == 1

    def test_save_unknown_document(self, store):
        with pytest.raises(KeyError):
            store.save(42, ["orphan"])

    def test_all_chunks_ordered(self, store):
        _populate(store)
        assert [c.content for c in store.all_chunks()] == ["a0", "a1", "a2", "b0"]

    def test_all_chunks_is_snapshot(self, store):
        a_id, _ = _populate(store)
        snapshot = store.all_chunks()
        store.save(a_id, ["replaced"])
        assert len(snapshot) == 4

    def test_set_embedding_replaces_chunk(self, store):
        doc = store.add_document("a.txt", "x")
        (chunk,) = store.save(doc.id, ["one"])

        updated = store.set_embedding(chunk.id, [0.1, 0.2])

        assert updated.embedding == (0.1, 0.2)
        assert chunk.embedding is None
        assert store.load_chunks(doc.id)[0].has_embedding

    def test_set_embedding_unknown_chunk(self, store):
        with pytest.raises(KeyError):
            store.set_embedding(123, [1.0])

    def test_chunks_without_embedding(self, store):
        doc = store.add_document("a.txt", "x")
        first, second = store.save(doc.id, ["one", "two"])
        store.set_embedding(first.id, [1.0])
        assert [c.id for c in store.chunks_without_embedding()] == [second.id]

    def test_delete_cascades(self, store):
        a_id, b_id = _populate(store)

        assert store.delete_document(a_id) == 3
        assert store.load_chunks(a_id) == []
        assert [d.id for d in store.get_documents()] == [b_id]
        assert store.count() == 1

    def test_delete_missing_document(self, store):
        assert store.delete_document(99) == 0

    def test_clear(self, store):
        _populate(store)
        store.clear()
        assert store.count() == 0
        assert store.get_documents() == []
        assert store.add_document("c.txt", "x").id == 1

    def test_chunk_is_immutable(self, store):
        doc = store.add_document("a.txt", "x")
        (chunk,) = store.save(doc.id, ["one"])
        with pytest.raises(AttributeError):
            chunk.content = "changed"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class TestPersistence:
    def test_round_trip(self, store, tmp_path):
        a_id, _ = _populate(store)
        first = store.load_chunks(a_id)[0]
        store.set_embedding(first.id, [0.5, -0.5])
        path = tmp_path / "store.json"

        store.save_to(path)
        loaded = InMemoryChunkStore.open(path)

        assert loaded.get_documents() == store.get_documents()
        assert loaded.all_chunks() == store.all_chunks()
        assert loaded.load_chunks(a_id)[0].embedding == (0.5, -0.5)

    def test_ids_continue_after_load(self, store, tmp_path):
        _populate(store)
        path = tmp_path / "store.json"
        store.save_to(path)

        loaded = InMemoryChunkStore.open(path)
        doc = loaded.add_document("c.txt", "x")
        (chunk,) = loaded.save(doc.id, ["c0"])
        assert doc.id == 3
        assert chunk.id == 5

    def test_open_missing_file(self, tmp_path):
        store = InMemoryChunkStore.open(tmp_path / "missing.json")
        assert store.count() == 0

    def test_save_creates_parent_dirs(self, store, tmp_path):
        path = tmp_path / "nested" / "dir" / "store.json"
        store.save_to(path)
        assert json.loads(path.read_text())["version"] == STORE_FORMAT_VERSION
        assert not path.with_name("store.json.tmp").exists()

    def test_unsupported_version(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text(json.dumps({"version": 99, "documents": [], "chunks": []}))
        with pytest.raises(ValueError, match="version"):
            InMemoryChunkStore().load_from(path)

    def test_default_persistence_not_supported(self, tmp_path):
        with pytest.raises(NotImplementedError):
            ChunkStore.save_to(InMemoryChunkStore(), tmp_path / "x.json")


class TestChunk:
    def test_has_embedding(self):
        chunk = Chunk(id=1, document_id=1, chunk_index=0, content="x")
        assert chunk.has_embedding is False
        assert chunk.with_embedding([1, 2]).embedding == (1.0, 2.0)
        assert Chunk(1, 1, 0, "x", embedding=()).has_embedding is False

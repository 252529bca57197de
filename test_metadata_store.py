"""
Tests for the JSON metadata store.

Run with: pytest test_metadata_store.py -v
"""

import json
from datetime import datetime, timezone

import pytest

from docmemory.index.metadata_store import ChunkRecord, DocumentRecord, MetadataStore, chunk_id_for


def make_document(doc_id="doc-1", user_id="alice"):
    return DocumentRecord(
        id=doc_id,
        user_id=user_id,
        filename=f"{doc_id}.txt",
        original_name="notes.txt",
        file_path=f"/data/documents/{doc_id}.txt",
        content="hello world",
        file_type=".txt",
        file_size=11,
        uploaded_at=datetime(2025, 1, 14, 12, 30, tzinfo=timezone.utc),
    )


def make_chunk(doc_id="doc-1", index=0):
    return ChunkRecord(
        id=chunk_id_for(doc_id, index),
        document_id=doc_id,
        content="hello world",
        chunk_index=index,
        start_position=0,
        end_position=11,
    )


@pytest.fixture
def path(tmp_path):
    return tmp_path / "metadata.json"


class TestLoad:
    def test_missing_file_starts_empty(self, path):
        store = MetadataStore.open(path)

        assert store.state.count == 0
        assert store.state.documents == {}
        assert not path.exists()

    def test_corrupt_file_resets_to_empty(self, path, caplog):
        path.write_text("{ not json", encoding="utf-8")

        store = MetadataStore.open(path)

        assert store.state.documents == {}
        assert store.state.count == 0
        assert "resetting to empty" in caplog.text

    def test_wrong_shape_resets_to_empty(self, path):
        path.write_text(json.dumps({"count": "many", "documents": []}), encoding="utf-8")
        assert MetadataStore.open(path).state.count == 0

    def test_missing_sections_get_defaults(self, path):
        path.write_text(json.dumps({"userDocuments": {}, "documents": {}}), encoding="utf-8")

        store = MetadataStore.open(path)

        assert store.state.chunks == {}
        assert store.state.chunk_to_index == {}
        assert store.state.count == 0

    def test_counter_never_behind_mapped_slots(self, path):
        store = MetadataStore(path)
        store.add_chunk(make_chunk(), 7)
        store.state.count = 2
        store.save()

        assert MetadataStore.open(path).next_slot == 8


class TestSave:
    def test_camel_case_layout(self, path):
        store = MetadataStore(path)
        store.add_document(make_document())
        store.add_user_document("alice", "doc-1")
        store.add_chunk(make_chunk(), 0)
        store.save()

        raw = json.loads(path.read_text(encoding="utf-8"))

        assert set(raw) == {"count", "userDocuments", "documents", "chunks", "chunkToIndex"}
        assert raw["count"] == 1
        assert raw["userDocuments"] == {"alice": ["doc-1"]}
        assert raw["chunkToIndex"] == {"doc-1-chunk-0": 0}
        doc = raw["documents"]["doc-1"]
        assert doc["userId"] == "alice"
        assert doc["originalName"] == "notes.txt"
        assert doc["fileType"] == ".txt"
        assert doc["uploadedAt"].startswith("2025-01-14T12:30:00")
        chunk = raw["chunks"]["doc-1-chunk-0"]
        assert chunk["documentId"] == "doc-1"
        assert chunk["chunkIndex"] == 0
        assert (chunk["startPosition"], chunk["endPosition"]) == (0, 11)

    def test_round_trip(self, path):
        store = MetadataStore(path)
        store.add_document(make_document())
        store.add_user_document("alice", "doc-1")
        store.add_chunk(make_chunk(index=0), 0)
        store.add_chunk(make_chunk(index=1), 1)
        store.save()

        reloaded = MetadataStore.open(path)

        assert reloaded.state == store.state
        assert reloaded.chunk_for_slot(1).id == "doc-1-chunk-1"

    def test_no_temp_file_left(self, path):
        MetadataStore(path).save()
        assert [p.name for p in path.parent.iterdir()] == ["metadata.json"]


class TestMutations:
    def test_slot_lookup_follows_add_and_remove(self, path):
        store = MetadataStore(path)
        store.add_chunk(make_chunk(index=0), 4)

        assert store.chunk_for_slot(4).chunk_index == 0
        assert store.remove_chunk("doc-1-chunk-0") == 4
        assert store.chunk_for_slot(4) is None
        assert store.remove_chunk("doc-1-chunk-0") is None
        # counter does not move back
        assert store.next_slot == 5

    def test_chunks_of_in_order(self, path):
        store = MetadataStore(path)
        for i in (2, 0, 1):
            store.add_chunk(make_chunk(index=i), i)
        store.add_chunk(make_chunk(doc_id="doc-2"), 3)

        assert [c.chunk_index for c in store.chunks_of("doc-1")] == [0, 1, 2]

    def test_remove_document_updates_owner_list(self, path):
        store = MetadataStore(path)
        for doc_id in ("doc-1", "doc-2"):
            store.add_document(make_document(doc_id))
            store.add_user_document("alice", doc_id)

        removed = store.remove_document("doc-1")

        assert removed.id == "doc-1"
        assert store.state.user_documents["alice"] == ["doc-2"]
        assert [d.id for d in store.documents_of("alice")] == ["doc-2"]
        assert store.remove_document("doc-1") is None

    def test_documents_of_skips_dangling_ids(self, path):
        store = MetadataStore(path)
        store.add_document(make_document("doc-1"))
        store.add_user_document("alice", "ghost")
        store.add_user_document("alice", "doc-1")

        assert [d.id for d in store.documents_of("alice")] == ["doc-1"]
        assert store.documents_of("nobody") == []

"""
Tests for the on-disk nearest-neighbor index.

Run with: pytest test_vector_index.py -v
"""

import numpy as np
import pytest

from docmemory.errors import DimensionMismatch
from docmemory.index.vector_index import SlotState, VectorIndex

DIM = 8


def unit(i, dim=DIM):
    v = np.zeros(dim, dtype=np.float32)
    v[i % dim] = 1.0
    return v


@pytest.fixture
def index_path(tmp_path):
    return tmp_path / "vectors" / "document_index.npz"


@pytest.fixture
def index(index_path):
    return VectorIndex(DIM, index_path, capacity=4)


class TestInsertAndSearch:
    def test_empty_index_returns_nothing(self, index):
        assert index.knn(unit(0), 5) == []

    def test_nearest_first_with_squared_l2(self, index):
        index.insert(unit(0), 0)
        index.insert(unit(1), 1)
        index.insert(unit(0) * 0.5, 2)

        results = index.knn(unit(0), 3)

        assert [slot for slot, _ in results] == [0, 2, 1]
        distances = [d for _, d in results]
        assert distances == pytest.approx([0.0, 0.25, 2.0], abs=1e-5)

    def test_k_is_clamped_to_live_slots(self, index):
        index.insert(unit(0), 10)
        index.insert(unit(1), 11)
        assert len(index.knn(unit(0), 50)) == 2

    def test_non_positive_k(self, index):
        index.insert(unit(0), 0)
        assert index.knn(unit(0), 0) == []

    def test_wrong_dimension_insert(self, index):
        with pytest.raises(DimensionMismatch):
            index.insert(np.ones(DIM + 1, dtype=np.float32), 0)
        assert len(index) == 0

    def test_wrong_dimension_query(self, index):
        index.insert(unit(0), 0)
        with pytest.raises(DimensionMismatch):
            index.knn(np.ones(DIM - 1), 1)

    def test_two_dimensional_input_rejected(self, index):
        with pytest.raises(DimensionMismatch):
            index.insert(np.ones((1, DIM), dtype=np.float32), 0)

    def test_duplicate_slot_rejected(self, index):
        index.insert(unit(0), 3)
        with pytest.raises(ValueError):
            index.insert(unit(1), 3)

    def test_grows_past_initial_capacity(self, index):
        for slot in range(25):
            index.insert(unit(slot), slot)

        assert len(index) == 25
        assert index.capacity >= 25
        assert index.knn(unit(3), 1)[0][1] == pytest.approx(0.0, abs=1e-5)

    def test_search_sees_inserts_after_a_query(self, index):
        index.insert(unit(0), 0)
        assert index.knn(unit(1), 1)[0][0] == 0
        index.insert(unit(1), 1)
        assert index.knn(unit(1), 1)[0][0] == 1


class TestSoftDelete:
    def test_tombstoned_slot_is_not_returned(self, index):
        index.insert(unit(0), 0)
        index.insert(unit(1), 1)

        index.soft_delete(0)

        assert [slot for slot, _ in index.knn(unit(0), 5)] == [1]
        assert index.slot_state(0) is SlotState.TOMBSTONED
        assert index.slot_state(1) is SlotState.LIVE
        assert index.slot_state(99) is None

    def test_storage_is_not_compacted(self, index):
        index.insert(unit(0), 0)
        index.insert(unit(1), 1)
        index.soft_delete(1)

        assert len(index) == 2
        assert index.live_count == 1
        assert index.slots() == [0, 1]
        assert index.slots(live_only=True) == [0]

    def test_tombstoned_slot_id_is_not_reusable(self, index):
        index.insert(unit(0), 0)
        index.soft_delete(0)
        with pytest.raises(ValueError):
            index.insert(unit(0), 0)

    def test_delete_twice_is_noop(self, index):
        index.insert(unit(0), 0)
        index.soft_delete(0)
        index.soft_delete(0)
        assert index.live_count == 0

    def test_unknown_slot(self, index):
        with pytest.raises(KeyError):
            index.soft_delete(42)

    def test_all_deleted_returns_nothing(self, index):
        index.insert(unit(0), 0)
        index.soft_delete(0)
        assert index.knn(unit(0), 3) == []


class TestPersistence:
    def test_round_trip(self, index, index_path):
        for slot in range(6):
            index.insert(unit(slot), slot + 100)
        index.soft_delete(102)
        index.persist()

        reloaded = VectorIndex.open(DIM, index_path, capacity=2)

        assert len(reloaded) == 6
        assert reloaded.slot_state(102) is SlotState.TOMBSTONED
        assert reloaded.knn(unit(4), 1)[0][0] == 104
        assert 102 not in [slot for slot, _ in reloaded.knn(unit(2), 6)]

    def test_reloaded_index_keeps_growing(self, index, index_path):
        index.insert(unit(0), 0)
        index.persist()

        reloaded = VectorIndex.open(DIM, index_path, capacity=1)
        for slot in range(1, 10):
            reloaded.insert(unit(slot), slot)
        assert len(reloaded) == 10

    def test_open_missing_file_starts_empty(self, index_path):
        fresh = VectorIndex.open(DIM, index_path)
        assert len(fresh) == 0
        assert not index_path.exists()

    def test_persist_leaves_no_temp_file(self, index, index_path):
        index.insert(unit(0), 0)
        index.persist()

        assert index_path.exists()
        assert sorted(p.name for p in index_path.parent.iterdir()) == [index_path.name]

    def test_empty_index_round_trip(self, index, index_path):
        index.persist()
        assert len(VectorIndex.open(DIM, index_path)) == 0

    def test_dimension_checked_on_load(self, index, index_path):
        index.insert(unit(0), 0)
        index.persist()

        with pytest.raises(DimensionMismatch):
            VectorIndex.open(DIM * 2, index_path)

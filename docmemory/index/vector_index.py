"""
Vector Index Module

This module implements the nearest-neighbor index behind the document memory
store using NumPy arrays and sklearn's NearestNeighbors. Points are chunk
embeddings; keys are integer slot ids handed out by the caller in insertion
order.

Key features:
- Fixed dimensionality, checked on every insert and query
- Squared Euclidean ("L2") distances, ascending
- Soft deletion: a deleted slot becomes a tombstone that is never returned
  again but keeps its storage row (there is no compaction)
- Growth by doubling, so the initial capacity is a hint, not a ceiling
- Single-file binary persistence (.npz) written through a temp file

Storage Format:
	document_index.npz - NumPy archive with
	    dim       - scalar, index dimensionality
	    vectors   - float32 (N x D) embeddings, one row per slot ever inserted
	    slot_ids  - int64 (N,) slot id of each row
	    live      - bool (N,) False for tombstoned rows

Typical Usage:
	>>> index = VectorIndex.open(384, Path("vector-store/vectors/document_index.npz"))
	>>> index.insert(embedding, slot_id=0)
	>>> index.knn(query_embedding, k=15)
	[(0, 0.21), ...]
"""

from __future__ import annotations

import logging as py_logging
import os
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
from sklearn.neighbors import NearestNeighbors  # type: ignore

from ..errors import DimensionMismatch


log = py_logging.getLogger("docmemory.index.vector_index")


class SlotState(str, Enum):
	LIVE = "live"
	TOMBSTONED = "tombstoned"


class VectorIndex:
	"""
	In-memory nearest-neighbor index over fixed-length vectors, persisted to disk.

	Rows are appended in insertion order and never removed. A slot id maps to
	exactly one row; tombstoned rows are excluded from search by rebuilding
	the NearestNeighbors model over live rows only.

	Thread Safety:
		Not thread-safe. The memory service serializes access.

	Performance:
		- Insert: amortized O(D)
		- Search: O(N * D) brute force over live rows; the model is refit
		  lazily on the first query after a mutation
		- Persist: O(N * D), full rewrite
	"""

	def __init__(self, dim: int, index_path: Path, capacity: int = 10_000):
		"""
		Create an empty index.

		Args:
			dim: Vector dimensionality (384 for all-MiniLM-L6-v2)
			index_path: File the index is persisted to
			capacity: Rows allocated up front; storage doubles when full
		"""
		if dim <= 0 or capacity <= 0:
			raise ValueError("dim and capacity must be positive")

		self.dim = dim
		self.index_path = index_path

		self._vectors = np.zeros((capacity, dim), dtype=np.float32)
		self._slot_ids = np.zeros(capacity, dtype=np.int64)
		self._live = np.zeros(capacity, dtype=bool)
		self._size = 0
		self._rows: Dict[int, int] = {}  # slot id -> row

		self._nn: Optional[NearestNeighbors] = None
		self._nn_slots: Optional[np.ndarray] = None  # slot id of each fitted row
		self._stale = True

	@classmethod
	def open(cls, dim: int, index_path: Path, capacity: int = 10_000) -> "VectorIndex":
		"""Load the index from index_path if it exists, otherwise start empty."""
		index = cls(dim, index_path, capacity)
		if index_path.exists():
			index.load()
			log.info(
				"Loaded existing document vector index from %s (%d slots, %d live)",
				index_path, len(index), index.live_count,
			)
		else:
			log.info("Created new document vector index (dim=%d, capacity=%d)", dim, capacity)
		return index

	def __len__(self) -> int:
		return self._size

	@property
	def capacity(self) -> int:
		return int(self._vectors.shape[0])

	@property
	def live_count(self) -> int:
		return int(self._live[:self._size].sum())

	def slots(self, live_only: bool = False) -> List[int]:
		"""Slot ids in insertion order, optionally only the searchable ones."""
		n = self._size
		if live_only:
			return [int(s) for s in self._slot_ids[:n][self._live[:n]]]
		return [int(s) for s in self._slot_ids[:n]]

	def _as_vector(self, vector) -> np.ndarray:
		arr = np.asarray(vector, dtype=np.float32)
		if arr.ndim != 1 or arr.shape[0] != self.dim:
			raise DimensionMismatch(f"Expected a vector of length {self.dim}, got shape {arr.shape}")
		return arr

	def _grow(self) -> None:
		new_capacity = self.capacity * 2
		vectors = np.zeros((new_capacity, self.dim), dtype=np.float32)
		slot_ids = np.zeros(new_capacity, dtype=np.int64)
		live = np.zeros(new_capacity, dtype=bool)

		vectors[:self._size] = self._vectors[:self._size]
		slot_ids[:self._size] = self._slot_ids[:self._size]
		live[:self._size] = self._live[:self._size]

		self._vectors, self._slot_ids, self._live = vectors, slot_ids, live
		log.debug("Grew vector index capacity to %d", new_capacity)

	def insert(self, vector, slot_id: int) -> None:
		"""
		Add a vector under a new slot id.

		Raises:
			DimensionMismatch: If the vector length differs from the index dimension
			ValueError: If the slot id is already present (live or tombstoned)
		"""
		vec = self._as_vector(vector)
		slot_id = int(slot_id)
		if slot_id in self._rows:
			raise ValueError(f"Slot {slot_id} is already in the index")

		if self._size == self.capacity:
			self._grow()

		row = self._size
		self._vectors[row] = vec
		self._slot_ids[row] = slot_id
		self._live[row] = True
		self._rows[slot_id] = row
		self._size += 1
		self._stale = True

	def soft_delete(self, slot_id: int) -> None:
		"""
		Tombstone a slot so it is no longer returned by knn.

		Deleting an already tombstoned slot is a no-op.

		Raises:
			KeyError: If the slot was never inserted
		"""
		row = self._rows.get(int(slot_id))
		if row is None:
			raise KeyError(f"Slot {slot_id} is not in the index")
		if self._live[row]:
			self._live[row] = False
			self._stale = True

	def slot_state(self, slot_id: int) -> Optional[SlotState]:
		"""Return LIVE or TOMBSTONED, or None for a slot that was never inserted."""
		row = self._rows.get(int(slot_id))
		if row is None:
			return None
		return SlotState.LIVE if self._live[row] else SlotState.TOMBSTONED

	def _rebuild_nn(self) -> None:
		rows = np.flatnonzero(self._live[:self._size])
		if rows.size == 0:
			self._nn = None
			self._nn_slots = None
		else:
			self._nn = NearestNeighbors(metric="euclidean", algorithm="brute")
			self._nn.fit(self._vectors[rows])
			self._nn_slots = self._slot_ids[rows]
		self._stale = False

	def knn(self, query, k: int) -> List[Tuple[int, float]]:
		"""
		Find the k live slots nearest to a query vector.

		Args:
			query: Query vector of length dim
			k: Number of neighbors wanted; clamped to the number of live slots

		Returns:
			List of (slot_id, squared_l2_distance), ascending by distance.
			Empty if the index has no live slots.

		Raises:
			DimensionMismatch: If the query length differs from the index dimension
		"""
		vec = self._as_vector(query)
		if k <= 0:
			return []

		if self._stale:
			self._rebuild_nn()
		if self._nn is None or self._nn_slots is None:
			return []

		k = min(k, len(self._nn_slots))
		distances, indices = self._nn.kneighbors(vec.reshape(1, -1), n_neighbors=k, return_distance=True)

		results: List[Tuple[int, float]] = []
		for dist, idx in zip(distances[0], indices[0]):
			results.append((int(self._nn_slots[int(idx)]), float(dist) ** 2))
		return results

	def persist(self) -> None:
		"""Write the whole index to index_path (temp file, then rename)."""
		self.index_path.parent.mkdir(parents=True, exist_ok=True)
		tmp_path = self.index_path.with_name(self.index_path.name + ".tmp")

		n = self._size
		with open(tmp_path, "wb") as fh:
			np.savez(
				fh,
				dim=np.array(self.dim, dtype=np.int64),
				vectors=self._vectors[:n],
				slot_ids=self._slot_ids[:n],
				live=self._live[:n],
			)
		os.replace(tmp_path, self.index_path)
		log.debug("Persisted vector index to %s (%d slots)", self.index_path, n)

	def load(self) -> None:
		"""
		Replace the in-memory state with the contents of index_path.

		Raises:
			DimensionMismatch: If the file was written for another dimensionality
		"""
		with np.load(self.index_path) as data:
			dim = int(data["dim"])
			if dim != self.dim:
				raise DimensionMismatch(
					f"Index file {self.index_path} has dimension {dim}, expected {self.dim}"
				)
			vectors = data["vectors"].astype(np.float32, copy=False)
			slot_ids = data["slot_ids"].astype(np.int64, copy=False)
			live = data["live"].astype(bool, copy=False)

		n = int(vectors.shape[0])
		capacity = max(self.capacity, n)
		self._vectors = np.zeros((capacity, self.dim), dtype=np.float32)
		self._slot_ids = np.zeros(capacity, dtype=np.int64)
		self._live = np.zeros(capacity, dtype=bool)
		self._vectors[:n] = vectors
		self._slot_ids[:n] = slot_ids
		self._live[:n] = live

		self._size = n
		self._rows = {int(slot): row for row, slot in enumerate(slot_ids)}
		self._stale = True

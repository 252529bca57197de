"""
Document Memory Service Module

This module is the entry point of the memory subsystem. It ties the parser,
the chunker, the embedding provider, the vector index and the metadata store
together behind four operations: store, search, list and delete.

Pipeline Overview:
	store:  file -> documents/{id}{ext} -> parse -> chunk -> embed
	        -> index.insert(slot) -> metadata (chunk, slot mapping) -> save
	search: query -> embed -> knn(3 * limit) -> slot -> chunk -> document
	        -> keep caller's documents -> aggregate per document -> rank
	delete: ownership check -> remove file -> tombstone slots
	        -> purge chunk/document metadata -> save metadata and index

Ranking:
	Each hit's similarity is 1 - squared L2 distance (not a normalized cosine
	score; it goes negative for distant vectors). A document's combined score
	is its best chunk similarity plus 0.1 per matching chunk, rewarding
	documents that match in several places.

Persistence:
	Metadata is saved after every store and delete. The index is persisted
	after a store whose slots pass a multiple of index_save_interval, after
	every delete, and on flush().

Concurrency:
	One service instance owns its files. All operations take the instance
	lock, so concurrent callers in one process cannot lose each other's
	updates. Separate processes sharing a data directory are not supported.

Typical Usage:
	>>> service = DocumentMemoryService.from_config(load_config())
	>>> doc_id = service.store("alice", "/tmp/notes.md", "notes.md")
	>>> hits = service.search("alice", "quarterly revenue", limit=5)
	>>> service.delete("alice", doc_id)
	True
"""

from __future__ import annotations

import logging as py_logging
import shutil
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union

import numpy as np
from pydantic import BaseModel

from ..config import AppConfig
from ..errors import DimensionMismatch, DocumentNotFound, SourceFileMissing, Unauthorized
from ..index.embeddings import LazyEmbedder
from ..index.metadata_store import ChunkRecord, DocumentRecord, MetadataStore, chunk_id_for
from ..index.vector_index import VectorIndex
from ..ingest.chunker import check_window, chunk_spans
from ..ingest.parser import file_type_for, parse_file


log = py_logging.getLogger("docmemory.memory.service")

# Score bonus per matching chunk of the same document
CHUNK_MATCH_BONUS = 0.1

# Chunks fetched from the index per requested document
OVERFETCH_FACTOR = 3


class TextEmbedder(Protocol):
	def encode_texts(self, texts: List[str]) -> np.ndarray: ...

	def encode_query(self, text: str) -> np.ndarray: ...


def similarity_from_distance(distance: float) -> float:
	return 1.0 - distance


def combined_score(max_similarity: float, chunk_count: int) -> float:
	"""Best chunk similarity plus a fixed bonus for every matching chunk."""
	return max_similarity + CHUNK_MATCH_BONUS * chunk_count


class SearchHit(BaseModel):
	"""
	A document matched by a search.

	Attributes:
		document: The matched document
		similarity: Combined score used for ranking
		max_similarity: Best similarity among the document's matching chunks
		chunk_count: Number of the document's chunks among the nearest neighbors
	"""
	document: DocumentRecord
	similarity: float
	max_similarity: float
	chunk_count: int


@dataclass
class SearchOutcome:
	"""Result of a search attempt: hits on success, the error otherwise."""
	hits: List[SearchHit] = field(default_factory=list)
	error: Optional[Exception] = None

	@property
	def ok(self) -> bool:
		return self.error is None


@dataclass
class _DocumentMatch:
	document: DocumentRecord
	max_similarity: float
	chunk_count: int = 1


class DocumentMemoryService:
	"""
	Per-user document memory backed by a vector index and a metadata store.

	Dependencies are injected so tests can run each instance against its own
	directory and a fake embedder. Use from_config() to build the production
	wiring.
	"""

	def __init__(
		self,
		documents_dir: Path,
		index: VectorIndex,
		metadata: MetadataStore,
		embedder: TextEmbedder,
		chunk_size: int = 1000,
		chunk_overlap: int = 200,
		index_save_interval: int = 10,
	):
		"""
		Args:
			documents_dir: Directory holding one saved file per document
			index: Vector index sharing the embedder's dimensionality
			metadata: Loaded metadata store
			embedder: Anything with encode_texts / encode_query
			chunk_size: Chunk window size in characters
			chunk_overlap: Characters shared by consecutive chunks
			index_save_interval: Persist the index when the slot counter is a multiple of this

		Raises:
			ChunkingConfigError: If chunk_overlap >= chunk_size
		"""
		check_window(chunk_size, chunk_overlap)
		if index_save_interval <= 0:
			raise ValueError("index_save_interval must be positive")

		self.documents_dir = documents_dir
		self.documents_dir.mkdir(parents=True, exist_ok=True)
		self._index = index
		self._metadata = metadata
		self._embedder = embedder
		self._chunk_size = chunk_size
		self._chunk_overlap = chunk_overlap
		self._index_save_interval = index_save_interval
		self._lock = threading.RLock()

		self._reconcile()

	@classmethod
	def from_config(cls, cfg: AppConfig, embedder: Optional[TextEmbedder] = None) -> "DocumentMemoryService":
		"""
		Build the service from configuration, loading index and metadata from disk.

		Args:
			cfg: Application configuration
			embedder: Optional embedder; defaults to a LazyEmbedder for cfg.embed_model
		"""
		if embedder is None:
			embedder = LazyEmbedder(cfg.embed_model, cfg.models_cache_dir, cfg.embed_dim)

		return cls(
			documents_dir=cfg.documents_dir,
			index=VectorIndex.open(cfg.embed_dim, cfg.index_path, cfg.index_capacity),
			metadata=MetadataStore.open(cfg.metadata_path),
			embedder=embedder,
			chunk_size=cfg.chunk_size,
			chunk_overlap=cfg.chunk_overlap,
			index_save_interval=cfg.index_save_interval,
		)

	def _reconcile(self) -> None:
		"""
		Line the index up with the metadata after loading.

		The index file is saved less often than the metadata, and a corrupt
		metadata file is reset to empty, so the two can disagree after a
		restart. Index slots no chunk refers to are tombstoned, and the slot
		counter is moved past every slot the index already holds.
		"""
		mapped = set(self._metadata.state.chunk_to_index.values())
		orphans = [slot for slot in self._index.slots(live_only=True) if slot not in mapped]
		for slot in orphans:
			self._index.soft_delete(slot)
		if orphans:
			log.warning("Tombstoned %d index slots with no chunk metadata", len(orphans))

		highest = max(self._index.slots(), default=-1)
		if self._metadata.next_slot <= highest:
			self._metadata.state.count = highest + 1

		unindexed = [slot for slot in mapped if self._index.slot_state(slot) is None]
		if unindexed:
			log.warning("%d chunks have no vector in the index and will not be searchable", len(unindexed))

	def _save_source(self, target: Path, file_path: Optional[Union[str, Path]], file_bytes: Optional[bytes]) -> None:
		if file_bytes is not None:
			target.write_bytes(file_bytes)
		elif file_path is not None and Path(file_path).is_file():
			shutil.copyfile(file_path, target)
		else:
			raise SourceFileMissing("File not found and no buffer provided")

	def _embed_chunks(self, texts: List[str]) -> np.ndarray:
		if not texts:
			return np.zeros((0, self._index.dim), dtype=np.float32)

		embeddings = np.asarray(self._embedder.encode_texts(texts), dtype=np.float32)
		if embeddings.shape != (len(texts), self._index.dim):
			raise DimensionMismatch(
				f"Embedder returned shape {embeddings.shape}, expected ({len(texts)}, {self._index.dim})"
			)
		return embeddings

	def store(
		self,
		user_id: str,
		file_path: Optional[Union[str, Path]],
		original_name: str,
		file_bytes: Optional[bytes] = None,
	) -> str:
		"""
		Ingest a document for a user and make it searchable.

		The file is saved as documents/{id}{extension}, parsed, chunked and
		embedded before anything is recorded. A failure up to and including the
		metadata save leaves the store as it was: recorded chunks and the
		document are dropped again, their slots tombstoned and the saved copy
		removed. A failed periodic index save only logs; the next save or a
		restart catches the index up.

		Args:
			user_id: Owner of the document
			file_path: Path of the source file (ignored when file_bytes is given)
			original_name: File name as uploaded; its extension selects the parser
			file_bytes: Raw file content, used instead of file_path when given

		Returns:
			The new document id

		Raises:
			SourceFileMissing: If file_path does not exist and no bytes were given
			UnsupportedFileType: If the file type cannot be parsed
			EmbeddingUnavailable: If the embedding model cannot be initialized
		"""
		document_id = str(uuid.uuid4())
		extension = Path(original_name).suffix
		filename = f"{document_id}{extension}"
		saved_path = self.documents_dir / filename

		with self._lock:
			self._save_source(saved_path, file_path, file_bytes)

			try:
				file_type = file_type_for(original_name)
				content = parse_file(saved_path, file_type)
				spans = chunk_spans(content, self._chunk_size, self._chunk_overlap)
				embeddings = self._embed_chunks([text for _, _, text in spans])
			except Exception:
				saved_path.unlink(missing_ok=True)
				raise

			document = DocumentRecord(
				id=document_id,
				user_id=user_id,
				filename=filename,
				original_name=original_name,
				file_path=str(saved_path),
				content=content,
				file_type=file_type,
				file_size=saved_path.stat().st_size,
				uploaded_at=datetime.now(timezone.utc),
			)
			first_slot = self._metadata.next_slot
			inserted: List[int] = []

			try:
				self._metadata.add_document(document)
				for chunk_index, ((start, end, text), vector) in enumerate(zip(spans, embeddings)):
					slot_id = self._metadata.next_slot
					self._index.insert(vector, slot_id)
					inserted.append(slot_id)
					self._metadata.add_chunk(
						ChunkRecord(
							id=chunk_id_for(document_id, chunk_index),
							document_id=document_id,
							content=text,
							chunk_index=chunk_index,
							start_position=start,
							end_position=end,
						),
						slot_id,
					)
				self._metadata.add_user_document(user_id, document_id)
				self._metadata.save()
			except Exception:
				self._discard(document_id, inserted, saved_path)
				raise

			# Metadata is durable from here; a lagging index is lined up again on restart
			interval = self._index_save_interval
			if self._metadata.next_slot // interval > first_slot // interval:
				try:
					self._index.persist()
				except OSError as e:
					log.error("Error persisting index after storing %s: %s", document_id, e)

		log.info("Stored document %s for user %s with %d chunks", document_id, user_id, len(spans))
		return document_id

	def _discard(self, document_id: str, slots: List[int], saved_path: Path) -> None:
		"""Undo a partly recorded store. Slot ids stay consumed."""
		for chunk in self._metadata.chunks_of(document_id):
			self._metadata.remove_chunk(chunk.id)
		for slot_id in slots:
			self._index.soft_delete(slot_id)
		self._metadata.remove_document(document_id)
		saved_path.unlink(missing_ok=True)
		log.warning("Discarded partly stored document %s", document_id)

	def _search(self, user_id: str, query: str, limit: int) -> SearchOutcome:
		if limit <= 0:
			return SearchOutcome()

		try:
			query_vector = self._embedder.encode_query(query)

			with self._lock:
				neighbors = self._index.knn(query_vector, limit * OVERFETCH_FACTOR)

				matches: Dict[str, _DocumentMatch] = {}
				for slot_id, distance in neighbors:
					chunk = self._metadata.chunk_for_slot(slot_id)
					if chunk is None:
						continue
					document = self._metadata.get_document(chunk.document_id)
					if document is None or document.user_id != user_id:
						continue

					similarity = similarity_from_distance(distance)
					match = matches.get(document.id)
					if match is None:
						matches[document.id] = _DocumentMatch(document=document.model_copy(), max_similarity=similarity)
					else:
						match.max_similarity = max(match.max_similarity, similarity)
						match.chunk_count += 1
		except Exception as e:
			return SearchOutcome(error=e)

		hits = [
			SearchHit(
				document=m.document,
				similarity=combined_score(m.max_similarity, m.chunk_count),
				max_similarity=m.max_similarity,
				chunk_count=m.chunk_count,
			)
			for m in matches.values()
		]
		hits.sort(key=lambda h: h.similarity, reverse=True)
		return SearchOutcome(hits=hits[:limit])

	def search(self, user_id: str, query: str, limit: int = 5) -> List[SearchHit]:
		"""
		Find a user's documents most relevant to a query.

		Never raises: any failure (embedding model unavailable, bad vector) is
		logged and reported as no results, so a chat turn is never broken by
		memory retrieval.

		Args:
			user_id: Only this user's documents are returned
			query: Free-text query
			limit: Maximum number of documents (default: 5)

		Returns:
			Up to limit SearchHits, best combined score first
		"""
		outcome = self._search(user_id, query, limit)
		if not outcome.ok:
			log.error("Error searching documents for user %s: %s", user_id, outcome.error, exc_info=outcome.error)
			return []
		return outcome.hits

	def list_documents(self, user_id: str) -> List[DocumentRecord]:
		"""A user's documents, most recently uploaded first."""
		with self._lock:
			documents = self._metadata.documents_of(user_id)
		# upload order breaks timestamp ties
		ordered = sorted(enumerate(documents), key=lambda pair: (pair[1].uploaded_at, pair[0]), reverse=True)
		return [document for _, document in ordered]

	def get_document(self, user_id: str, document_id: str) -> DocumentRecord:
		"""
		Fetch one of the user's documents.

		Raises:
			DocumentNotFound: If no such document exists
			Unauthorized: If it belongs to another user (same message as not found)
		"""
		with self._lock:
			document = self._metadata.get_document(document_id)
		if document is None:
			raise DocumentNotFound(f"Document {document_id} not found")
		if document.user_id != user_id:
			raise Unauthorized(f"Document {document_id} not found")
		return document

	def delete(self, user_id: str, document_id: str) -> bool:
		"""
		Delete one of the user's documents.

		Returns:
			True if the document was deleted; False, with nothing changed, if it
			does not exist or belongs to another user

		Raises:
			OSError: If the saved file or the store files cannot be written
		"""
		with self._lock:
			try:
				document = self.get_document(user_id, document_id)
			except DocumentNotFound:
				log.warning("Document %s not found or access denied for user %s", document_id, user_id)
				return False

			Path(document.file_path).unlink(missing_ok=True)

			for chunk in self._metadata.chunks_of(document_id):
				slot_id = self._metadata.remove_chunk(chunk.id)
				if slot_id is None:
					continue
				try:
					self._index.soft_delete(slot_id)
				except KeyError:
					log.warning("Slot %d of chunk %s was not in the index", slot_id, chunk.id)

			self._metadata.remove_document(document_id)
			self._metadata.save()
			self._index.persist()

		log.info("Deleted document %s", document_id)
		return True

	def flush(self) -> None:
		"""Persist the index and the metadata now."""
		with self._lock:
			self._index.persist()
			self._metadata.save()

	def get_stats(self) -> dict:
		with self._lock:
			state = self._metadata.state
			return {
				"documents": len(state.documents),
				"chunks": len(state.chunks),
				"users": sum(1 for docs in state.user_documents.values() if docs),
				"next_slot": state.count,
				"index_slots": len(self._index),
				"live_slots": self._index.live_count,
				"dim": self._index.dim,
			}

"""
Metadata Store Module

This module keeps everything the vector index does not know about: document
records, chunk records, which user owns which documents, and which index slot
each chunk's embedding lives in. It is persisted as one JSON file that is
rewritten in full after every mutation.

Storage Format (metadata.json):
	{
	  "count": 14,                                   # next slot id
	  "userDocuments": {"alice": ["3f2a...", ...]},  # upload order
	  "documents": {"3f2a...": {...DocumentRecord}},
	  "chunks": {"3f2a...-chunk-0": {...ChunkRecord}},
	  "chunkToIndex": {"3f2a...-chunk-0": 4}
	}

The store performs no consistency checks of its own. The memory service is
the only writer and keeps documents, chunks, chunkToIndex and userDocuments in
step with each other and with the vector index.
"""

from __future__ import annotations

import logging as py_logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..errors import CorruptMetadata


log = py_logging.getLogger("docmemory.index.metadata_store")


class _CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DocumentRecord(_CamelModel):
	"""
	One ingested document.

	Attributes:
		id: Opaque unique document id (UUID4 hex string)
		user_id: Owner of the document
		filename: Name of the saved copy, "{id}{extension}"
		original_name: File name as uploaded
		file_path: Absolute path of the saved copy
		content: Full extracted text
		file_type: Lower-case extension, e.g. ".pdf"
		file_size: Size of the saved copy in bytes
		uploaded_at: UTC time of ingestion
	"""
	id: str
	user_id: str
	filename: str
	original_name: str
	file_path: str
	content: str
	file_type: str
	file_size: int = Field(ge=0)
	uploaded_at: datetime


class ChunkRecord(_CamelModel):
	"""
	One chunk of a document.

	Attributes:
		id: "{document_id}-chunk-{chunk_index}"
		document_id: Parent document
		content: Chunk text (a substring of the document content)
		chunk_index: Position of the chunk within its document
		start_position: Offset of the chunk's first character in the document content
		end_position: Offset just past the chunk's last character
	"""
	id: str
	document_id: str
	content: str
	chunk_index: int = Field(ge=0)
	start_position: int = Field(ge=0)
	end_position: int = Field(ge=0)


class MetadataState(_CamelModel):
	count: int = Field(default=0, ge=0)
	user_documents: Dict[str, List[str]] = Field(default_factory=dict)
	documents: Dict[str, DocumentRecord] = Field(default_factory=dict)
	chunks: Dict[str, ChunkRecord] = Field(default_factory=dict)
	chunk_to_index: Dict[str, int] = Field(default_factory=dict)


def chunk_id_for(document_id: str, chunk_index: int) -> str:
	return f"{document_id}-chunk-{chunk_index}"


class MetadataStore:
	"""
	In-memory metadata mapping with whole-file JSON persistence.

	Besides the persisted state, the store keeps an inverse slot -> chunk id
	map so search hits resolve to chunks without scanning chunkToIndex. The
	inverse map is rebuilt on load and maintained by add_chunk/remove_chunk.
	"""

	def __init__(self, path: Path):
		self.path = path
		self.state = MetadataState()
		self._slot_to_chunk: Dict[int, str] = {}

	@classmethod
	def open(cls, path: Path) -> "MetadataStore":
		store = cls(path)
		store.load()
		return store

	def _read(self) -> MetadataState:
		try:
			raw = self.path.read_text(encoding="utf-8")
			return MetadataState.model_validate_json(raw)
		except ValueError as e:
			# pydantic's ValidationError and UnicodeDecodeError are both ValueErrors
			raise CorruptMetadata(f"Metadata file {self.path} is not valid: {e}") from e

	def load(self) -> None:
		"""
		Read the metadata file into memory.

		A missing file starts an empty store. A file that cannot be parsed is
		logged and discarded: the store resets to empty rather than failing
		startup, and the next save() overwrites it.
		"""
		if not self.path.exists():
			log.info("No metadata found at %s, starting fresh", self.path)
			self.state = MetadataState()
		else:
			try:
				self.state = self._read()
				log.info("Loaded metadata, document count: %d", len(self.state.documents))
			except CorruptMetadata as e:
				log.error("Error loading metadata, resetting to empty: %s", e)
				self.state = MetadataState()

		self._slot_to_chunk = {slot: chunk_id for chunk_id, slot in self.state.chunk_to_index.items()}

		# Slot ids are never reused, even if the counter on disk lags behind
		if self._slot_to_chunk:
			floor = max(self._slot_to_chunk) + 1
			if self.state.count < floor:
				log.warning("Metadata slot counter %d behind highest slot; raising to %d", self.state.count, floor)
				self.state.count = floor

	def save(self) -> None:
		"""Write the full state to disk (temp file, then rename)."""
		self.path.parent.mkdir(parents=True, exist_ok=True)
		tmp_path = self.path.with_name(self.path.name + ".tmp")
		tmp_path.write_text(
			self.state.model_dump_json(by_alias=True, indent=2),
			encoding="utf-8",
		)
		os.replace(tmp_path, self.path)

	@property
	def next_slot(self) -> int:
		return self.state.count

	def get_document(self, document_id: str) -> Optional[DocumentRecord]:
		return self.state.documents.get(document_id)

	def documents_of(self, user_id: str) -> List[DocumentRecord]:
		"""Documents of a user in upload order, skipping ids with no record."""
		docs = self.state.documents
		return [docs[doc_id] for doc_id in self.state.user_documents.get(user_id, []) if doc_id in docs]

	def chunks_of(self, document_id: str) -> List[ChunkRecord]:
		found = [c for c in self.state.chunks.values() if c.document_id == document_id]
		return sorted(found, key=lambda c: c.chunk_index)

	def chunk_for_slot(self, slot_id: int) -> Optional[ChunkRecord]:
		chunk_id = self._slot_to_chunk.get(slot_id)
		if chunk_id is None:
			return None
		return self.state.chunks.get(chunk_id)

	def add_document(self, document: DocumentRecord) -> None:
		self.state.documents[document.id] = document

	def add_user_document(self, user_id: str, document_id: str) -> None:
		self.state.user_documents.setdefault(user_id, []).append(document_id)

	def add_chunk(self, chunk: ChunkRecord, slot_id: int) -> None:
		"""Record a chunk and the index slot holding its embedding; advances the slot counter."""
		self.state.chunks[chunk.id] = chunk
		self.state.chunk_to_index[chunk.id] = slot_id
		self._slot_to_chunk[slot_id] = chunk.id
		self.state.count = max(self.state.count, slot_id + 1)

	def remove_chunk(self, chunk_id: str) -> Optional[int]:
		"""Drop a chunk record and its slot mapping; returns the slot id it had, if any."""
		self.state.chunks.pop(chunk_id, None)
		slot_id = self.state.chunk_to_index.pop(chunk_id, None)
		if slot_id is not None:
			self._slot_to_chunk.pop(slot_id, None)
		return slot_id

	def remove_document(self, document_id: str) -> Optional[DocumentRecord]:
		"""Drop a document record and its entry in its owner's list."""
		document = self.state.documents.pop(document_id, None)
		if document is not None and document.user_id in self.state.user_documents:
			self.state.user_documents[document.user_id] = [
				doc_id for doc_id in self.state.user_documents[document.user_id] if doc_id != document_id
			]
		return document

"""
Text Embedding Module

This module provides a wrapper around Sentence Transformers for generating
dense vector embeddings of text, plus the lazily initialized, process-wide
provider the memory service embeds through.

Model Information:
	Default model: sentence-transformers/all-MiniLM-L6-v2
	- Dimensions: 384
	- Size: ~90MB

	The vector index is built for a fixed dimensionality. Swapping in a model
	with a different output size invalidates the index, so the provider checks
	the model dimension when it loads.

Design Philosophy:
	All embeddings are mean-pooled and L2-normalized (unit vectors), returned
	as float32 numpy arrays. An empty batch never reaches the model.

Typical Usage:
	>>> provider = LazyEmbedder("sentence-transformers/all-MiniLM-L6-v2", cache_folder, 384)
	>>> embeddings = provider.encode_texts(["chunk1", "chunk2"])  # loads the model here
	>>> query_embedding = provider.encode_query("quarterly revenue")
"""

from __future__ import annotations

import logging as py_logging
import threading
from pathlib import Path
from typing import Callable, List, Optional

import numpy as np
from sentence_transformers import SentenceTransformer  # type: ignore

from ..errors import DimensionMismatch, EmbeddingUnavailable


log = py_logging.getLogger("docmemory.index.embeddings")


class Embedder:
	"""
	Sentence-transformers model producing vectors for one fixed-size index.

	The model's output size is checked against the index dimension when it
	loads, and every batch comes back as an (n, dimension) float32 array of
	unit vectors.
	"""

	def __init__(self, model_name: str, dimension: int, cache_folder: Optional[Path] = None):
		"""
		Load a sentence-transformers model (downloads it if not cached).

		Args:
			model_name: Hugging Face model identifier or local path
			dimension: Vector size the index was built for
			cache_folder: Optional directory to cache model files locally

		Raises:
			DimensionMismatch: If the model produces vectors of another size
		"""
		self.model_name = model_name
		self.dimension = dimension

		# Blocking; can take several seconds on first run
		self._model = SentenceTransformer(model_name, cache_folder=str(cache_folder) if cache_folder else None)

		produced = int(self._model.get_sentence_embedding_dimension())
		if produced != dimension:
			raise DimensionMismatch(
				f"Model {model_name} produces {produced}-dim vectors, index expects {dimension}"
			)

	def encode_texts(self, texts: List[str]) -> np.ndarray:
		"""Embed a batch of chunk texts; returns shape (len(texts), dimension)."""
		if not texts:
			return np.zeros((0, self.dimension), dtype=np.float32)

		emb = self._model.encode(
			texts,
			show_progress_bar=False,
			convert_to_numpy=True,
			normalize_embeddings=True,
		)
		return np.asarray(emb, dtype=np.float32).reshape(len(texts), self.dimension)

	def encode_query(self, text: str) -> np.ndarray:
		return self.encode_texts([text])[0]


class LazyEmbedder:
	"""
	Process-wide embedding provider, initialized on first use and then reused.

	Loading the model is deferred until the first text is embedded, so the
	service can start (and list or delete documents) without the model. A
	failed load is not cached: the next call tries again.

	Args:
		model_name: Sentence transformer model name
		cache_folder: Model cache directory
		dimension: Dimensionality the vector index was built for
		factory: Callable(model_name, dimension, cache_folder) building the
		         underlying embedder (default: Embedder)
	"""

	def __init__(
		self,
		model_name: str,
		cache_folder: Optional[Path],
		dimension: int,
		factory: Callable[[str, int, Optional[Path]], Embedder] = Embedder,
	):
		self.model_name = model_name
		self.cache_folder = cache_folder
		self.dimension = dimension
		self._factory = factory
		self._embedder: Optional[Embedder] = None
		self._lock = threading.Lock()

	@property
	def loaded(self) -> bool:
		return self._embedder is not None

	def get(self) -> Embedder:
		"""
		Return the loaded embedder, loading it first if needed.

		Raises:
			EmbeddingUnavailable: If the model cannot be loaded
			DimensionMismatch: If the model's output size differs from the index's
		"""
		if self._embedder is not None:
			return self._embedder

		with self._lock:
			if self._embedder is None:
				log.info("Initializing embedding model %s", self.model_name)
				try:
					self._embedder = self._factory(self.model_name, self.dimension, self.cache_folder)
				except DimensionMismatch as e:
					log.error("Embedding model %s does not fit the index: %s", self.model_name, e)
					raise
				except Exception as e:
					log.error("Error initializing embedding model %s: %s", self.model_name, e)
					raise EmbeddingUnavailable(f"Embedding model {self.model_name} could not be initialized") from e
				log.info("Embedding model initialized")

		return self._embedder

	def encode_texts(self, texts: List[str]) -> np.ndarray:
		return self.get().encode_texts(texts)

	def encode_query(self, text: str) -> np.ndarray:
		return self.get().encode_query(text)

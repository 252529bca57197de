"""
Error types raised by the document memory subsystem.

Each error also derives from the closest builtin exception, so callers that
already catch ValueError / FileNotFoundError / LookupError keep working.
"""

from __future__ import annotations


class DocumentMemoryError(Exception):
	"""Base class for all docmemory errors."""


class UnsupportedFileType(DocumentMemoryError, ValueError):
	"""The file extension is unknown and the text fallback could not read it."""


class SourceFileMissing(DocumentMemoryError, FileNotFoundError):
	"""Neither an existing source path nor an in-memory buffer was supplied."""


class EmbeddingUnavailable(DocumentMemoryError, RuntimeError):
	"""The embedding model could not be initialized."""


class DimensionMismatch(DocumentMemoryError, ValueError):
	"""A vector (or a model) does not match the index dimensionality."""


class DocumentNotFound(DocumentMemoryError, LookupError):
	"""The document does not exist."""


class Unauthorized(DocumentNotFound):
	"""
	The document exists but belongs to another user.

	Carries the same message as DocumentNotFound so that the existence of
	other users' documents is not revealed.
	"""


class CorruptMetadata(DocumentMemoryError, ValueError):
	"""The metadata file exists but cannot be parsed."""


class ChunkingConfigError(DocumentMemoryError, ValueError):
	"""Chunk window parameters that would never advance."""

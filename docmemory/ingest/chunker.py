"""
Text Chunking Module

Splits document text into fixed-size, overlapping windows. Each window is the
unit of embedding and retrieval in the memory store.

Algorithm:
	A window of chunk_size characters starts at offset 0. After each window the
	next one starts overlap characters before the previous end, until a window
	reaches the end of the text. Every chunk after the first therefore begins
	with the last `overlap` characters of its predecessor.

Typical Usage:
	>>> spans = chunk_spans(document, chunk_size=1000, overlap=200)
	>>> for start, end, text in spans:
	...     embedding = embed(text)
"""

from __future__ import annotations

from typing import List, Tuple

from ..errors import ChunkingConfigError


def check_window(chunk_size: int, overlap: int) -> None:
	"""Raise ChunkingConfigError for a window that would never advance."""
	if chunk_size <= 0 or overlap < 0:
		raise ChunkingConfigError("chunk_size must be > 0 and overlap must be >= 0")
	if overlap >= chunk_size:
		raise ChunkingConfigError(
			f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})"
		)


def chunk_spans(text: str, chunk_size: int = 1000, overlap: int = 200) -> List[Tuple[int, int, str]]:
	"""
	Split text into overlapping windows and report where each one sits.

	Args:
		text: Input text to chunk
		chunk_size: Maximum characters per chunk (default: 1000)
		overlap: Characters shared with the previous chunk (default: 200)

	Returns:
		List of (start_char, end_char, chunk_text) tuples, in text order.
		Empty text gives an empty list.

	Raises:
		ChunkingConfigError: If chunk_size <= 0, overlap < 0 or overlap >= chunk_size

	Example:
		>>> [(s, e) for s, e, _ in chunk_spans("x" * 2500)]
		[(0, 1000), (800, 1800), (1600, 2500)]
	"""
	check_window(chunk_size, overlap)

	spans: List[Tuple[int, int, str]] = []
	start = 0
	while start < len(text):
		end = min(start + chunk_size, len(text))
		spans.append((start, end, text[start:end]))
		if end >= len(text):
			break
		start = end - overlap

	return spans


def chunk_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> List[str]:
	"""Same windows as chunk_spans, without the offsets."""
	return [chunk for _, _, chunk in chunk_spans(text, chunk_size, overlap)]

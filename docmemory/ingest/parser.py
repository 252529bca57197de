"""
Document Parser Module

This module extracts plain text from the document formats users upload to the
memory store. The extracted text is stored verbatim as the document content
and is the input to chunking, so no normalization happens here: chunk offsets
always refer to exactly what was extracted.

Supported Formats:
- Plain text family (.txt, .md, .json, .csv, .log) - read verbatim as UTF-8;
  bytes that are not valid UTF-8 become U+FFFD rather than failing the ingest
- PDF files (.pdf) - page text extraction via pdfminer.six, no OCR
- Word documents (.docx) - raw paragraph text via python-docx

Unknown extensions are given one more chance as strict UTF-8 text before the
file is rejected with UnsupportedFileType.
"""

from __future__ import annotations

import logging as py_logging
from pathlib import Path
from typing import Union

import docx  # type: ignore
from pdfminer.high_level import extract_text  # type: ignore

from ..errors import UnsupportedFileType


log = py_logging.getLogger("docmemory.ingest.parser")

TEXT_EXTENSIONS = frozenset({".txt", ".md", ".json", ".csv", ".log"})
SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS | {".pdf", ".docx"}


def file_type_for(name: Union[str, Path]) -> str:
	"""
	Derive the file type discriminator from a file name.

	Example:
		>>> file_type_for("Report.PDF")
		'.pdf'
	"""
	return Path(name).suffix.lower()


def _read_text_file(path: Path, errors: str = "replace") -> str:
	# newline="" keeps line endings exactly as stored
	with open(path, encoding="utf-8", errors=errors, newline="") as fh:
		return fh.read()


def _read_pdf_file(path: Path) -> str:
	"""
	Extract text content from a PDF file using pdfminer.six.

	Scanned PDFs (images of text) yield an empty string unless they have been
	OCR'd. Malformed PDFs raise, which aborts the ingest that asked for them.
	"""
	# pdfminer.six can return None if PDF has no extractable text
	return extract_text(str(path)) or ""


def _read_docx_file(path: Path) -> str:
	"""
	Extract raw text from a .docx file, one paragraph per block.

	Formatting, tables and images are discarded.
	"""
	document = docx.Document(str(path))
	return "\n\n".join(p.text for p in document.paragraphs)


def parse_file(path: Path, file_type: str) -> str:
	"""
	Extract plain text from a stored document.

	Args:
		path: Path to the document file
		file_type: Extension-derived type, e.g. ".pdf" (case-insensitive)

	Returns:
		Extracted text (may be empty for empty files or image-only PDFs)

	Raises:
		UnsupportedFileType: If the extension is unknown and the file is not
		                     valid UTF-8 text either

	Example:
		>>> text = parse_file(Path("vector-store/documents/3f2a.md"), ".md")
	"""
	ext = file_type.lower()

	if ext in TEXT_EXTENSIONS:
		return _read_text_file(path)
	if ext == ".pdf":
		return _read_pdf_file(path)
	if ext == ".docx":
		return _read_docx_file(path)

	# Unknown extension: try it as text before giving up
	try:
		text = _read_text_file(path, errors="strict")
	except UnicodeDecodeError as e:
		raise UnsupportedFileType(f"Unsupported file type: {ext or '(none)'}") from e

	log.debug("Parsed %s with unknown type %r as plain text", path, ext)
	return text

"""
Shared pytest fixtures.

Tests run against a deterministic hashing embedder instead of a downloaded
sentence-transformers model: every token adds weight to one of 384
dimensions and the result is L2-normalized, so texts sharing words land close
together.
"""

import random
import re
import zlib
from pathlib import Path

import numpy as np
import pytest

from docmemory.index.metadata_store import MetadataStore
from docmemory.index.vector_index import VectorIndex
from docmemory.memory.service import DocumentMemoryService

DIM = 384

VOCABULARY = [
    "quantum", "neural", "cosmic", "fractal", "entropy", "stellar", "velocity",
    "catalyst", "synthesis", "algorithm", "paradox", "spectrum", "resonance",
    "wavelength", "dimension", "threshold", "equilibrium", "trajectory", "harbor",
    "lantern", "meadow", "glacier", "orchard", "canyon", "ember", "falcon",
    "granite", "horizon", "island", "juniper", "kettle", "lagoon", "marble",
]


class HashingEmbedder:
    """Bag-of-words embedder with the same output contract as the real one."""

    def __init__(self, dim: int = DIM):
        self.dim = dim
        self.calls = 0

    def encode_texts(self, texts):
        self.calls += 1
        out = np.zeros((len(texts), self.dim), dtype=np.float32)
        for row, text in enumerate(texts):
            for token in re.findall(r"\w+", text.lower()):
                out[row, zlib.crc32(token.encode("utf-8")) % self.dim] += 1.0
            norm = np.linalg.norm(out[row])
            if norm > 0:
                out[row] /= norm
        return out

    def encode_query(self, text):
        return self.encode_texts([text])[0]


class BrokenEmbedder:
    def __init__(self, error: Exception):
        self.error = error

    def encode_texts(self, texts):
        raise self.error

    def encode_query(self, text):
        raise self.error


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def data_dir(tmp_path) -> Path:
    return tmp_path / "vector-store"


@pytest.fixture
def open_service(data_dir, embedder):
    """Factory opening a service on data_dir; call again to simulate a restart."""

    def _open(embedder_override=None, **kwargs):
        capacity = kwargs.pop("capacity", 16)
        index = VectorIndex.open(DIM, data_dir / "vectors" / "document_index.npz", capacity=capacity)
        metadata = MetadataStore.open(data_dir / "metadata.json")
        return DocumentMemoryService(
            data_dir / "documents",
            index,
            metadata,
            embedder_override or embedder,
            **kwargs,
        )

    return _open


@pytest.fixture
def service(open_service):
    return open_service()


@pytest.fixture
def make_text():
    """Deterministic prose of about `length` characters built from VOCABULARY."""

    def _make(seed: int, length: int = 400, words=None) -> str:
        rng = random.Random(seed)
        pool = words or VOCABULARY
        parts = []
        total = 0
        while total <= length:
            word = rng.choice(pool)
            parts.append(word)
            total += len(word) + 1
        return " ".join(parts)[:length]

    return _make


@pytest.fixture
def write_file(tmp_path):
    def _write(name: str, content: str) -> Path:
        path = tmp_path / "uploads" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write

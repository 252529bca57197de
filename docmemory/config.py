"""
Configuration Management Module

This module handles all configuration for docmemory, loading settings from
environment variables and .env files with sensible defaults. It centralizes the
on-disk layout of the memory store so every component agrees on where the
documents, the vector index and the metadata file live.

Key responsibilities:
- Load environment variables from .env file
- Provide default values for all settings
- Ensure required directories exist
- Reject chunking parameters that would never advance the window
- Type-safe configuration via Pydantic BaseSettings

Persisted Layout:
	<data_dir>/
	├── documents/                  # one saved file per ingested document
	├── vectors/document_index.npz  # binary vector index
	└── metadata.json               # documents, chunks, slot mapping
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
	"""
	Runtime configuration container for docmemory.

	Attributes:
		data_dir: Root directory of the persisted store (default: ./vector-store)
		models_cache_dir: Directory for caching embedding models (default: ./models)
		embed_model: Sentence transformer model name (default: all-MiniLM-L6-v2)
		embed_dim: Embedding dimensionality the index is built for (default: 384)
		chunk_size: Characters per chunk window (default: 1000)
		chunk_overlap: Characters shared by consecutive chunks (default: 200)
		index_capacity: Initial slot capacity of the vector index (default: 10000)
		index_save_interval: Persist the index whenever the slot counter is a multiple of this
		log_level: Logging verbosity level (default: INFO)
		log_file: Optional log file path (default: ./docmemory.log)
	"""
	data_dir: Path = Field(default=Path("./vector-store"), validation_alias="DOCMEM_DATA_DIR")
	models_cache_dir: Path = Field(default=Path("./models"), validation_alias="DOCMEM_MODELS_CACHE")
	embed_model: str = Field(default="sentence-transformers/all-MiniLM-L6-v2", validation_alias="EMBED_MODEL")
	embed_dim: int = Field(default=384, gt=0, validation_alias="EMBED_DIM")
	chunk_size: int = Field(default=1000, gt=0, validation_alias="CHUNK_SIZE")
	chunk_overlap: int = Field(default=200, ge=0, validation_alias="CHUNK_OVERLAP")
	index_capacity: int = Field(default=10_000, gt=0, validation_alias="INDEX_CAPACITY")
	index_save_interval: int = Field(default=10, gt=0, validation_alias="INDEX_SAVE_INTERVAL")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
	log_file: Optional[Path] = Field(default=None, validation_alias="DOCMEM_LOG_FILE")

	model_config = SettingsConfigDict(
		env_file=".env",
		env_file_encoding="utf-8",
		case_sensitive=False,
		extra="ignore",
		populate_by_name=True,
	)

	@field_validator("data_dir", "models_cache_dir", mode="after")
	@classmethod
	def resolve_and_create_paths(cls, v: Path) -> Path:
		"""Resolve paths to absolute and create directories if they don't exist."""
		resolved = v.resolve()
		resolved.mkdir(parents=True, exist_ok=True)
		return resolved

	@model_validator(mode="after")
	def check_chunk_window(self) -> "AppConfig":
		"""A window whose overlap is not smaller than its size never advances."""
		if self.chunk_overlap >= self.chunk_size:
			raise ValueError(
				f"chunk_overlap ({self.chunk_overlap}) must be smaller than chunk_size ({self.chunk_size})"
			)
		return self

	@property
	def documents_dir(self) -> Path:
		return self.data_dir / "documents"

	@property
	def index_path(self) -> Path:
		return self.data_dir / "vectors" / "document_index.npz"

	@property
	def metadata_path(self) -> Path:
		return self.data_dir / "metadata.json"


def load_config(env_path: Optional[Path] = None) -> AppConfig:
	"""
	Load application configuration from environment variables with fallback defaults.

	Args:
		env_path: Optional path to .env file (default: ./.env)

	Returns:
		AppConfig: Fully initialized configuration object with all paths resolved

	Environment Variables:
		DOCMEM_DATA_DIR: Store root directory (default: ./vector-store)
		DOCMEM_MODELS_CACHE: Embedding model cache directory (default: ./models)
		EMBED_MODEL: Sentence transformer model (default: sentence-transformers/all-MiniLM-L6-v2)
		EMBED_DIM: Embedding dimensionality (default: 384)
		CHUNK_SIZE / CHUNK_OVERLAP: Chunk window (default: 1000 / 200)
		INDEX_CAPACITY: Initial vector index capacity (default: 10000)
		INDEX_SAVE_INTERVAL: Index persistence interval in slots (default: 10)
		LOG_LEVEL: Logging level - DEBUG, INFO, WARNING, ERROR (default: INFO)
		DOCMEM_LOG_FILE: Log file path (default: ./docmemory.log)

	Raises:
		pydantic.ValidationError: If chunk_overlap >= chunk_size or a numeric
		                          setting is out of range
	"""
	if env_path is not None:
		return AppConfig(_env_file=str(env_path))

	return AppConfig()

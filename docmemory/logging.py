"""
Logging Configuration Module

Console logging plus a rotating docmemory.log for the memory service.

Note:
	We import the standard library as 'py_logging' because this module is named
	'logging', which would otherwise shadow the standard library.
"""

from __future__ import annotations

import logging as py_logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# pdfminer logs every PDF object at DEBUG; model downloads log per file
QUIET_LOGGERS = ("pdfminer", "sentence_transformers", "huggingface_hub", "urllib3", "filelock")


def _file_handler(log_file: Path) -> RotatingFileHandler:
	log_file.parent.mkdir(parents=True, exist_ok=True)
	handler = RotatingFileHandler(str(log_file), maxBytes=2_000_000, backupCount=2, encoding="utf-8")
	handler.setFormatter(py_logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
	return handler


def init_logging(log_level: str = "INFO", log_file: Optional[Path] = None) -> Path:
	"""
	Initialize logging for the CLI and the service.

	Safe to call more than once: the rotating file handler is only added if the
	root logger has none yet. Third-party libraries that flood DEBUG output are
	held at WARNING or the requested level, whichever is higher.

	Args:
		log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL; anything else means INFO
		log_file: Log file path (default: ./docmemory.log)

	Returns:
		The log file path in use
	"""
	level = getattr(py_logging, log_level.upper(), py_logging.INFO)
	py_logging.basicConfig(level=level)

	root = py_logging.getLogger()
	root.setLevel(level)
	for name in QUIET_LOGGERS:
		py_logging.getLogger(name).setLevel(max(level, py_logging.WARNING))

	log_file = log_file or Path("./docmemory.log").resolve()
	if not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
		root.addHandler(_file_handler(log_file))
	return log_file

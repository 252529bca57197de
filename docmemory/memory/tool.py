"""
Vector Store Tool Module

The JSON call surface the chat layer uses to reach the memory service. A tool
call carries an operation name plus its arguments; the reply is a JSON string
with a "success" flag and either the operation's payload or an "error".

Request Format (camelCase, as sent by the chat layer):
	{"operation": "store", "userId": "alice", "filePath": "/tmp/a.pdf", "originalName": "a.pdf"}
	{"operation": "search", "userId": "alice", "query": "invoices", "limit": 5}
	{"operation": "list", "userId": "alice"}
	{"operation": "delete", "userId": "alice", "documentId": "3f2a..."}

Replies:
	store  -> {"success": true, "documentId": ..., "message": ...}
	search -> {"success": true, "results": [...], "count": n}
	list   -> {"success": true, "documents": [...], "count": n}
	delete -> {"success": bool, "message": ...}
	error  -> {"success": false, "error": "..."}
"""

from __future__ import annotations

import json
import logging as py_logging
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..index.metadata_store import DocumentRecord
from .service import DocumentMemoryService, SearchHit


log = py_logging.getLogger("docmemory.memory.tool")

TOOL_ID = "vectorStore"
TOOL_DESCRIPTION = "Store, search, and manage documents (PDF, TXT, DOCX, etc.) using vector embeddings"


class VectorStoreRequest(BaseModel):
	"""Arguments of one vector store tool call."""
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	operation: Literal["store", "search", "list", "delete"]
	user_id: str = Field(min_length=1)
	file_path: Optional[str] = None
	original_name: Optional[str] = None
	query: Optional[str] = None
	document_id: Optional[str] = None
	limit: int = 5


def _document_summary(document: DocumentRecord) -> Dict[str, Any]:
	return {
		"id": document.id,
		"originalName": document.original_name,
		"fileType": document.file_type,
		"fileSize": document.file_size,
		"uploadedAt": document.uploaded_at.isoformat(),
	}


def _hit_summary(hit: SearchHit) -> Dict[str, Any]:
	summary = _document_summary(hit.document)
	summary["similarity"] = hit.similarity
	return summary


def _failure(error: str) -> str:
	return json.dumps({"success": False, "error": error})


def _dispatch(service: DocumentMemoryService, request: VectorStoreRequest) -> Dict[str, Any]:
	if request.operation == "store":
		if not request.file_path or not request.original_name:
			return {"success": False, "error": "File path and original name are required for store operation"}
		document_id = service.store(request.user_id, request.file_path, request.original_name)
		return {"success": True, "documentId": document_id, "message": "Document stored successfully"}

	if request.operation == "search":
		if not request.query:
			return {"success": False, "error": "Query is required for search operation"}
		hits = service.search(request.user_id, request.query, request.limit)
		return {"success": True, "results": [_hit_summary(h) for h in hits], "count": len(hits)}

	if request.operation == "list":
		documents = service.list_documents(request.user_id)
		return {"success": True, "documents": [_document_summary(d) for d in documents], "count": len(documents)}

	# delete
	if not request.document_id:
		return {"success": False, "error": "Document ID is required for delete operation"}
	deleted = service.delete(request.user_id, request.document_id)
	return {
		"success": deleted,
		"message": "Document deleted successfully" if deleted else "Failed to delete document",
	}


def execute(service: DocumentMemoryService, payload: Mapping[str, Any]) -> str:
	"""
	Run one tool call against the memory service.

	Never raises: invalid arguments and errors from the service are returned
	as {"success": false, "error": ...} so the chat layer can hand them to the
	model as a tool result.

	Args:
		service: The memory service
		payload: Tool call arguments (camelCase keys)

	Returns:
		JSON string reply

	Example:
		>>> execute(service, {"operation": "list", "userId": "alice"})
		'{"success": true, "documents": [], "count": 0}'
	"""
	try:
		request = VectorStoreRequest.model_validate(payload)
	except ValidationError as e:
		problems = "; ".join(
			f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
		)
		return _failure(f"Invalid arguments: {problems}")

	log.info("Executing vector store tool with operation: %s", request.operation)
	try:
		return json.dumps(_dispatch(service, request))
	except Exception as e:
		log.error("Error executing vector store tool: %s", e, exc_info=True)
		return _failure(str(e))

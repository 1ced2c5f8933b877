"""File Search API routes: stores, uploads, operations and grounded chat."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.util import get_remote_address

from genai_demo.api.deps import get_analytics, get_session
from genai_demo.core.errors import ValidationError
from genai_demo.schemas.chat import ChatTurn
from genai_demo.schemas.file_search import Operation
from genai_demo.services.analytics import AnalyticsTracker
from genai_demo.services.file_search_session import FileSearchSession
from genai_demo.services.store_registry import DEFAULT_STORE_DISPLAY_NAME

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)
router = APIRouter(prefix="/filesearch", tags=["filesearch"])


class CreateStoreRequest(BaseModel):
    displayName: Optional[str] = None


class FileSearchChatRequest(BaseModel):
    message: str = ""
    history: List[ChatTurn] = []
    fileSearchStoreNames: List[str] = []


def _operation_payload(operation: Operation) -> dict:
    return {
        "name": operation.name,
        "done": operation.done,
        "file": operation.file.model_dump() if operation.file else None,
        "error": operation.error.model_dump() if operation.error else None,
        "notFound": operation.notFound,
    }


# ── Stores ────────────────────────────────────────────────────────────

@router.get("/stores")
async def get_stores(
    name: Optional[str] = None,
    session: FileSearchSession = Depends(get_session),
):
    """List all stores, or get one store with its files when ``name`` is given."""
    if name:
        store = await session.get_store(name)
        return {"success": True, "store": store.model_dump()}
    stores = await session.list_stores()
    return {"success": True, "stores": [s.model_dump(exclude={"files"}) for s in stores]}


@router.post("/stores")
async def create_store(
    body: CreateStoreRequest,
    session: FileSearchSession = Depends(get_session),
    analytics: AnalyticsTracker = Depends(get_analytics),
):
    store = await session.create_store(body.displayName or DEFAULT_STORE_DISPLAY_NAME)
    analytics.track("File Search Store Created", {"store_name": store.name})
    return {"success": True, "name": store.name, "displayName": store.displayName}


@router.delete("/stores")
async def delete_store(
    name: Optional[str] = None,
    session: FileSearchSession = Depends(get_session),
    analytics: AnalyticsTracker = Depends(get_analytics),
):
    if not name:
        raise ValidationError("Store name is required")
    await session.delete_store(name)
    analytics.track("File Search Store Deleted", {"store_name": name})
    return {"success": True, "message": "Store deleted successfully"}


@router.get("/stores/files")
async def list_store_files(
    name: str,
    session: FileSearchSession = Depends(get_session),
):
    """Cached file list for a store, as updated by completed uploads."""
    return {"success": True, "files": [f.model_dump() for f in session.list_files(name)]}


# ── Uploads ───────────────────────────────────────────────────────────

@router.post("/upload")
async def upload_file(
    file: UploadFile = File(...),
    storeName: str = Form(""),
    displayName: Optional[str] = Form(None),
    session: FileSearchSession = Depends(get_session),
    analytics: AnalyticsTracker = Depends(get_analytics),
):
    """Upload a file to a store and start polling its indexing operation."""
    if not storeName:
        raise ValidationError("Store name is required")
    if file.size is not None:
        session.uploader.check_size(file.size)

    content = await file.read()
    display_name = displayName or file.filename
    tracked = await session.upload_file(content, storeName, display_name, file.content_type)

    analytics.track("File Upload Started", {
        "store_name": storeName,
        "file_name": display_name,
        "file_size": len(content),
        "operation_name": tracked.operation.name,
    })
    return {"success": True, "operation": _operation_payload(tracked.operation)}


# ── Operations ────────────────────────────────────────────────────────

@router.get("/operations")
async def list_operations(session: FileSearchSession = Depends(get_session)):
    """Latest observed status of every tracked operation."""
    return {
        "operations": {
            handle: {
                "operation": _operation_payload(tracked.operation),
                "storeName": tracked.storeName,
                "displayName": tracked.displayName,
                "error": tracked.localError,
                "polling": handle in session.poller.active,
            }
            for handle, tracked in session.poller.statuses.items()
        }
    }


@router.get("/operations/{operation_id:path}")
async def check_operation(
    operation_id: str,
    session: FileSearchSession = Depends(get_session),
):
    """Check an operation's status once (5xx here is transient; keep polling)."""
    operation = await session.check_operation(operation_id)
    return {"success": True, "done": operation.done, "operation": _operation_payload(operation)}


@router.delete("/operations/{operation_id:path}")
async def stop_polling(
    operation_id: str,
    session: FileSearchSession = Depends(get_session),
):
    return {"success": True, "cancelled": session.poller.cancel(operation_id)}


# ── Chat ──────────────────────────────────────────────────────────────

@router.post("/chat")
@limiter.limit("20/minute")
async def file_search_chat(
    request: Request,
    body: FileSearchChatRequest,
    session: FileSearchSession = Depends(get_session),
    analytics: AnalyticsTracker = Depends(get_analytics),
):
    """Answer a question grounded in the given File Search stores."""
    result = await session.ask(body.message, body.history, body.fileSearchStoreNames)

    analytics.track("File Search Query", {
        "message_length": len(body.message),
        "store_names": body.fileSearchStoreNames,
    })
    analytics.track("File Search Response Received", {
        "response_length": len(result.text),
        "has_citations": bool(result.citations),
        "usage": result.usage.model_dump(),
    })

    return {
        "success": True,
        "response": result.text,
        "citations": [c.model_dump() for c in result.citations],
        "groundingMetadata": result.groundingMetadata,
        "tokenCount": result.usage.total_tokens,
        "usage": result.usage.model_dump(),
        "timestamp": result.timestamp.isoformat(),
    }

"""Plain chat routes and the credential probe used to gate the UI."""

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.util import get_remote_address

from genai_demo.api.deps import get_analytics, get_session, get_settings
from genai_demo.schemas.chat import ChatTurn
from genai_demo.services.analytics import AnalyticsTracker
from genai_demo.services.file_search_session import FileSearchSession

limiter = Limiter(key_func=get_remote_address)
router = APIRouter(prefix="/chat", tags=["chat"])


class ChatRequest(BaseModel):
    message: str = ""
    history: List[ChatTurn] = []


@router.get("/config")
async def chat_config(settings=Depends(get_settings)):
    """Report whether a provider API key is configured."""
    has_key = settings.has_api_key
    return {
        "hasApiKey": has_key,
        "message": "API key is configured" if has_key else "API key not configured",
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("")
async def chat_health(settings=Depends(get_settings)):
    has_key = settings.has_api_key
    return {
        "status": "ok",
        "hasApiKey": has_key,
        "message": "Chat API is ready" if has_key else "API key not configured",
        "model": settings.gemini_model,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.post("")
@limiter.limit("20/minute")
async def chat(
    request: Request,
    body: ChatRequest,
    session: FileSearchSession = Depends(get_session),
    analytics: AnalyticsTracker = Depends(get_analytics),
):
    result = await session.send_message(body.message, body.history)
    analytics.track("Chat Message Sent", {
        "message_length": len(body.message),
        "history_length": len(body.history),
        "total_tokens": result.usage.total_tokens,
    })
    return {
        "response": result.text,
        "tokenCount": result.tokenCount,
        "usage": result.usage.model_dump(),
        "timestamp": result.timestamp.isoformat(),
    }

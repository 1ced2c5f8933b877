"""Persisted conversation turns (chat and File Search pages)."""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from genai_demo.api.deps import get_conversations
from genai_demo.schemas.chat import ChatTurn
from genai_demo.services.conversation_store import ConversationStore

router = APIRouter(prefix="/conversations", tags=["conversations"])


class SaveConversationRequest(BaseModel):
    turns: List[ChatTurn]


def _dump(turns: List[ChatTurn]) -> dict:
    return {"turns": [t.model_dump(mode="json", exclude_none=True) for t in turns]}


@router.get("/{key}")
async def load_conversation(key: str, store: ConversationStore = Depends(get_conversations)):
    """Stored turns, or the welcome conversation if none or unreadable."""
    return _dump(store.load(key))


@router.put("/{key}")
async def save_conversation(
    key: str,
    body: SaveConversationRequest,
    store: ConversationStore = Depends(get_conversations),
):
    store.save(key, body.turns)
    return _dump(body.turns)


@router.delete("/{key}")
async def reset_conversation(key: str, store: ConversationStore = Depends(get_conversations)):
    return _dump(store.reset(key))

"""Pydantic schemas for chat turns, citations and token usage."""

from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field


Role = Literal["user", "model"]


class Citation(BaseModel):
    """Evidence pointing at the document passage that informed an answer."""
    index: int = Field(description="1-based position in the citation list")
    source: str
    title: str
    excerpt: Optional[str] = None


class ChatTurn(BaseModel):
    """One message in a conversation.

    The UI sends either a protocol ``role`` or its own ``sender``
    (``user`` / ``bot``); ``protocol_role`` resolves the two.
    """
    role: Optional[Role] = None
    sender: Optional[str] = None
    text: str = ""
    citations: Optional[List[Citation]] = None

    @property
    def protocol_role(self) -> Role:
        if self.role:
            return self.role
        return "user" if self.sender == "user" else "model"

    def to_content(self) -> dict:
        return {"role": self.protocol_role, "parts": [{"text": self.text}]}


class Usage(BaseModel):
    prompt_tokens: int = 0
    candidates_tokens: int = 0
    total_tokens: int = 0


class ChatResult(BaseModel):
    text: str
    usage: Usage
    tokenCount: int = 0
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class AskResult(BaseModel):
    text: str
    citations: List[Citation] = Field(default_factory=list)
    usage: Usage
    groundingMetadata: Optional[dict] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

"""Plain chat against the provider's generateContent endpoint.

Also holds the request/response shaping shared with the retrieval chat:
message validation, history-to-contents mapping, text and usage extraction.
"""

import logging
from typing import Iterable, List, Optional

from genai_demo.core.errors import RemoteServiceError, ValidationError
from genai_demo.schemas.chat import ChatResult, ChatTurn, Usage
from genai_demo.services.gemini_client import GeminiClient

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000

GENERATION_CONFIG = {
    "maxOutputTokens": 8192,
    "temperature": 0.7,
    "topP": 0.8,
    "topK": 40,
}

# Usage field spellings seen across provider versions, tried in order.
USAGE_FIELDS = {
    "prompt_tokens": ("promptTokenCount", "promptTokens"),
    "candidates_tokens": ("candidatesTokenCount", "candidatesTokens"),
    "total_tokens": ("totalTokenCount", "totalTokens"),
}


def validate_message(message: Optional[str], max_length: int = MAX_MESSAGE_LENGTH) -> str:
    if not message or not isinstance(message, str) or not message.strip():
        raise ValidationError("Message is required and must be a non-empty string.")
    if len(message) > max_length:
        raise ValidationError(f"Message too long. Please keep it under {max_length} characters.")
    return message


def build_contents(history: Optional[Iterable[ChatTurn]], message: str) -> List[dict]:
    """Map conversation history plus the new user message to provider contents."""
    contents = [turn.to_content() for turn in (history or []) if turn.text]
    contents.append({"role": "user", "parts": [{"text": message}]})
    return contents


def extract_text(data: dict) -> str:
    """Answer text: top-level ``text`` if present, else the first candidate's parts."""
    if isinstance(data.get("text"), str):
        return data["text"]
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if not part.get("thought"))


def extract_usage(data: dict) -> Usage:
    usage = data.get("usage") or data.get("usageMetadata") or {}
    values = {}
    for field, keys in USAGE_FIELDS.items():
        values[field] = next((usage[k] for k in keys if usage.get(k)), 0)
    return Usage(**values)


def check_blocked(data: dict) -> None:
    """Raise if the provider refused the prompt outright."""
    feedback = data.get("promptFeedback") or {}
    reason = feedback.get("blockReason")
    if reason:
        raise RemoteServiceError(f"Prompt blocked by provider: {reason} (SAFETY)", status_code=400)


class ChatService:
    """Conversation without retrieval."""

    def __init__(self, client: GeminiClient, max_message_length: int = MAX_MESSAGE_LENGTH):
        self.client = client
        self.max_message_length = max_message_length

    async def generate(self, contents: List[dict], tools: Optional[List[dict]] = None) -> dict:
        body = {"contents": contents, "generationConfig": GENERATION_CONFIG}
        if tools:
            body["tools"] = tools
        data = await self.client.request_json(
            "POST",
            f"models/{self.client.model}:generateContent",
            "generate content",
            json=body,
        )
        check_blocked(data)
        return data

    async def send_message(self, message: str, history: Optional[List[ChatTurn]] = None) -> ChatResult:
        validate_message(message, self.max_message_length)
        self.client.require_api_key()

        contents = build_contents(history, message)
        logger.info(
            "Chat request: message_length=%d history_length=%d model=%s",
            len(message), len(contents) - 1, self.client.model,
        )

        data = await self.generate(contents)
        usage = extract_usage(data)
        logger.debug("Chat usage: %s", usage.model_dump())

        return ChatResult(
            text=extract_text(data),
            usage=usage,
            tokenCount=usage.total_tokens,
        )

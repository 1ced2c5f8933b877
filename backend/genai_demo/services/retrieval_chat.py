"""Retrieval-augmented chat over File Search stores."""

import logging
from typing import List, Optional

from genai_demo.core.errors import FileSearchError, ValidationError
from genai_demo.schemas.chat import AskResult, ChatTurn, Citation
from genai_demo.services.chat_service import (
    ChatService,
    build_contents,
    extract_text,
    extract_usage,
    validate_message,
)
from genai_demo.services.store_registry import StoreRegistry

logger = logging.getLogger(__name__)

UNKNOWN_SOURCE = "Unknown source"
DEFAULT_CITATION_TITLE = "Document"


def extract_citations(grounding_metadata: Optional[dict]) -> List[Citation]:
    """
    Build citations from grounding metadata.

    ``supportAttributions`` entries with a ``source`` are used when present;
    otherwise ``groundingChunks[].retrievedContext``. Indices are 1-based in
    input order. Missing metadata yields an empty list.
    """
    if not grounding_metadata:
        return []

    citations: List[Citation] = []
    for attribution in grounding_metadata.get("supportAttributions") or []:
        source = attribution.get("source")
        if not source:
            continue
        citations.append(Citation(
            index=len(citations) + 1,
            source=source.get("uri") or source.get("fileUri") or UNKNOWN_SOURCE,
            title=source.get("title") or DEFAULT_CITATION_TITLE,
            excerpt=(attribution.get("chunk") or {}).get("chunkText"),
        ))
    if citations:
        return citations

    for chunk in grounding_metadata.get("groundingChunks") or []:
        context = chunk.get("retrievedContext")
        if not context:
            continue
        citations.append(Citation(
            index=len(citations) + 1,
            source=context.get("uri") or context.get("fileSearchStore") or UNKNOWN_SOURCE,
            title=context.get("title") or DEFAULT_CITATION_TITLE,
            excerpt=context.get("text"),
        ))
    return citations


class RetrievalChatClient:
    """Asks questions grounded in one or more File Search stores."""

    def __init__(
        self,
        chat: ChatService,
        registry: StoreRegistry,
        verify_stores: bool = True,
    ):
        self.chat = chat
        self.registry = registry
        self.verify_stores = verify_stores

    async def ask(
        self,
        message: str,
        history: Optional[List[ChatTurn]],
        store_names: List[str],
    ) -> AskResult:
        validate_message(message, self.chat.max_message_length)
        if not store_names:
            raise ValidationError("At least one File Search store name is required")
        self.chat.client.require_api_key()

        logger.info(
            "File Search chat request: message_length=%d history_length=%d stores=%s",
            len(message), len(history or []), store_names,
        )

        if self.verify_stores:
            await self._verify(store_names)

        tools = [{"fileSearch": {"fileSearchStoreNames": list(store_names)}}]
        data = await self.chat.generate(build_contents(history, message), tools=tools)

        candidates = data.get("candidates") or []
        grounding = candidates[0].get("groundingMetadata") if candidates else None
        citations = extract_citations(grounding)

        result = AskResult(
            text=extract_text(data),
            citations=citations,
            usage=extract_usage(data),
            groundingMetadata=grounding,
        )
        logger.info(
            "File Search chat response: length=%d citations=%d total_tokens=%d",
            len(result.text), len(citations), result.usage.total_tokens,
        )
        return result

    async def _verify(self, store_names: List[str]) -> None:
        """Log what each store holds; failures are diagnostic only."""
        for name in store_names:
            try:
                store = await self.registry.get_store_details(name)
            except FileSearchError as e:
                logger.warning("Store verification failed for %s: %s", name, e)
                continue
            logger.info(
                "Store verified: %s (%s) with %d files",
                name, store.displayName, len(store.files),
            )

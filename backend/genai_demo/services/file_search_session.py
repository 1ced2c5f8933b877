"""File Search session: the explicitly constructed object that owns the
provider client, store registry, uploader, poller and chat clients.

Create one at application startup and ``aclose()`` it at shutdown; closing
cancels every outstanding poll before the HTTP client goes away.
"""

import logging
from typing import Dict, List, Optional

import httpx

from genai_demo.schemas.chat import AskResult, ChatResult, ChatTurn
from genai_demo.schemas.file_search import Operation, Store, StoreFile, TrackedOperation
from genai_demo.services.analytics import AnalyticsTracker
from genai_demo.services.chat_service import ChatService
from genai_demo.services.gemini_client import GeminiClient
from genai_demo.services.operation_poller import EventCallback, OperationPoller
from genai_demo.services.operations import check_operation_status
from genai_demo.services.retrieval_chat import RetrievalChatClient
from genai_demo.services.store_registry import StoreRegistry
from genai_demo.services.upload_orchestrator import MAX_UPLOAD_BYTES, UploadOrchestrator

logger = logging.getLogger(__name__)


class FileSearchSession:
    def __init__(
        self,
        client: GeminiClient,
        poll_interval: float = 5.0,
        max_transient_errors: Optional[int] = None,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        max_message_length: int = 1000,
        verify_stores: bool = True,
        on_event: Optional[EventCallback] = None,
        analytics: Optional[AnalyticsTracker] = None,
    ):
        self.client = client
        self.analytics = analytics
        self.registry = StoreRegistry(client)
        self.uploader = UploadOrchestrator(client, max_upload_bytes=max_upload_bytes)
        self.chat = ChatService(client, max_message_length=max_message_length)
        self.retrieval = RetrievalChatClient(self.chat, self.registry, verify_stores=verify_stores)
        self.poller = OperationPoller(
            self.check_operation,
            interval=poll_interval,
            max_transient_errors=max_transient_errors,
            on_event=on_event,
            on_complete=self._on_upload_complete,
        )
        # Cached, possibly stale view of each store's files.
        self.files: Dict[str, List[StoreFile]] = {}

    @classmethod
    def from_settings(
        cls,
        settings,
        on_event: Optional[EventCallback] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        analytics: Optional[AnalyticsTracker] = None,
    ) -> "FileSearchSession":
        return cls(
            GeminiClient.from_settings(settings, http_client=http_client),
            poll_interval=settings.poll_interval_seconds,
            max_transient_errors=settings.poll_max_transient_errors,
            max_upload_bytes=settings.max_upload_bytes,
            max_message_length=settings.max_message_length,
            verify_stores=settings.verify_stores_before_chat,
            on_event=on_event,
            analytics=analytics,
        )

    # ── Stores ──────────────────────────────────────────────────────────

    async def create_store(self, display_name: str) -> Store:
        store = await self.registry.create_store(display_name)
        self.files.setdefault(store.name, [])
        return store

    async def list_stores(self) -> List[Store]:
        return await self.registry.list_stores()

    async def get_store(self, name: str) -> Store:
        """Fetch store details and refresh the cached file list from them."""
        store = await self.registry.get_store_details(name)
        self.files[name] = list(store.files)
        return store

    def list_files(self, store_name: str) -> List[StoreFile]:
        return list(self.files.get(store_name, []))

    async def delete_store(self, name: str) -> None:
        await self.registry.delete_store(name)
        self.files.pop(name, None)
        cancelled = self.poller.cancel_store(name)
        if cancelled:
            logger.info("Stopped %d pollers for deleted store %s", cancelled, name)

    # ── Uploads ─────────────────────────────────────────────────────────

    async def upload_file(
        self,
        data: bytes,
        store_name: str,
        display_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> TrackedOperation:
        """Upload and start polling; returns the tracked operation."""
        operation = await self.uploader.upload_file(data, store_name, display_name, mime_type)
        return await self.poller.track(operation, store_name, display_name)

    async def check_operation(self, handle: str) -> Operation:
        return await check_operation_status(self.client, handle)

    def _on_upload_complete(self, tracked: TrackedOperation) -> None:
        file = tracked.operation.file or StoreFile(displayName=tracked.displayName)
        if self.analytics is not None:
            self.analytics.track("File Upload Completed", {
                "store_name": tracked.storeName,
                "file_name": file.displayName or file.name,
            })
        files = self.files.setdefault(tracked.storeName, [])
        for existing in files:
            if file.name and existing.name == file.name:
                return
        files.append(file)
        logger.info("File %s added to store %s", file.displayName or file.name, tracked.storeName)

    # ── Chat ────────────────────────────────────────────────────────────

    async def send_message(self, message: str, history: Optional[List[ChatTurn]] = None) -> ChatResult:
        return await self.chat.send_message(message, history)

    async def ask(
        self,
        message: str,
        history: Optional[List[ChatTurn]],
        store_names: List[str],
    ) -> AskResult:
        return await self.retrieval.ask(message, history, store_names)

    async def aclose(self) -> None:
        await self.poller.shutdown()
        await self.client.aclose()

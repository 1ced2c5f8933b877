"""File Search store registry: create, list, inspect and delete stores."""

import logging
from typing import List

from genai_demo.core.errors import NotFoundError, RemoteServiceError
from genai_demo.schemas.file_search import Store
from genai_demo.services.gemini_client import GeminiClient

logger = logging.getLogger(__name__)

DEFAULT_STORE_DISPLAY_NAME = "My File Search Store"

# Message fragments the provider uses for a missing store on non-404 statuses.
MISSING_STORE_MARKERS = ("not found", "does not exist", "not exist")


class StoreRegistry:
    """Service for File Search store CRUD against the provider."""

    def __init__(self, client: GeminiClient):
        self.client = client

    async def create_store(self, display_name: str = DEFAULT_STORE_DISPLAY_NAME) -> Store:
        display_name = (display_name or "").strip() or DEFAULT_STORE_DISPLAY_NAME
        data = await self.client.request_json(
            "POST",
            "fileSearchStores",
            "create store",
            json={"displayName": display_name},
        )
        store = Store.from_payload(data, default_display_name=display_name)
        logger.info("Created store %s (%s)", store.name, store.displayName)
        return store

    async def list_stores(self) -> List[Store]:
        """List every store, following pagination."""
        stores: List[Store] = []
        page_token = None
        while True:
            params = {"pageToken": page_token} if page_token else None
            data = await self.client.request_json(
                "GET", "fileSearchStores", "list stores", params=params
            )
            for payload in data.get("fileSearchStores") or []:
                stores.append(Store(name=payload.get("name", ""), displayName=payload.get("displayName")))
            page_token = data.get("nextPageToken")
            if not page_token:
                break
        return stores

    async def get_store_details(self, name: str) -> Store:
        """
        Get a store including its files.

        Raises:
            NotFoundError: If the name does not resolve. The provider reports
                this as 404 or as a generic 4xx/5xx whose message says so.
        """
        try:
            data = await self.client.request_json("GET", name, "get store details")
        except NotFoundError:
            raise
        except RemoteServiceError as e:
            if any(marker in e.message.lower() for marker in MISSING_STORE_MARKERS):
                raise NotFoundError(e.message, status_code=e.status_code) from e
            raise
        return Store.from_payload(data)

    async def delete_store(self, name: str, force: bool = True) -> None:
        """Delete a store; ``force`` cascades to its documents."""
        params = {"force": "true"} if force else None
        await self.client.request_json("DELETE", name, "delete store", params=params)
        logger.info("Deleted store %s", name)

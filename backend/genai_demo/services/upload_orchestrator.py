"""Resumable upload of a document into a File Search store.

The provider's ``uploadToFileSearchStore`` endpoint only accepts the
two-phase resumable protocol over plain HTTP:

1. POST a ``start`` command with the declared length and MIME type; the
   response carries the transfer URL in a header.
2. PUT the raw bytes to that URL with ``upload, finalize``; the response body
   is the long-running operation descriptor.

Polling the operation is the caller's job (see ``operation_poller``).
"""

import logging
from typing import Mapping, Optional

import httpx

from genai_demo.core.errors import RemoteServiceError, ValidationError
from genai_demo.schemas.file_search import Operation
from genai_demo.services.gemini_client import GeminiClient, error_message, parse_json

logger = logging.getLogger(__name__)

MIB = 1024 * 1024
MAX_UPLOAD_BYTES = 100 * MIB
DEFAULT_MIME_TYPE = "application/octet-stream"
DEFAULT_FILE_DISPLAY_NAME = "Uploaded File"

# Header lookup order for the transfer URL; the first rule that matches wins.
#   1. the documented ``x-goog-upload-url`` header
#   2. any header whose name contains ``upload-url`` (proxies rename it)
#   3. a plain ``location`` header
UPLOAD_URL_HEADER_POLICY = (
    ("exact", "x-goog-upload-url"),
    ("contains", "upload-url"),
    ("exact", "location"),
)


def find_upload_url(headers: Mapping[str, str]) -> Optional[str]:
    """Locate the resumable-upload URL in response headers (case-insensitive)."""
    lowered = [(key.lower(), value) for key, value in headers.items()]
    for rule, needle in UPLOAD_URL_HEADER_POLICY:
        for key, value in lowered:
            if not value:
                continue
            if rule == "exact" and key == needle:
                return value
            if rule == "contains" and needle in key:
                return value
    return None


class UploadOrchestrator:
    """Drives the start/transfer/finalize dance and returns the operation."""

    def __init__(self, client: GeminiClient, max_upload_bytes: int = MAX_UPLOAD_BYTES):
        self.client = client
        self.max_upload_bytes = max_upload_bytes

    def check_size(self, size: int) -> None:
        if size > self.max_upload_bytes:
            if self.max_upload_bytes % MIB == 0:
                limit = f"{self.max_upload_bytes // MIB}MB"
            else:
                limit = f"{self.max_upload_bytes} bytes"
            raise ValidationError(f"File size exceeds {limit} limit")

    def validate(self, data: bytes, store_name: str) -> None:
        if not store_name:
            raise ValidationError("Store name is required")
        self.check_size(len(data))

    async def upload_file(
        self,
        data: bytes,
        store_name: str,
        display_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> Operation:
        """
        Upload ``data`` to ``store_name``.

        Returns:
            The initial operation state (usually ``done=False``).

        Raises:
            ValidationError: Oversized input or missing store; no network call made.
            ConfigurationError: No API key configured.
            RemoteServiceError: Any failed or malformed step of the protocol.
        """
        self.validate(data, store_name)
        self.client.require_api_key()

        display_name = display_name or DEFAULT_FILE_DISPLAY_NAME
        mime_type = mime_type or DEFAULT_MIME_TYPE

        logger.info(
            "Uploading %s to %s (size=%d, mime=%s)",
            display_name, store_name, len(data), mime_type,
        )

        upload_url = await self._start(store_name, display_name, len(data), mime_type)
        operation = await self._transfer(upload_url, data)

        logger.info(
            "Upload accepted: operation=%s done=%s has_file=%s",
            operation.name, operation.done, operation.file is not None,
        )
        return operation

    async def _start(self, store_name: str, display_name: str, size: int, mime_type: str) -> str:
        endpoint = self.client.upload_url(f"{store_name}:uploadToFileSearchStore")
        try:
            response = await self.client.request(
                "POST",
                endpoint,
                json={"displayName": display_name},
                headers={
                    "X-Goog-Upload-Protocol": "resumable",
                    "X-Goog-Upload-Command": "start",
                    "X-Goog-Upload-Header-Content-Length": str(size),
                    "X-Goog-Upload-Header-Content-Type": mime_type,
                },
            )
        except httpx.HTTPError as e:
            raise RemoteServiceError(f"Failed to initiate upload: {e}") from e

        headers = dict(response.headers)
        if not response.is_success:
            logger.error(
                "Upload initiation failed: status=%d headers=%s", response.status_code, headers
            )
            raise RemoteServiceError(
                f"Failed to initiate upload: {error_message(response)}",
                status_code=response.status_code,
                details={"headers": headers},
            )

        upload_url = find_upload_url(response.headers)
        if not upload_url:
            logger.error("No upload URL in initiation response: headers=%s body=%s",
                         headers, response.text[:500])
            raise RemoteServiceError(
                "Failed to get upload URL from server",
                status_code=response.status_code,
                details={"headers": headers},
            )
        return upload_url

    async def _transfer(self, upload_url: str, data: bytes) -> Operation:
        try:
            response = await self.client.request(
                "PUT",
                upload_url,
                content=data,
                headers={
                    "Content-Length": str(len(data)),
                    "X-Goog-Upload-Offset": "0",
                    "X-Goog-Upload-Command": "upload, finalize",
                },
                authenticated=False,
            )
        except httpx.HTTPError as e:
            raise RemoteServiceError(f"Failed to upload file: {e}") from e

        if not response.is_success:
            logger.error("File upload failed: status=%d body=%s",
                         response.status_code, response.text[:500])
            raise RemoteServiceError(
                f"Failed to upload file: {error_message(response)}",
                status_code=response.status_code,
            )

        payload = parse_json(response, "upload file")
        if not payload.get("name"):
            raise RemoteServiceError(
                "Unexpected response format from upload endpoint",
                status_code=response.status_code,
                details={"body": response.text[:500]},
            )
        return Operation.from_payload(payload)

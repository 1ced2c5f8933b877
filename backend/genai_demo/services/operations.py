"""Operation handles and single status checks.

Handles reach us in several shapes: the full resource path returned by the
upload (``fileSearchStores/<store>/upload/operations/<id>``), a short
``operations/<id>``, a bare ``<id>``, a full URL, or any of those
URL-encoded by the client. ``normalize_operation_name`` turns each into one
canonical form: the resource path relative to the API root.
"""

import logging
from urllib.parse import unquote, urlparse

import httpx

from genai_demo.core.errors import RemoteServiceError, TransientPollError, ValidationError
from genai_demo.schemas.file_search import Operation
from genai_demo.services.gemini_client import GeminiClient, error_message, parse_json

logger = logging.getLogger(__name__)

RESOURCE_ROOTS = ("fileSearchStores/", "operations/")


def normalize_operation_name(handle: str) -> str:
    name = unquote((handle or "").strip())
    if not name:
        raise ValidationError("Operation ID is required")

    if "://" in name:
        name = urlparse(name).path
    name = name.lstrip("/")

    # Drop an API version prefix such as "v1beta/" or "upload/v1beta/".
    positions = [name.find(root) for root in RESOURCE_ROOTS if root in name]
    if positions:
        name = name[min(positions):]

    if name.startswith(RESOURCE_ROOTS):
        return name
    return f"operations/{name}"


async def check_operation_status(client: GeminiClient, handle: str) -> Operation:
    """
    Fetch the current state of an operation once.

    Returns:
        The operation; a 404 yields ``done=False, notFound=True`` because new
        operations are not always queryable straight away.

    Raises:
        TransientPollError: 5xx (or timeout) from the status endpoint.
        RemoteServiceError: Any other failure, including a malformed body.
    """
    name = normalize_operation_name(handle)
    try:
        response = await client.request("GET", client.url(name))
    except httpx.TimeoutException as e:
        raise TransientPollError(f"Timed out checking operation status: {e}") from e
    except httpx.HTTPError as e:
        raise RemoteServiceError(f"Failed to check operation status: {e}") from e

    if response.status_code == 404:
        logger.warning("Operation not found (might not be ready yet): %s", name)
        return Operation(name=name, done=False, notFound=True)

    if response.status_code >= 500:
        raise TransientPollError(
            f"Failed to check operation status: {error_message(response)}",
            status_code=response.status_code,
        )

    if not response.is_success:
        logger.error("Operation status check failed: %s status=%d", name, response.status_code)
        raise RemoteServiceError(
            f"Failed to check operation status: {error_message(response)}",
            status_code=response.status_code,
        )

    payload = parse_json(response, "check operation status")
    if not payload:
        raise RemoteServiceError(
            "Failed to check operation status: empty response body",
            status_code=response.status_code,
        )
    return Operation.from_payload(payload, fallback_name=name)

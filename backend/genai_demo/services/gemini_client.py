"""HTTP client for the Generative Language API.

Owns one ``httpx.AsyncClient`` for its lifetime; create it at startup and
``aclose()`` it at shutdown. All provider errors are raised as
``RemoteServiceError`` (or ``NotFoundError`` for 404s) carrying the status
code and the provider's message.
"""

import logging
from typing import Optional

import httpx

from genai_demo.core.errors import ConfigurationError, NotFoundError, RemoteServiceError

logger = logging.getLogger(__name__)


def error_message(response: httpx.Response) -> str:
    """Extract the provider's error message from a failed response."""
    fallback = f"HTTP {response.status_code}"
    try:
        data = response.json()
    except ValueError:
        return response.text.strip() or fallback
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return error.get("message") or fallback
        if isinstance(error, str):
            return error
    return fallback


def raise_for_response(response: httpx.Response, action: str) -> None:
    """Raise a RemoteServiceError if the response is not 2xx."""
    if response.is_success:
        return
    message = error_message(response)
    if response.status_code == 404:
        raise NotFoundError(f"Failed to {action}: {message}", status_code=404)
    raise RemoteServiceError(f"Failed to {action}: {message}", status_code=response.status_code)


def parse_json(response: httpx.Response, action: str) -> dict:
    """Parse a JSON object body, raising RemoteServiceError on anything else."""
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError as e:
        raise RemoteServiceError(
            f"Unexpected response format while trying to {action}",
            status_code=response.status_code,
            details={"body": response.text[:500]},
        ) from e
    if not isinstance(data, dict):
        raise RemoteServiceError(
            f"Unexpected response format while trying to {action}",
            status_code=response.status_code,
        )
    return data


class GeminiClient:
    """Thin transport over the provider REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        upload_base_url: str = "https://generativelanguage.googleapis.com/upload/v1beta",
        model: str = "gemini-2.5-flash",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.upload_base_url = upload_base_url.rstrip("/")
        self.model = model
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_http = http_client is None

    @classmethod
    def from_settings(cls, settings, http_client: Optional[httpx.AsyncClient] = None) -> "GeminiClient":
        return cls(
            api_key=settings.gemini_api_key,
            base_url=settings.gemini_base_url,
            upload_base_url=settings.gemini_upload_base_url,
            model=settings.gemini_model,
            timeout=settings.request_timeout_seconds,
            http_client=http_client,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def require_api_key(self) -> None:
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY is not configured")

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def upload_url(self, path: str) -> str:
        return f"{self.upload_base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Optional[dict] = None,
        content: Optional[bytes] = None,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        """Send one request. The API key travels as a header, never in the URL."""
        request_headers = {}
        if authenticated:
            self.require_api_key()
            request_headers["x-goog-api-key"] = self.api_key
        if headers:
            request_headers.update(headers)

        return await self._http.request(
            method,
            url,
            json=json,
            content=content,
            params=params,
            headers=request_headers,
        )

    async def request_json(
        self,
        method: str,
        path: str,
        action: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict:
        """Call ``base_url/path`` and return the decoded JSON object."""
        try:
            response = await self.request(method, self.url(path), json=json, params=params)
        except httpx.HTTPError as e:
            logger.error("Provider request failed: %s %s: %s", method, path, e)
            raise RemoteServiceError(f"Failed to {action}: {e}") from e
        raise_for_response(response, action)
        return parse_json(response, action)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

"""Fire-and-forget event tracking against the analytics HTTP API.

Each tracker carries its own device and session identifiers; create one per
application (or per UI session) instead of sharing module-level ids.
"""

import asyncio
import logging
import time
import uuid
from typing import Optional, Set

import httpx

logger = logging.getLogger(__name__)


class AnalyticsTracker:
    """Best-effort, non-blocking ``track(event, properties)``."""

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api2.amplitude.com/2/httpapi",
        device_id: Optional[str] = None,
        session_id: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.device_id = device_id or str(uuid.uuid4())
        self.session_id = session_id or int(time.time() * 1000)
        self._http = http_client or httpx.AsyncClient(timeout=10.0)
        self._owns_http = http_client is None
        self._pending: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def track(self, event_type: str, properties: Optional[dict] = None, user_id: Optional[str] = None) -> None:
        """Schedule an event send; never raises and never blocks the caller."""
        if not self.enabled:
            logger.debug("Analytics disabled, dropping event %s", event_type)
            return
        event = {
            "event_type": event_type,
            "device_id": self.device_id,
            "session_id": self.session_id,
            "time": int(time.time() * 1000),
            "event_properties": properties or {},
        }
        if user_id:
            event["user_id"] = user_id
        try:
            task = asyncio.get_running_loop().create_task(self._send(event))
        except RuntimeError:
            logger.warning("No running event loop, dropping event %s", event_type)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, event: dict) -> None:
        try:
            response = await self._http.post(
                self.api_url,
                json={"api_key": self.api_key, "events": [event]},
            )
            if not response.is_success:
                logger.warning(
                    "Analytics rejected %s: HTTP %d", event["event_type"], response.status_code
                )
        except Exception as e:
            logger.warning("Failed to send analytics event %s: %s", event["event_type"], e)

    async def flush(self) -> None:
        """Wait for every scheduled send to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.flush()
        if self._owns_http:
            await self._http.aclose()

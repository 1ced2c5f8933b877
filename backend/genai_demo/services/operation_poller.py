"""Background polling of upload operations until they reach a terminal state.

One asyncio task per tracked operation checks its status every
``interval`` seconds. The status endpoint returns 5xx for operations that
are still legitimately in progress, so those are logged and retried rather
than surfaced; 404 means "not queryable yet" and is retried too. Anything
else stops polling for that operation with a local error, unless its
message carries one of ``TRANSIENT_ERROR_MARKERS``.

``statuses`` maps operation handle to the latest ``TrackedOperation`` and
is only mutated from the event loop, so it needs no locking.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, Optional

from genai_demo.core.errors import FileSearchError, TransientPollError
from genai_demo.core.events import EventType, OperationEvent
from genai_demo.schemas.file_search import Operation, TrackedOperation
from genai_demo.services.operations import normalize_operation_name

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
POLL_FAILED_MESSAGE = "Failed to check upload status"
POLL_GAVE_UP_MESSAGE = "Gave up waiting for upload to finish indexing"

# Message fragments that mark a non-5xx status error as retryable.
TRANSIENT_ERROR_MARKERS = ("transient", "500")


def is_transient(error: FileSearchError) -> bool:
    if isinstance(error, TransientPollError):
        return True
    message = error.message.lower()
    return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)


StatusCheck = Callable[[str], Awaitable[Operation]]
EventCallback = Callable[[OperationEvent], Awaitable[None]]
CompletionCallback = Callable[[TrackedOperation], object]


class OperationPoller:
    """Tracks operations and polls each until done, failed or cancelled."""

    def __init__(
        self,
        check_status: StatusCheck,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_transient_errors: Optional[int] = None,
        on_event: Optional[EventCallback] = None,
        on_complete: Optional[CompletionCallback] = None,
    ):
        self._check_status = check_status
        self.interval = interval
        self.max_transient_errors = max_transient_errors
        self._on_event = on_event
        self._on_complete = on_complete
        self.statuses: Dict[str, TrackedOperation] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._closed = False

    async def __aenter__(self) -> "OperationPoller":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    @property
    def active(self) -> list:
        """Handles that still own a polling task."""
        return list(self._tasks)

    def get(self, handle: str) -> Optional[TrackedOperation]:
        return self.statuses.get(handle)

    async def track(
        self,
        operation: Operation,
        store_name: str,
        display_name: Optional[str] = None,
    ) -> TrackedOperation:
        """Start following ``operation``; settles immediately if already done."""
        if self._closed:
            raise RuntimeError("Poller has been shut down")

        key = operation.name
        existing = self.statuses.get(key)
        if existing is not None and (key in self._tasks or existing.terminal):
            return existing

        tracked = TrackedOperation(
            operation=operation,
            storeName=store_name,
            displayName=display_name,
        )
        self.statuses[key] = tracked
        await self._emit(EventType.OPERATION_STARTED, tracked, {"displayName": display_name})

        if operation.done:
            await self._settle(key, tracked)
        else:
            self._tasks[key] = asyncio.create_task(self._run(key))
        return tracked

    async def _run(self, key: str) -> None:
        tracked = self.statuses[key]
        try:
            while not tracked.terminal:
                await asyncio.sleep(self.interval)
                await self.poll_once(key)
        except asyncio.CancelledError:
            logger.debug("Polling cancelled for %s", key)
            raise
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]

    async def poll_once(self, key: str) -> TrackedOperation:
        """Run a single status check for ``key`` and apply the result."""
        tracked = self.statuses[key]
        if tracked.terminal:
            return tracked

        try:
            operation = await self._check_status(key)
        except FileSearchError as e:
            if not is_transient(e):
                logger.error("Error polling operation %s: %s", key, e)
                await self._fail(key, tracked, POLL_FAILED_MESSAGE)
                return tracked
            tracked.transientErrors += 1
            logger.warning(
                "Transient error polling %s (attempt %d, will retry): %s",
                key, tracked.transientErrors, e,
            )
            if self.max_transient_errors is not None and tracked.transientErrors >= self.max_transient_errors:
                await self._fail(key, tracked, POLL_GAVE_UP_MESSAGE)
            return tracked

        tracked.transientErrors = 0
        if operation.notFound:
            return tracked

        if tracked.operation.done and not operation.done:
            logger.warning("Ignoring done=false for already finished operation %s", key)
            return tracked

        tracked.operation = operation.model_copy(update={"name": key})
        if not operation.done:
            await self._emit(EventType.OPERATION_PROGRESS, tracked, {"done": False})
            return tracked

        await self._settle(key, tracked)
        return tracked

    async def _settle(self, key: str, tracked: TrackedOperation) -> None:
        if tracked.completedNotified:
            return
        tracked.completedNotified = True
        operation = tracked.operation

        if operation.failed:
            logger.warning("Operation %s finished with error: %s", key, operation.error.message)
            await self._emit(EventType.OPERATION_FAILED, tracked, {"error": operation.error.message})
            return

        if operation.file is not None and not operation.file.displayName:
            operation.file.displayName = tracked.displayName

        logger.info("Operation %s completed for store %s", key, tracked.storeName)
        await self._emit(
            EventType.OPERATION_COMPLETED,
            tracked,
            {"file": operation.file.model_dump() if operation.file else None},
        )
        if self._on_complete is not None:
            result = self._on_complete(tracked)
            if inspect.isawaitable(result):
                await result

    async def _fail(self, key: str, tracked: TrackedOperation, message: str) -> None:
        tracked.localError = message
        await self._emit(EventType.OPERATION_FAILED, tracked, {"error": message})

    async def _emit(self, event_type: EventType, tracked: TrackedOperation, data: dict) -> None:
        if self._on_event is None:
            return
        event = OperationEvent.for_tracked(event_type, tracked, data)
        try:
            await self._on_event(event)
        except Exception as e:
            logger.warning("Failed to deliver %s event: %s", event_type.value, e)

    def resolve(self, handle: str) -> Optional[str]:
        """Map a handle in any accepted form to the key it is tracked under."""
        if handle in self.statuses:
            return handle
        name = normalize_operation_name(handle)
        for key in self.statuses:
            if key == name or key.endswith("/" + name):
                return key
        return None

    def cancel(self, handle: str) -> bool:
        """Stop polling ``handle``. Returns False if it was not being polled."""
        key = self.resolve(handle)
        task = self._tasks.pop(key, None) if key else None
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_store(self, store_name: str) -> int:
        """Stop polling every operation targeting ``store_name``."""
        handles = [h for h in self._tasks if self.statuses[h].storeName == store_name]
        for handle in handles:
            self.cancel(handle)
        return len(handles)

    async def shutdown(self) -> None:
        """Cancel every polling task and wait for them to finish."""
        self._closed = True
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("Operation poller shut down (%d tasks cancelled)", len(tasks))

"""
Tests for background operation polling.

Covers the retry semantics of the status endpoint (5xx and 404 keep
polling, other errors stop it), single completion notification, and that
shutting the poller down leaves no task issuing requests.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from conftest import wait_idle
from genai_demo.core.errors import RemoteServiceError, TransientPollError
from genai_demo.core.events import EventType
from genai_demo.schemas.file_search import Operation, OperationError, StoreFile
from genai_demo.services.analytics import AnalyticsTracker
from genai_demo.services.file_search_session import FileSearchSession
from genai_demo.services.operation_poller import (
    POLL_FAILED_MESSAGE,
    POLL_GAVE_UP_MESSAGE,
    OperationPoller,
)

OP = "fileSearchStores/S1/upload/operations/op-1"


def pending(name=OP):
    return Operation(name=name, done=False)


def finished(name=OP, display_name="a.txt"):
    return Operation(name=name, done=True, file=StoreFile(name="documents/d1", displayName=display_name))


class TestPollOnce:
    """Single poll steps, driven by hand with a long interval."""

    @pytest.mark.asyncio
    async def test_server_error_keeps_polling(self):
        check = AsyncMock(side_effect=TransientPollError("Internal error", status_code=500))
        async with OperationPoller(check, interval=60) as poller:
            await poller.track(pending(), "fileSearchStores/S1")

            tracked = await poller.poll_once(OP)

            assert tracked.localError is None
            assert tracked.transientErrors == 1
            assert not tracked.terminal
            assert OP in poller.active

    @pytest.mark.asyncio
    async def test_not_found_keeps_polling(self):
        check = AsyncMock(return_value=Operation(name=OP, done=False, notFound=True))
        async with OperationPoller(check, interval=60) as poller:
            await poller.track(pending(), "fileSearchStores/S1")

            tracked = await poller.poll_once(OP)

            assert tracked.localError is None
            assert not tracked.terminal

    @pytest.mark.asyncio
    async def test_client_error_stops_with_local_error(self):
        check = AsyncMock(side_effect=RemoteServiceError("Bad request", status_code=400))
        async with OperationPoller(check, interval=60) as poller:
            await poller.track(pending(), "fileSearchStores/S1")

            tracked = await poller.poll_once(OP)

            assert tracked.localError == POLL_FAILED_MESSAGE
            assert tracked.terminal

            await poller.poll_once(OP)
            assert check.await_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", [
        "Transient backend error, retry later",
        "Upstream returned 500 while reading operation",
    ])
    async def test_client_error_with_transient_marker_keeps_polling(self, message):
        check = AsyncMock(side_effect=RemoteServiceError(message, status_code=400))
        async with OperationPoller(check, interval=60) as poller:
            await poller.track(pending(), "fileSearchStores/S1")

            tracked = await poller.poll_once(OP)

            assert tracked.localError is None
            assert tracked.transientErrors == 1
            assert not tracked.terminal
            assert OP in poller.active

    @pytest.mark.asyncio
    async def test_done_is_never_undone(self):
        check = AsyncMock(side_effect=[finished(), pending()])
        async with OperationPoller(check, interval=60) as poller:
            await poller.track(pending(), "fileSearchStores/S1")

            await poller.poll_once(OP)
            tracked = await poller.poll_once(OP)

            assert tracked.operation.done is True
            assert check.await_count == 1

    @pytest.mark.asyncio
    async def test_transient_cap_gives_up(self):
        check = AsyncMock(side_effect=TransientPollError("Internal error", status_code=503))
        async with OperationPoller(check, interval=60, max_transient_errors=2) as poller:
            await poller.track(pending(), "fileSearchStores/S1")

            await poller.poll_once(OP)
            tracked = await poller.poll_once(OP)

            assert tracked.localError == POLL_GAVE_UP_MESSAGE

    @pytest.mark.asyncio
    async def test_success_resets_transient_count(self):
        check = AsyncMock(side_effect=[
            TransientPollError("Internal error", status_code=500),
            pending(),
        ])
        async with OperationPoller(check, interval=60, max_transient_errors=2) as poller:
            await poller.track(pending(), "fileSearchStores/S1")

            await poller.poll_once(OP)
            tracked = await poller.poll_once(OP)

            assert tracked.transientErrors == 0
            assert tracked.localError is None


class TestNotifications:
    @pytest.mark.asyncio
    async def test_completion_notified_once(self):
        on_complete = AsyncMock()
        on_event = AsyncMock()
        check = AsyncMock(return_value=finished())
        async with OperationPoller(check, interval=60, on_event=on_event, on_complete=on_complete) as poller:
            await poller.track(pending(), "fileSearchStores/S1", "a.txt")

            await poller.poll_once(OP)
            await poller.poll_once(OP)

        assert on_complete.await_count == 1
        types = [call.args[0].type for call in on_event.await_args_list]
        assert types == [EventType.OPERATION_STARTED, EventType.OPERATION_COMPLETED]

    @pytest.mark.asyncio
    async def test_already_done_operation_settles_immediately(self):
        on_complete = AsyncMock()
        check = AsyncMock()
        async with OperationPoller(check, interval=0, on_complete=on_complete) as poller:
            tracked = await poller.track(finished(), "fileSearchStores/S1")

            assert tracked.completedNotified
            assert poller.active == []

        check.assert_not_awaited()
        on_complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_remote_failure_emits_failed_without_completion(self):
        on_complete = AsyncMock()
        on_event = AsyncMock()
        failed = Operation(name=OP, done=True, error=OperationError(code=3, message="Unsupported file"))
        async with OperationPoller(
            AsyncMock(return_value=failed), interval=0, on_event=on_event, on_complete=on_complete
        ) as poller:
            await poller.track(pending(), "fileSearchStores/S1")
            await wait_idle(poller)

        on_complete.assert_not_awaited()
        last = on_event.await_args_list[-1].args[0]
        assert last.type == EventType.OPERATION_FAILED
        assert last.data["error"] == "Unsupported file"

    @pytest.mark.asyncio
    async def test_event_callback_errors_are_swallowed(self):
        on_event = AsyncMock(side_effect=RuntimeError("socket closed"))
        async with OperationPoller(AsyncMock(return_value=finished()), interval=0, on_event=on_event) as poller:
            await poller.track(pending(), "fileSearchStores/S1")
            await wait_idle(poller)

            assert poller.get(OP).operation.done


class TestTeardown:
    @pytest.mark.asyncio
    async def test_shutdown_stops_all_polling(self):
        check = AsyncMock(side_effect=lambda key: pending(key))
        poller = OperationPoller(check, interval=0)
        await poller.track(pending("operations/a"), "fileSearchStores/S1")
        await poller.track(pending("operations/b"), "fileSearchStores/S2")

        for _ in range(5):
            await asyncio.sleep(0)
        await poller.shutdown()
        calls_at_shutdown = check.await_count

        for _ in range(10):
            await asyncio.sleep(0)

        assert poller.active == []
        assert check.await_count == calls_at_shutdown

    @pytest.mark.asyncio
    async def test_track_after_shutdown_rejected(self):
        poller = OperationPoller(AsyncMock(), interval=0)
        await poller.shutdown()

        with pytest.raises(RuntimeError):
            await poller.track(pending(), "fileSearchStores/S1")

    @pytest.mark.asyncio
    async def test_cancel_store_only_stops_that_store(self):
        check = AsyncMock(side_effect=lambda key: pending(key))
        async with OperationPoller(check, interval=60) as poller:
            await poller.track(pending("operations/a"), "fileSearchStores/S1")
            await poller.track(pending("operations/b"), "fileSearchStores/S2")

            assert poller.cancel_store("fileSearchStores/S1") == 1
            assert poller.active == ["operations/b"]
            assert poller.cancel("operations/missing") is False


class TestUploadScenario:
    @pytest.mark.asyncio
    async def test_upload_indexes_after_three_pending_checks(self, client, provider):
        """A 10 byte upload shows up in the store once its operation is done."""
        provider.script_operation("op-1", [
            (200, {"name": OP, "done": False}),
            (200, {"name": OP, "done": False}),
            (200, {"name": OP, "done": False}),
            (200, {"name": OP, "done": True, "response": {"file": {"name": "documents/d1", "displayName": "a.txt"}}}),
        ])
        session = FileSearchSession(client, poll_interval=0)

        tracked = await session.upload_file(b"0123456789", "fileSearchStores/S1", "a.txt", "text/plain")
        assert tracked.operation.name == OP
        await wait_idle(session.poller)

        files = session.list_files("fileSearchStores/S1")
        assert [f.displayName for f in files] == ["a.txt"]
        assert len(provider.calls("GET", "operations/op-1")) == 4
        assert session.poller.get(OP).completedNotified

        await session.aclose()

    @pytest.mark.asyncio
    async def test_poll_errors_then_success(self, client, provider):
        provider.script_operation("op-1", [
            (500, {"error": {"message": "Internal error"}}),
            (404, {"error": {"message": "not found"}}),
            (200, {"name": OP, "done": True, "response": {"documentName": "documents/d9"}}),
        ])
        session = FileSearchSession(client, poll_interval=0)

        await session.upload_file(b"x", "fileSearchStores/S1", "b.txt")
        await wait_idle(session.poller)

        files = session.list_files("fileSearchStores/S1")
        assert len(files) == 1
        assert files[0].name == "documents/d9"
        assert files[0].displayName == "b.txt"
        assert session.poller.get(OP).localError is None

        await session.aclose()

    @pytest.mark.asyncio
    async def test_completed_upload_is_tracked_in_analytics(self, client, provider):
        provider.script_operation("op-1", [
            (200, {"name": OP, "done": False}),
            (200, {"name": OP, "done": True, "response": {"file": {"name": "documents/d1", "displayName": "a.txt"}}}),
        ])
        analytics = MagicMock(spec=AnalyticsTracker)
        session = FileSearchSession(client, poll_interval=0, analytics=analytics)

        await session.upload_file(b"0123456789", "fileSearchStores/S1", "a.txt", "text/plain")
        await wait_idle(session.poller)

        analytics.track.assert_called_once_with("File Upload Completed", {
            "store_name": "fileSearchStores/S1",
            "file_name": "a.txt",
        })

        await session.aclose()


class TestHandleResolution:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("handle", [
        OP,
        "op-1",
        "operations/op-1",
        "https://generativelanguage.googleapis.com/v1beta/" + OP,
        "fileSearchStores%2FS1%2Fupload%2Foperations%2Fop-1",
    ])
    async def test_cancel_accepts_any_handle_form(self, handle):
        async with OperationPoller(AsyncMock(return_value=pending()), interval=60) as poller:
            await poller.track(pending(), "fileSearchStores/S1")

            assert poller.resolve(handle) == OP
            assert poller.cancel(handle) is True
            assert poller.active == []

    @pytest.mark.asyncio
    async def test_unknown_handle_is_not_resolved(self):
        async with OperationPoller(AsyncMock(return_value=pending()), interval=60) as poller:
            await poller.track(pending(), "fileSearchStores/S1")

            assert poller.resolve("op-2") is None
            assert poller.cancel("op-2") is False
            assert poller.active == [OP]

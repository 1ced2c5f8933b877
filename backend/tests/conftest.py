"""Shared fixtures: an in-memory fake of the provider REST API."""

import asyncio
import itertools
import json

import httpx
import pytest

from genai_demo.services.gemini_client import GeminiClient

BASE_URL = "https://api.test/v1beta"
UPLOAD_BASE_URL = "https://api.test/upload/v1beta"
TRANSFER_URL = "https://upload.test/resumable/session-1"


class FakeProvider:
    """Answers the provider endpoints the services use, recording every request.

    Operation status responses can be scripted per operation id: each call
    pops the next ``(status, body)`` pair; the last one repeats.
    """

    def __init__(self):
        self.requests = []
        self.stores = {}
        self.operation_scripts = {}
        self.upload_headers = {"X-Goog-Upload-URL": TRANSFER_URL}
        self.upload_start_status = 200
        self.transfer_status = 200
        self.generate_status = 200
        self.generate_body = {
            "candidates": [{"content": {"parts": [{"text": "Hello from the model"}]}}],
            "usageMetadata": {"promptTokenCount": 3, "candidatesTokenCount": 4, "totalTokenCount": 7},
        }
        self._ids = itertools.count(1)
        self._pending_store = None

    def script_operation(self, op_id, responses):
        self.operation_scripts[op_id] = list(responses)

    def calls(self, method=None, contains=""):
        return [
            r for r in self.requests
            if (method is None or r.method == method) and contains in str(r.url)
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        path = request.url.path

        if url.startswith(TRANSFER_URL):
            return self._transfer(request)
        if path.startswith("/upload/v1beta/") and path.endswith(":uploadToFileSearchStore"):
            store = path[len("/upload/v1beta/"):-len(":uploadToFileSearchStore")]
            self._pending_store = store
            return httpx.Response(self.upload_start_status, headers=self.upload_headers, json={})

        resource = path[len("/v1beta/"):]
        if resource.endswith(":generateContent"):
            return httpx.Response(self.generate_status, json=self.generate_body)
        if "operations/" in resource:
            return self._operation(resource)
        if resource == "fileSearchStores":
            if request.method == "POST":
                body = json.loads(request.content)
                name = f"fileSearchStores/store-{next(self._ids)}"
                self.stores[name] = {"name": name, "displayName": body.get("displayName"), "files": []}
                return httpx.Response(200, json={"name": name, "displayName": body.get("displayName")})
            return httpx.Response(200, json={
                "fileSearchStores": [
                    {"name": s["name"], "displayName": s["displayName"]} for s in self.stores.values()
                ]
            })

        if resource not in self.stores:
            return httpx.Response(404, json={"error": {"code": 404, "message": "Store not found"}})
        if request.method == "DELETE":
            del self.stores[resource]
            return httpx.Response(200, json={})
        return httpx.Response(200, json=self.stores[resource])

    def _transfer(self, request):
        if self.transfer_status != 200:
            return httpx.Response(self.transfer_status, json={"error": {"message": "upload rejected"}})
        op_id = f"op-{next(self._ids)}"
        return httpx.Response(200, json={
            "name": f"{self._pending_store}/upload/operations/{op_id}",
            "done": False,
        })

    def _operation(self, resource):
        op_id = resource.rsplit("/", 1)[-1]
        script = self.operation_scripts.get(op_id)
        if not script:
            return httpx.Response(200, json={"name": resource, "done": False})
        status, body = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)


@pytest.fixture
def provider():
    return FakeProvider()


def make_client(provider, api_key="test-key"):
    return GeminiClient(
        api_key=api_key,
        base_url=BASE_URL,
        upload_base_url=UPLOAD_BASE_URL,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(provider.handler)),
    )


@pytest.fixture
def client(provider):
    return make_client(provider)


async def wait_idle(poller, timeout=2.0):
    """Wait until the poller owns no running tasks."""
    async def _wait():
        while poller.active:
            await asyncio.sleep(0.001)
    await asyncio.wait_for(_wait(), timeout)

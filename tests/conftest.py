"""Shared pytest fixtures for the presigned upload tests.

Provides an in-process fake of both HTTP collaborators (the backend init
endpoint and the object store) behind ``httpx.MockTransport``, a recording
backoff sleep, and small file/descriptor factories.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from presigned_upload.descriptors import PostDescriptor, PutDescriptor
from presigned_upload.models import FileRef

INIT_URL = "https://api.test/uploads/init"
STORE_HOST = "bucket.s3.test"
STORE_URL = f"https://{STORE_HOST}"


class FakeBackend:
    """Fake init endpoint + object store.

    Store outcomes are consumed per object key from *store_script*: each entry
    is an HTTP status, or an exception instance to raise. Keys without a
    script (or with an exhausted one) succeed with 200.
    """

    def __init__(
        self,
        mode: str = "put",
        store_script: dict[str, list[Any]] | None = None,
        init_script: list[Any] | None = None,
        store_delay: float = 0.0,
        descriptor_extra: dict[str, Any] | None = None,
    ) -> None:
        self.mode = mode
        self.store_script = {k: list(v) for k, v in (store_script or {}).items()}
        self.init_script = list(init_script or [])
        self.store_delay = store_delay
        self.descriptor_extra = descriptor_extra or {}

        self.init_requests: list[httpx.Request] = []
        self.store_requests: list[httpx.Request] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def descriptor_for(self, filename: str) -> dict[str, Any]:
        body: dict[str, Any] = {
            "mode": self.mode,
            "key": filename,
            "expiresAt": 4_102_444_800_000,
        }
        if self.mode == "put":
            body["uploadUrl"] = f"{STORE_URL}/{filename}"
            body["headers"] = {"x-amz-acl": "private"}
        else:
            body["uploadUrl"] = f"{STORE_URL}/"
            body["fields"] = {
                "key": filename,
                "policy": "eyJleHBpcmF0aW9uIjoi",
                "x-amz-signature": "abc123",
            }
        body.update(self.descriptor_extra)
        return body

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == STORE_HOST:
            return await self._store(request)
        return self._init(request)

    def _init(self, request: httpx.Request) -> httpx.Response:
        self.init_requests.append(request)
        if self.init_script:
            outcome = self.init_script.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return httpx.Response(outcome, json={"error": "init failed"})

        if request.method == "POST" and request.content:
            filename = json.loads(request.content).get("filename", "test-key")
        else:
            filename = request.url.params.get("filename", "test-key")
        return httpx.Response(200, json=self.descriptor_for(filename))

    async def _store(self, request: httpx.Request) -> httpx.Response:
        self.store_requests.append(request)
        key = self._key_of(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.store_delay:
                await asyncio.sleep(self.store_delay)
            script = self.store_script.get(key) or []
            outcome = script.pop(0) if script else 200
            if isinstance(outcome, Exception):
                raise outcome
            if outcome >= 300:
                return httpx.Response(outcome, json={"error": f"status {outcome}"})
            return httpx.Response(
                outcome,
                headers={"ETag": f'"etag-{key}"', "Location": f"{STORE_URL}/{key}"},
            )
        finally:
            self.in_flight -= 1

    def _key_of(self, request: httpx.Request) -> str:
        if self.mode == "put":
            return request.url.path.lstrip("/")
        marker = b'name="key"\r\n\r\n'
        start = request.content.index(marker) + len(marker)
        return request.content[start : request.content.index(b"\r\n", start)].decode()

    def store_calls_for(self, key: str) -> int:
        return sum(1 for r in self.store_requests if self._key_of(r) == key)


class RecordingSleep:
    """Backoff sleep that records requested delays without waiting."""

    def __init__(self, on_sleep: Callable[[float], None] | None = None) -> None:
        self.delays: list[float] = []
        self._on_sleep = on_sleep

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self._on_sleep is not None:
            self._on_sleep(seconds)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
async def client(backend: FakeBackend):
    """httpx client routed to the fake backend."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(backend.handler)) as c:
        yield c


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_file() -> Callable[..., FileRef]:
    def _make(name: str = "test.png", size: int = 1024, content_type: str = "image/png") -> FileRef:
        data = bytes(i % 251 for i in range(size))
        return FileRef.from_bytes(name, data, content_type)

    return _make


@pytest.fixture
def put_descriptor() -> PutDescriptor:
    return PutDescriptor(
        upload_url=f"{STORE_URL}/test-key",
        key="test-key",
        headers={"x-amz-acl": "private", "Content-Type": "image/png"},
    )


@pytest.fixture
def post_descriptor() -> PostDescriptor:
    return PostDescriptor(
        upload_url=f"{STORE_URL}/",
        key="test-key",
        fields={"key": "test-key", "policy": "eyJleHBpcmF0aW9uIjoi", "x-amz-signature": "abc123"},
    )

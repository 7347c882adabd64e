"""Public entry point: :class:`PresignedUploader`.

Wires the descriptor initializer, the configured transport, the retry
orchestrator and the batch scheduler around one shared ``httpx.AsyncClient``.

Usage::

    config = UploaderConfig(init=InitConfig(url="https://api.example.com/uploads"))
    async with PresignedUploader(config) as uploader:
        handle = uploader.upload(FileRef.from_path("report.pdf"))
        result = await handle

        batch = await uploader.upload_many(files, concurrency=4)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Generator, Sequence
from typing import Any

import httpx

from presigned_upload.cancellation import AnyCancelToken, CancelToken
from presigned_upload.models import (
    FileRef,
    UploaderConfig,
    UploadManyResult,
    UploadProgress,
    UploadResult,
)
from presigned_upload.upload.initializer import DescriptorInitializer
from presigned_upload.upload.orchestrator import Sleep, UploadOrchestrator
from presigned_upload.upload.scheduler import (
    DEFAULT_CONCURRENCY,
    EachProgressCallback,
    UploadScheduler,
)
from presigned_upload.upload.transport import ProgressCallback, Transport, create_transport

logger = logging.getLogger(__name__)


class UploadHandle:
    """A running upload: an awaitable result plus a cancel handle.

    ``cancel()`` is idempotent and does nothing once the upload settled.
    """

    def __init__(self, task: asyncio.Task[UploadResult], token: CancelToken) -> None:
        self.result = task
        self._token = token

    def cancel(self) -> None:
        if self.result.done():
            return
        self._token.cancel()

    @property
    def done(self) -> bool:
        return self.result.done()

    def __await__(self) -> Generator[Any, None, UploadResult]:
        return self.result.__await__()


class PresignedUploader:
    """Uploads files through backend-issued presigned descriptors.

    Args:
        config: Init endpoint, retry policy, transport choice.
        client: Optional ``httpx.AsyncClient``; one is created (and closed
            by :meth:`aclose`) when omitted.
        transport: Optional transport override, mostly for tests.
        sleep: Backoff sleep override, mostly for tests.
    """

    def __init__(
        self,
        config: UploaderConfig,
        client: httpx.AsyncClient | None = None,
        transport: Transport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()
        self._initializer = DescriptorInitializer(config.init, self._client)
        self._transport = transport or create_transport(
            config.transport, self._client, config.chunk_size
        )
        self._orchestrator = UploadOrchestrator(
            self._initializer,
            self._transport,
            config.retry,
            progress_interval_ms=config.progress_interval_ms,
            sleep=sleep,
        )

    @property
    def config(self) -> UploaderConfig:
        return self._config

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Close the HTTP client if this uploader created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> PresignedUploader:
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def upload(
        self,
        file: FileRef,
        on_progress: ProgressCallback | None = None,
        signal: CancelToken | None = None,
    ) -> UploadHandle:
        """Start uploading *file* and return its handle immediately.

        Must be called from a running event loop. Either ``handle.cancel()``
        or firing *signal* aborts the upload.
        """
        token = AnyCancelToken(signal)
        task = asyncio.ensure_future(self._orchestrator.run(file, on_progress, token))
        return UploadHandle(task, token)

    async def upload_many(
        self,
        files: Sequence[FileRef],
        concurrency: int = DEFAULT_CONCURRENCY,
        on_each_progress: EachProgressCallback | None = None,
        on_overall_progress: Callable[[UploadProgress], None] | None = None,
        signal: CancelToken | None = None,
    ) -> UploadManyResult:
        """Upload *files* with bounded concurrency; never raises per-file errors."""
        scheduler = UploadScheduler(self._run_one, concurrency)
        return await scheduler.run(
            files,
            on_each_progress=on_each_progress,
            on_overall_progress=on_overall_progress,
            token=signal,
        )

    async def _run_one(
        self,
        file: FileRef,
        on_progress: ProgressCallback | None,
        token: CancelToken | None,
    ) -> UploadResult:
        return await self.upload(file, on_progress, token)


def create_uploader(
    config: UploaderConfig, client: httpx.AsyncClient | None = None
) -> PresignedUploader:
    """Factory mirroring :class:`PresignedUploader`'s constructor."""
    return PresignedUploader(config, client)

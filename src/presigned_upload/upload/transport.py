"""Transports: perform exactly one transfer attempt against a descriptor.

Two interchangeable implementations sit behind the :class:`Transport`
protocol:

* :class:`StreamingTransport` -- streams the body chunk by chunk and
  reports throttled byte-level progress while the transfer is in flight.
* :class:`PlainTransport` -- hands the whole payload to httpx in one go; no
  mid-flight progress, a single terminal event once the store accepts it.

Both honour cancellation by cancelling the in-flight request, which makes
httpx drop the connection, and both classify every failure as an
``upload``-phase :class:`~presigned_upload.errors.UploadError`.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol

import httpx

from presigned_upload.cancellation import CancelToken, race_cancellation
from presigned_upload.descriptors import PostDescriptor, PutDescriptor
from presigned_upload.errors import (
    UploadError,
    UploadPhase,
    error_from_status,
    normalize_error,
)
from presigned_upload.models import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_PROGRESS_INTERVAL_MS,
    FileRef,
    TransportKind,
    UploadProgress,
    UploadResult,
)
from presigned_upload.upload.callbacks import notify
from presigned_upload.upload.initializer import decode_body
from presigned_upload.upload.multipart import encode_post_form
from presigned_upload.upload.throttle import ProgressThrottler

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[UploadProgress], None]


class Transport(Protocol):
    """One network transfer attempt for a descriptor and a file."""

    async def upload(
        self,
        descriptor: PutDescriptor | PostDescriptor,
        file: FileRef,
        *,
        on_progress: ProgressCallback | None = None,
        token: CancelToken | None = None,
        progress_interval_ms: float = DEFAULT_PROGRESS_INTERVAL_MS,
    ) -> UploadResult: ...


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _put_headers(descriptor: PutDescriptor, file: FileRef) -> httpx.Headers:
    """Descriptor headers verbatim, plus the file's type when none was signed."""
    headers = httpx.Headers(descriptor.headers)
    if "content-type" not in headers:
        headers["Content-Type"] = file.content_type
    return headers


def result_from_response(
    response: httpx.Response, descriptor: PutDescriptor | PostDescriptor
) -> UploadResult:
    """Build the result for a 2xx response, or raise the classified error."""
    if not response.is_success:
        raise error_from_status(
            UploadPhase.UPLOAD,
            response.status_code,
            response.reason_phrase,
            decode_body(response),
        )

    etag = response.headers.get("ETag", "").replace('"', "")
    return UploadResult(
        key=descriptor.key,
        mode=descriptor.mode,
        location=response.headers.get("Location") or None,
        etag=etag or None,
    )


async def _run_attempt(
    send: Awaitable[httpx.Response], token: CancelToken | None
) -> httpx.Response:
    try:
        return await race_cancellation(send, token, UploadPhase.UPLOAD)
    except UploadError:
        raise
    except Exception as exc:
        raise normalize_error(
            exc, UploadPhase.UPLOAD, token, "Upload request failed"
        ) from exc


# ---------------------------------------------------------------------------
# Streaming transport
# ---------------------------------------------------------------------------


class StreamingTransport:
    """Streams the file and reports byte progress as chunks hit the wire.

    Args:
        client: Shared ``httpx.AsyncClient``.
        chunk_size: Bytes read from the source per chunk.
    """

    kind = TransportKind.STREAMING

    def __init__(self, client: httpx.AsyncClient, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._client = client
        self._chunk_size = chunk_size

    async def upload(
        self,
        descriptor: PutDescriptor | PostDescriptor,
        file: FileRef,
        *,
        on_progress: ProgressCallback | None = None,
        token: CancelToken | None = None,
        progress_interval_ms: float = DEFAULT_PROGRESS_INTERVAL_MS,
    ) -> UploadResult:
        throttler = ProgressThrottler(progress_interval_ms)
        sent = 0
        terminal_emitted = False

        def report(nbytes: int) -> None:
            nonlocal sent, terminal_emitted
            sent += nbytes
            if on_progress is None or not throttler.should_emit(sent, file.size):
                return
            terminal_emitted = sent >= file.size
            notify(on_progress, UploadProgress(sent, file.size))

        async def body(prefix: bytes = b"", suffix: bytes = b"") -> AsyncIterator[bytes]:
            if prefix:
                yield prefix
            async for chunk in file.iter_chunks(self._chunk_size):
                yield chunk
                report(len(chunk))
            if suffix:
                yield suffix

        if isinstance(descriptor, PutDescriptor):
            headers = _put_headers(descriptor, file)
            headers["Content-Length"] = str(file.size)
            send = self._client.request(
                "PUT", descriptor.upload_url, content=body(), headers=headers
            )
        elif isinstance(descriptor, PostDescriptor):
            form = encode_post_form(descriptor.fields, descriptor.file_field, file)
            headers = httpx.Headers(
                {
                    "Content-Type": form.content_type,
                    "Content-Length": str(form.content_length),
                }
            )
            send = self._client.request(
                "POST",
                descriptor.upload_url,
                content=body(form.preamble, form.epilogue),
                headers=headers,
            )
        else:
            raise TypeError(f"Unsupported descriptor: {descriptor!r}")

        logger.debug(
            "Streaming %s upload of %s (%d bytes)", descriptor.mode, file.name, file.size
        )
        response = await _run_attempt(send, token)
        result = result_from_response(response, descriptor)

        if not terminal_emitted:
            notify(on_progress, UploadProgress(file.size, file.size))
        return result


# ---------------------------------------------------------------------------
# Plain transport
# ---------------------------------------------------------------------------


class PlainTransport:
    """Sends the whole payload in one request, without mid-flight progress.

    Args:
        client: Shared ``httpx.AsyncClient``.
    """

    kind = TransportKind.PLAIN

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def upload(
        self,
        descriptor: PutDescriptor | PostDescriptor,
        file: FileRef,
        *,
        on_progress: ProgressCallback | None = None,
        token: CancelToken | None = None,
        progress_interval_ms: float = DEFAULT_PROGRESS_INTERVAL_MS,
    ) -> UploadResult:
        async def send() -> httpx.Response:
            payload = await file.read_all()
            if isinstance(descriptor, PutDescriptor):
                return await self._client.request(
                    "PUT",
                    descriptor.upload_url,
                    content=payload,
                    headers=_put_headers(descriptor, file),
                )
            if isinstance(descriptor, PostDescriptor):
                # httpx writes ``data`` fields before ``files`` parts
                return await self._client.request(
                    "POST",
                    descriptor.upload_url,
                    data=dict(descriptor.fields),
                    files={
                        descriptor.file_field: (file.name, payload, file.content_type)
                    },
                )
            raise TypeError(f"Unsupported descriptor: {descriptor!r}")

        logger.debug("Plain %s upload of %s (%d bytes)", descriptor.mode, file.name, file.size)
        response = await _run_attempt(send(), token)
        result = result_from_response(response, descriptor)

        notify(on_progress, UploadProgress(file.size, file.size))
        return result


def create_transport(
    kind: TransportKind | str,
    client: httpx.AsyncClient,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Transport:
    """Instantiate the transport named by *kind*."""
    try:
        kind = TransportKind(kind)
    except ValueError:
        raise ValueError(f"Unsupported transport type: {kind!r}") from None

    if kind is TransportKind.STREAMING:
        return StreamingTransport(client, chunk_size)
    return PlainTransport(client)

"""Data models and enums for presigned uploads."""

from __future__ import annotations

import asyncio
import mimetypes
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from tenacity import wait_exponential, wait_incrementing

from presigned_upload.descriptors import default_map_response

if TYPE_CHECKING:
    from tenacity.wait import wait_base

    from presigned_upload.errors import UploadError

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_PROGRESS_INTERVAL_MS = 120
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class BackoffStrategy(str, Enum):
    """Delay family used between attempts."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class TransportKind(str, Enum):
    """Low-level transfer mechanism."""

    STREAMING = "streaming"
    PLAIN = "plain"


# ---------------------------------------------------------------------------
# File reference
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileRef:
    """A file to upload: metadata plus an opaque byte source.

    ``source`` is either the payload itself (``bytes``) or a path that is
    opened for every attempt, so retries always restart from byte zero.
    """

    name: str
    size: int
    content_type: str = DEFAULT_CONTENT_TYPE
    source: bytes | Path = b""

    def __post_init__(self) -> None:
        if self.size < 0:
            raise ValueError(f"File size must be non-negative, got {self.size}")
        if isinstance(self.source, str):
            object.__setattr__(self, "source", Path(self.source))

    @classmethod
    def from_path(cls, path: str | Path, content_type: str | None = None) -> FileRef:
        """Build a reference to a local file, guessing its content type."""
        path = Path(path)
        if content_type is None:
            guessed, _ = mimetypes.guess_type(path.name)
            content_type = guessed or DEFAULT_CONTENT_TYPE
        return cls(
            name=path.name,
            size=path.stat().st_size,
            content_type=content_type,
            source=path,
        )

    @classmethod
    def from_bytes(
        cls, name: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE
    ) -> FileRef:
        return cls(name=name, size=len(data), content_type=content_type, source=data)

    @property
    def metadata(self) -> dict[str, Any]:
        """Name/size/type dict handed to init payload builders."""
        return {"name": self.name, "size": self.size, "content_type": self.content_type}

    async def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield the payload in chunks of at most *chunk_size* bytes."""
        if isinstance(self.source, bytes):
            view = memoryview(self.source)
            for offset in range(0, len(view), chunk_size):
                yield bytes(view[offset : offset + chunk_size])
            return

        fh = await asyncio.to_thread(open, self.source, "rb")
        try:
            while True:
                chunk = await asyncio.to_thread(fh.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            fh.close()

    async def read_all(self) -> bytes:
        if isinstance(self.source, bytes):
            return self.source
        return await asyncio.to_thread(self.source.read_bytes)


# ---------------------------------------------------------------------------
# Progress and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UploadProgress:
    """Bytes transferred so far out of ``total_bytes``."""

    bytes_sent: int
    total_bytes: int

    @property
    def percent(self) -> int:
        """Integer percent in [0, 100]; 0 when there is nothing to send."""
        if self.total_bytes <= 0:
            return 0
        return round(self.bytes_sent / self.total_bytes * 100)

    @property
    def done(self) -> bool:
        return self.bytes_sent >= self.total_bytes


@dataclass(frozen=True)
class UploadResult:
    """Outcome of a successful transfer."""

    key: str
    mode: Literal["put", "post"]
    location: str | None = None
    etag: str | None = None


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff for one orchestrated upload.

    Attributes:
        retries: Extra attempts after the first (total = ``retries + 1``).
        backoff: ``linear`` (``min * n``) or ``exponential`` (``min * 2**(n-1)``).
        min_delay_ms: Base delay; lower bound of the schedule.
        max_delay_ms: Every delay is clamped to this.
        reinit_on_auth_error: Re-run the initializer after an ``EXPIRED``
            failure instead of retrying the stale descriptor.
    """

    retries: int = 0
    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    min_delay_ms: int = 500
    max_delay_ms: int = 4000
    reinit_on_auth_error: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "backoff", BackoffStrategy(self.backoff))
        if self.retries < 0:
            raise ValueError(f"retries must be >= 0, got {self.retries}")
        if self.min_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("Retry delays must be non-negative")
        if self.min_delay_ms > self.max_delay_ms:
            raise ValueError(
                f"min_delay_ms ({self.min_delay_ms}) must not exceed "
                f"max_delay_ms ({self.max_delay_ms})"
            )

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def delay_for(self, attempt: int) -> int:
        """Delay in milliseconds after failed attempt number *attempt* (1-based)."""
        if self.backoff is BackoffStrategy.LINEAR:
            delay = self.min_delay_ms * attempt
        else:
            delay = self.min_delay_ms * 2 ** (attempt - 1)
        return min(delay, self.max_delay_ms)

    def wait_strategy(self) -> wait_base:
        """Tenacity wait object (seconds) producing the :meth:`delay_for` schedule."""
        base = self.min_delay_ms / 1000
        cap = self.max_delay_ms / 1000
        if self.backoff is BackoffStrategy.LINEAR:
            return wait_incrementing(start=base, increment=base, max=cap)
        return wait_exponential(multiplier=base, max=cap)


HeadersSource = Mapping[str, str] | Callable[[], Mapping[str, str]]


@dataclass
class InitConfig:
    """How to reach the backend endpoint that mints descriptors.

    ``build_payload`` receives :attr:`FileRef.metadata` (name, size, content
    type), never the byte source.
    """

    url: str
    map_response: Callable[[Any], Any] = default_map_response
    method: str = "POST"
    headers: HeadersSource | None = None
    build_payload: Callable[[dict[str, Any]], Any] | None = None

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        if self.method not in ("POST", "GET"):
            raise ValueError(f"Init method must be POST or GET, got {self.method!r}")

    def resolve_headers(self) -> dict[str, str]:
        """Static headers, or the result of calling the header factory now."""
        if self.headers is None:
            return {}
        if callable(self.headers):
            return dict(self.headers())
        return dict(self.headers)


@dataclass
class UploaderConfig:
    """Top-level configuration for :class:`~presigned_upload.uploader.PresignedUploader`."""

    init: InitConfig
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    transport: TransportKind = TransportKind.STREAMING
    progress_interval_ms: int = DEFAULT_PROGRESS_INTERVAL_MS
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        self.transport = TransportKind(self.transport)
        if self.progress_interval_ms < 0:
            raise ValueError("progress_interval_ms must be non-negative")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")


# ---------------------------------------------------------------------------
# Batch settlement
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettledUpload:
    """Terminal outcome of one file in a batch: exactly one of result/error."""

    index: int
    file: FileRef
    result: UploadResult | None = None
    error: UploadError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def status(self) -> Literal["fulfilled", "rejected"]:
        return "fulfilled" if self.ok else "rejected"


@dataclass
class UploadManyResult:
    """Positionally ordered settlements for an ``upload_many`` call."""

    results: list[SettledUpload]

    @property
    def succeeded(self) -> list[SettledUpload]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[SettledUpload]:
        return [r for r in self.results if not r.ok]

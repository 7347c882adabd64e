"""Bounded-concurrency scheduling for multi-file uploads.

Admission is an ``asyncio.Semaphore``: at most ``concurrency`` orchestrated
uploads are in flight on the event loop, and the rest wait in input order.
Every file settles into its own slot; one failure never aborts siblings.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from presigned_upload.cancellation import CancelToken
from presigned_upload.errors import UploadError, UploadPhase, aborted_error
from presigned_upload.models import (
    FileRef,
    SettledUpload,
    UploadManyResult,
    UploadProgress,
    UploadResult,
)
from presigned_upload.upload.callbacks import notify
from presigned_upload.upload.transport import ProgressCallback

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3

RunOne = Callable[[FileRef, ProgressCallback | None, CancelToken | None], Awaitable[UploadResult]]
EachProgressCallback = Callable[[int, UploadProgress], None]


class ProgressAggregator:
    """Folds per-file progress into one overall :class:`UploadProgress`.

    Files that have not reported yet count as zero bytes sent out of their
    full size.
    """

    def __init__(
        self,
        sizes: Sequence[int],
        on_overall: Callable[[UploadProgress], None] | None = None,
    ) -> None:
        self._sizes = list(sizes)
        self._sent: dict[int, int] = {}
        self._on_overall = on_overall

    @property
    def overall(self) -> UploadProgress:
        return UploadProgress(
            bytes_sent=sum(self._sent.values()),
            total_bytes=sum(self._sizes),
        )

    def update(self, index: int, progress: UploadProgress) -> UploadProgress:
        """Record *progress* for file *index* and emit the new overall figure."""
        self._sent[index] = min(progress.bytes_sent, self._sizes[index])
        return self.emit()

    def emit(self) -> UploadProgress:
        overall = self.overall
        notify(self._on_overall, overall)
        return overall


class UploadScheduler:
    """Runs one upload per file with at most *concurrency* in flight.

    Args:
        run_one: Coroutine function ``(file, on_progress, token) -> UploadResult``,
            normally :meth:`UploadOrchestrator.run`.
        concurrency: Admission limit (>= 1).
    """

    def __init__(self, run_one: RunOne, concurrency: int = DEFAULT_CONCURRENCY) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._run_one = run_one
        self._concurrency = concurrency

    async def run(
        self,
        files: Sequence[FileRef],
        on_each_progress: EachProgressCallback | None = None,
        on_overall_progress: Callable[[UploadProgress], None] | None = None,
        token: CancelToken | None = None,
    ) -> UploadManyResult:
        """Upload every file and return positionally ordered settlements."""
        semaphore = asyncio.Semaphore(self._concurrency)
        aggregator = ProgressAggregator([f.size for f in files], on_overall_progress)

        def progress_for(index: int) -> ProgressCallback:
            def on_progress(progress: UploadProgress) -> None:
                notify(on_each_progress, index, progress)
                aggregator.update(index, progress)

            return on_progress

        async def settle(index: int, file: FileRef) -> SettledUpload:
            async with semaphore:
                if token is not None and token.cancelled:
                    logger.debug("Skipping queued upload of %s: cancelled", file.name)
                    return SettledUpload(index, file, error=aborted_error(UploadPhase.INIT))
                try:
                    result = await self._run_one(file, progress_for(index), token)
                except UploadError as exc:
                    logger.warning(
                        "Upload %d (%s) failed: %s", index, file.name, exc.to_dict()
                    )
                    return SettledUpload(index, file, error=exc)
                return SettledUpload(index, file, result=result)

        logger.info(
            "Uploading %d file(s), concurrency=%d", len(files), self._concurrency
        )
        settled = await asyncio.gather(*(settle(i, f) for i, f in enumerate(files)))
        aggregator.emit()

        outcome = UploadManyResult(results=list(settled))
        logger.info(
            "Batch complete: %d succeeded, %d failed",
            len(outcome.succeeded),
            len(outcome.failed),
        )
        return outcome

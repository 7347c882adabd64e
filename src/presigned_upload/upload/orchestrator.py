"""Retry/reinit orchestrator: turns "initialize" + "transfer" into one operation.

For attempt ``n`` in ``1..retries+1``:

1. Fail with ``ABORTED`` if the token already fired.
2. Run the initializer when no descriptor is cached, or when the previous
   failure was ``EXPIRED`` and the policy allows re-initialization.
3. Run the transport with the cached descriptor.
4. Return the result on success.
5. Surface the error when it is not retryable, the budget is spent, or the
   token fired during the attempt.
6. Otherwise sleep ``delay_for(n)`` and go again.

The loop itself is a ``tenacity.AsyncRetrying`` whose stop, wait and retry
conditions are derived from the :class:`~presigned_upload.models.RetryPolicy`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from presigned_upload.cancellation import CancelToken, cancellable_sleep
from presigned_upload.descriptors import PostDescriptor, PutDescriptor
from presigned_upload.errors import (
    UploadError,
    UploadPhase,
    aborted_error,
    is_retryable,
    normalize_error,
    requires_reinit,
)
from presigned_upload.models import (
    DEFAULT_PROGRESS_INTERVAL_MS,
    FileRef,
    RetryPolicy,
    UploadProgress,
    UploadResult,
)
from presigned_upload.upload.callbacks import notify
from presigned_upload.upload.fsm import UploadAttemptSM
from presigned_upload.upload.initializer import DescriptorInitializer
from presigned_upload.upload.transport import ProgressCallback, Transport

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class AttemptState:
    """Transient state owned by one :meth:`UploadOrchestrator.run` call."""

    file: FileRef
    token: CancelToken | None = None
    attempt: int = 0
    descriptor: PutDescriptor | PostDescriptor | None = None
    last_error: UploadError | None = None
    fsm: UploadAttemptSM = field(default_factory=UploadAttemptSM)

    @property
    def cancelled(self) -> bool:
        return self.token is not None and self.token.cancelled

    @property
    def phase(self) -> UploadPhase:
        return UploadPhase.UPLOAD if self.descriptor is not None else UploadPhase.INIT


def monotonic_progress(on_progress: ProgressCallback | None) -> ProgressCallback | None:
    """Wrap *on_progress* so ``bytes_sent`` never goes backwards across retries."""
    if on_progress is None:
        return None
    high_water = -1

    def forward(progress: UploadProgress) -> None:
        nonlocal high_water
        if progress.bytes_sent < high_water:
            return
        high_water = progress.bytes_sent
        notify(on_progress, progress)

    return forward


class UploadOrchestrator:
    """Drives initializer and transport through the retry/reinit state machine.

    Usage::

        orchestrator = UploadOrchestrator(initializer, transport, RetryPolicy(retries=3))
        result = await orchestrator.run(FileRef.from_path("photo.png"))

    Args:
        initializer: Mints descriptors from the backend.
        transport: Performs one transfer attempt.
        policy: Attempt budget and backoff schedule.
        progress_interval_ms: Minimum interval between streamed progress events.
        sleep: Awaitable sleep used for backoff (injectable for tests).
    """

    def __init__(
        self,
        initializer: DescriptorInitializer,
        transport: Transport,
        policy: RetryPolicy | None = None,
        progress_interval_ms: float = DEFAULT_PROGRESS_INTERVAL_MS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._initializer = initializer
        self._transport = transport
        self._policy = policy or RetryPolicy()
        self._progress_interval_ms = progress_interval_ms
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def run(
        self,
        file: FileRef,
        on_progress: ProgressCallback | None = None,
        token: CancelToken | None = None,
    ) -> UploadResult:
        """Upload *file*, retrying per policy.

        Raises:
            UploadError: The final, unrecovered error.
        """
        state = AttemptState(file=file, token=token)
        forward = monotonic_progress(on_progress)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._policy.max_attempts),
            wait=self._policy.wait_strategy(),
            retry=retry_if_exception(lambda exc: self._should_retry(exc, state)),
            sleep=lambda seconds: self._backoff(seconds, state),
            before_sleep=lambda retry_state: self._log_retry(retry_state, state),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await self._attempt(state, forward)
        except UploadError as exc:
            state.fsm.fire("give_up")
            logger.info(
                "Upload of %s failed after %d attempt(s): %s",
                file.name,
                state.attempt,
                exc.to_dict(),
            )
            raise
        raise AssertionError("retry loop exited without a result")  # pragma: no cover

    # ------------------------------------------------------------------
    # One attempt
    # ------------------------------------------------------------------

    async def _attempt(
        self, state: AttemptState, on_progress: ProgressCallback | None
    ) -> UploadResult:
        state.attempt += 1
        needs_init = state.descriptor is None or (
            state.last_error is not None
            and requires_reinit(state.last_error)
            and self._policy.reinit_on_auth_error
        )
        if state.fsm.current_state.value == "retrying":
            state.fsm.fire("reinit" if needs_init else "retry")

        logger.debug(
            "Attempt %d/%d for %s (init=%s)",
            state.attempt,
            self._policy.max_attempts,
            state.file.name,
            needs_init,
        )

        try:
            if state.cancelled:
                raise aborted_error(state.phase)

            if needs_init:
                if state.descriptor is not None:
                    logger.info(
                        "Descriptor for %s rejected as expired, re-initializing",
                        state.file.name,
                    )
                    state.descriptor = None
                state.descriptor = await self._initializer.initialize(state.file, state.token)
                state.fsm.fire("initialized")

            result = await self._transport.upload(
                state.descriptor,
                state.file,
                on_progress=on_progress,
                token=state.token,
                progress_interval_ms=self._progress_interval_ms,
            )
        except Exception as exc:
            error = normalize_error(exc, state.phase, state.token)
            state.last_error = error
            state.fsm.fire("fail_attempt")
            if error is exc:
                raise
            raise error from exc

        state.fsm.fire("succeed")
        return result

    # ------------------------------------------------------------------
    # Tenacity hooks
    # ------------------------------------------------------------------

    def _should_retry(self, exc: BaseException, state: AttemptState) -> bool:
        return isinstance(exc, UploadError) and is_retryable(exc) and not state.cancelled

    async def _backoff(self, seconds: float, state: AttemptState) -> None:
        await cancellable_sleep(seconds, state.token, state.phase, self._sleep)

    def _log_retry(self, retry_state: RetryCallState, state: AttemptState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        error = state.last_error
        logger.warning(
            "Attempt %d/%d for %s failed (%s, phase=%s, status=%s); retrying in %.0f ms",
            state.attempt,
            self._policy.max_attempts,
            state.file.name,
            error.kind.value if error else "?",
            error.phase.value if error else "?",
            error.status if error else None,
            delay * 1000,
        )

"""Time-gated progress emission.

Streaming transfers report progress for every chunk written to the socket;
forwarding all of them would swamp the caller's callback on large files.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from presigned_upload.models import DEFAULT_PROGRESS_INTERVAL_MS


class ProgressThrottler:
    """Allows at most one progress event per *interval_ms*.

    The terminal event (``loaded >= total``) always passes, so the 100%
    signal is never dropped. One instance per upload attempt.
    """

    def __init__(
        self,
        interval_ms: float = DEFAULT_PROGRESS_INTERVAL_MS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._interval = interval_ms / 1000
        self._clock = clock
        self._last_emit: float | None = None

    def should_emit(self, loaded: int | None = None, total: int | None = None) -> bool:
        """Return True when an event may be forwarded now."""
        if loaded is not None and total is not None and loaded >= total:
            self.force_emit()
            return True

        now = self._clock()
        if self._last_emit is None or now - self._last_emit >= self._interval:
            self._last_emit = now
            return True
        return False

    def force_emit(self) -> None:
        """Record an emission without consulting the gate."""
        self._last_emit = self._clock()

"""Cooperative cancellation tokens.

A token is a settable flag that every suspension point checks before it
proceeds. Composite tokens compute their fired state by OR-ing their
sources on every read instead of registering callbacks on them, so nothing
is left attached to an external signal once an upload settles.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import TypeVar

from presigned_upload.errors import UploadPhase, aborted_error

T = TypeVar("T")


class CancelToken:
    """A one-shot cancellation flag that can also be awaited."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Fire the token. Calling it again is a no-op."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Suspend until the token fires."""
        await self._event.wait()


class AnyCancelToken(CancelToken):
    """Token that counts as fired when it or any of its sources has fired.

    Usage::

        local = AnyCancelToken(external_signal)
        local.cancel()          # fires only the local handle
        external_signal.cancel()  # also observed through ``local.cancelled``
    """

    def __init__(self, *sources: CancelToken | None) -> None:
        super().__init__()
        self._sources = [s for s in sources if s is not None]

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or any(s.cancelled for s in self._sources)

    async def wait(self) -> None:
        if self.cancelled:
            return
        waiters = [asyncio.ensure_future(self._event.wait())]
        waiters += [asyncio.ensure_future(s.wait()) for s in self._sources]
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()


async def race_cancellation(
    awaitable: Awaitable[T], token: CancelToken | None, phase: UploadPhase
) -> T:
    """Await *awaitable* unless *token* fires first.

    When the token wins, the in-flight work is cancelled (so an HTTP request
    releases its connection) and an ``ABORTED`` error is raised.
    """
    if token is None:
        return await awaitable
    if token.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise aborted_error(phase)

    work = asyncio.ensure_future(awaitable)
    watcher = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        watcher.cancel()

    if work.done():
        return work.result()

    work.cancel()
    with contextlib.suppress(asyncio.CancelledError, Exception):
        await work
    raise aborted_error(phase)


async def cancellable_sleep(
    seconds: float,
    token: CancelToken | None,
    phase: UploadPhase,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Backoff suspension that ends early with ``ABORTED`` on cancellation."""
    await race_cancellation(sleep(seconds), token, phase)
    if token is not None and token.cancelled:
        raise aborted_error(phase)


__all__ = [
    "AnyCancelToken",
    "CancelToken",
    "cancellable_sleep",
    "race_cancellation",
]

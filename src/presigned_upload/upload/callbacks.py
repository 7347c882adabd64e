"""Isolation of caller-supplied callbacks.

Progress callbacks belong to the caller. Whatever they raise is logged and
dropped, so a transfer the store accepted is never turned into a failure.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


def notify(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Call *callback* with *args*, logging and swallowing any ``Exception``."""
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        logger.exception("Progress callback %r raised; ignoring", callback)

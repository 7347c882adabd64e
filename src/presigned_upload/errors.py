"""Error taxonomy for presigned uploads.

Every failure that reaches a caller is an :class:`UploadError` tagged with
the phase it occurred in (``init`` or ``upload``) and one of six kinds:

* ``NETWORK`` -- connectivity failure, or anything not otherwise classified
* ``TIMEOUT`` -- a network-layer deadline was exceeded
* ``EXPIRED`` -- the store rejected the descriptor with HTTP 403
* ``ABORTED`` -- the caller cancelled
* ``BAD_REQUEST`` -- any other 4xx
* ``SERVER`` -- 5xx
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from presigned_upload.cancellation import CancelToken


class ErrorKind(str, Enum):
    """Fixed set of failure classifications."""

    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    EXPIRED = "EXPIRED"
    ABORTED = "ABORTED"
    BAD_REQUEST = "BAD_REQUEST"
    SERVER = "SERVER"


class UploadPhase(str, Enum):
    """Which half of the two-phase protocol a failure belongs to."""

    INIT = "init"
    UPLOAD = "upload"


class UploadError(Exception):
    """A classified, terminal-or-retryable upload failure.

    Instances are immutable: the attributes below are read-only.

    Attributes:
        phase: ``init`` when minting the descriptor failed, ``upload`` when
            the byte transfer failed.
        kind: Classification from :class:`ErrorKind`.
        status: HTTP status code, when the failure came from a response.
        detail: Opaque diagnostic payload (response body, raw exception...).
    """

    def __init__(
        self,
        message: str,
        phase: UploadPhase,
        kind: ErrorKind,
        status: int | None = None,
        detail: Any = None,
    ) -> None:
        super().__init__(message)
        self._message = message
        self._phase = UploadPhase(phase)
        self._kind = ErrorKind(kind)
        self._status = status
        self._detail = detail

    @property
    def message(self) -> str:
        return self._message

    @property
    def phase(self) -> UploadPhase:
        return self._phase

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def status(self) -> int | None:
        return self._status

    @property
    def detail(self) -> Any:
        return self._detail

    def __repr__(self) -> str:
        return (
            f"UploadError(kind={self.kind.value}, phase={self.phase.value}, "
            f"status={self.status!r}, message={self.message!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict view, handy for logging and JSON output."""
        return {
            "kind": self.kind.value,
            "phase": self.phase.value,
            "status": self.status,
            "message": self.message,
        }


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def network_error(phase: UploadPhase, message: str, detail: Any = None) -> UploadError:
    return UploadError(message, phase, ErrorKind.NETWORK, detail=detail)


def timeout_error(
    phase: UploadPhase, message: str = "Request timed out", detail: Any = None
) -> UploadError:
    return UploadError(message, phase, ErrorKind.TIMEOUT, detail=detail)


def aborted_error(phase: UploadPhase, message: str = "Upload was aborted") -> UploadError:
    return UploadError(message, phase, ErrorKind.ABORTED)


def expired_error(
    phase: UploadPhase,
    message: str = "Presigned descriptor has expired",
    detail: Any = None,
) -> UploadError:
    return UploadError(message, phase, ErrorKind.EXPIRED, status=403, detail=detail)


def server_error(
    phase: UploadPhase, status: int, message: str, detail: Any = None
) -> UploadError:
    return UploadError(message, phase, ErrorKind.SERVER, status=status, detail=detail)


def bad_request_error(
    phase: UploadPhase, status: int, message: str, detail: Any = None
) -> UploadError:
    return UploadError(message, phase, ErrorKind.BAD_REQUEST, status=status, detail=detail)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def error_from_status(
    phase: UploadPhase,
    status: int,
    reason: str = "",
    body: Any = None,
) -> UploadError:
    """Classify a non-2xx HTTP response.

    Args:
        phase: Phase the response belongs to.
        status: HTTP status code.
        reason: Reason phrase, used only in the message.
        body: Decoded response body, attached as diagnostic detail.

    Returns:
        The classified error (not raised).
    """
    message = f"HTTP {status}: {reason}".rstrip(": ")

    if status == 403:
        return expired_error(phase, message, detail=body)
    if 400 <= status < 500:
        return bad_request_error(phase, status, message, detail=body)
    if status >= 500:
        return server_error(phase, status, message, detail=body)

    return network_error(
        phase, message, detail={"status": status, "reason": reason, "body": body}
    )


def normalize_error(
    exc: BaseException,
    phase: UploadPhase,
    token: CancelToken | None = None,
    default_message: str = "An unexpected error occurred",
) -> UploadError:
    """Convert any raised exception into an :class:`UploadError`.

    Once *token* is observed cancelled the result is always ``ABORTED``,
    whatever the underlying exception was.
    """
    if token is not None and token.cancelled:
        if isinstance(exc, UploadError) and exc.kind is ErrorKind.ABORTED:
            return exc
        return aborted_error(phase)

    if isinstance(exc, UploadError):
        return exc
    if isinstance(exc, asyncio.CancelledError):
        return aborted_error(phase)
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return timeout_error(phase, str(exc) or "Request timed out", detail=exc)
    if isinstance(exc, httpx.TransportError):
        return network_error(phase, str(exc) or "Network error", detail=exc)

    return network_error(phase, str(exc) or default_message, detail=exc)


def is_retryable(error: UploadError) -> bool:
    """Whether the orchestrator may spend another attempt on *error*.

    ``EXPIRED`` is retryable; whether the retry re-initializes the
    descriptor is decided separately by :func:`requires_reinit` and the
    policy's ``reinit_on_auth_error`` flag.
    """
    return error.kind in (
        ErrorKind.NETWORK,
        ErrorKind.TIMEOUT,
        ErrorKind.SERVER,
        ErrorKind.EXPIRED,
    )


def requires_reinit(error: UploadError) -> bool:
    """True when the failure means the descriptor itself is no longer valid."""
    return error.kind is ErrorKind.EXPIRED

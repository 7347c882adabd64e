"""Descriptor initializer: asks the application backend for a fresh descriptor.

Each call may mint a new, independently expiring descriptor, so the
orchestrator is free to call it again after an ``EXPIRED`` rejection.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import ValidationError

from presigned_upload.cancellation import CancelToken, race_cancellation
from presigned_upload.descriptors import PostDescriptor, PutDescriptor, parse_descriptor
from presigned_upload.errors import (
    UploadError,
    UploadPhase,
    error_from_status,
    network_error,
    normalize_error,
)
from presigned_upload.models import FileRef, InitConfig

logger = logging.getLogger(__name__)


def decode_body(response: httpx.Response) -> Any:
    """Best-effort decode of an error response body: JSON, then text, then None."""
    try:
        return response.json()
    except ValueError:
        pass
    try:
        return response.text or None
    except UnicodeDecodeError:
        return None


class DescriptorInitializer:
    """Calls the configured init endpoint and normalizes its answer.

    Args:
        config: Init endpoint settings (URL, method, headers, payload
            builder, response mapper).
        client: Shared ``httpx.AsyncClient``.
    """

    def __init__(self, config: InitConfig, client: httpx.AsyncClient) -> None:
        self._config = config
        self._client = client

    async def initialize(
        self, file: FileRef, token: CancelToken | None = None
    ) -> PutDescriptor | PostDescriptor:
        """Issue one init request for *file*.

        Raises:
            UploadError: ``init``-phase error for non-2xx responses, network
                failures, unparseable bodies and mapper/validation failures.
        """
        try:
            response = await race_cancellation(
                self._send(file), token, UploadPhase.INIT
            )
        except UploadError:
            raise
        except Exception as exc:
            raise normalize_error(
                exc, UploadPhase.INIT, token, "Failed to initialize presigned upload"
            ) from exc

        if not response.is_success:
            raise error_from_status(
                UploadPhase.INIT,
                response.status_code,
                response.reason_phrase,
                decode_body(response),
            )

        try:
            raw = response.json()
        except ValueError as exc:
            raise network_error(
                UploadPhase.INIT, "Init endpoint returned a non-JSON body", detail=exc
            ) from exc

        try:
            descriptor = parse_descriptor(self._config.map_response(raw))
        except ValidationError as exc:
            raise network_error(
                UploadPhase.INIT,
                f"Init response is not a valid upload descriptor: {exc.error_count()} error(s)",
                detail=exc,
            ) from exc
        except Exception as exc:
            raise network_error(
                UploadPhase.INIT, f"map_response failed: {exc}", detail=exc
            ) from exc

        logger.debug(
            "Initialized %s descriptor for %s (key=%s)",
            descriptor.mode,
            file.name,
            descriptor.key,
        )
        return descriptor

    async def _send(self, file: FileRef) -> httpx.Response:
        config = self._config
        headers = config.resolve_headers()
        kwargs: dict[str, Any] = {"headers": headers}

        if config.build_payload is not None:
            payload = config.build_payload(file.metadata)
            if config.method == "POST":
                # httpx sets Content-Type: application/json unless the caller did
                kwargs["json"] = payload
            elif isinstance(payload, Mapping):
                kwargs["params"] = dict(payload)

        logger.debug("Init request %s %s for %s", config.method, config.url, file.name)
        return await self._client.request(config.method, config.url, **kwargs)

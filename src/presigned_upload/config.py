"""Configuration loading and credential lookup."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import keyring

from presigned_upload.models import InitConfig, RetryPolicy, UploaderConfig

SERVICE_NAME = "presigned-upload"
KEY_NAME = "init_token"
TOKEN_ENV_VAR = "PRESIGNED_UPLOAD_TOKEN"


def stored_init_token() -> str | None:
    """Token saved in the system keyring, if any."""
    return keyring.get_password(SERVICE_NAME, KEY_NAME) or None


def store_init_token(token: str) -> str:
    """Save *token* (whitespace-stripped) to the keyring and return it.

    Raises:
        ValueError: If the token is blank.
        keyring.errors.KeyringError: If no usable keyring backend exists.
    """
    token = token.strip()
    if not token:
        raise ValueError("Token cannot be empty")
    keyring.set_password(SERVICE_NAME, KEY_NAME, token)
    return token


def delete_init_token() -> bool:
    """Remove the saved token. Returns False when nothing was stored."""
    if stored_init_token() is None:
        return False
    keyring.delete_password(SERVICE_NAME, KEY_NAME)
    return True


def init_token_source() -> tuple[str | None, str | None]:
    """``(token, source)`` where source is ``"keyring"`` or ``"env"``."""
    token = stored_init_token()
    if token:
        return token, "keyring"
    token = os.environ.get(TOKEN_ENV_VAR) or None
    return token, "env" if token else None


def optional_init_token() -> str | None:
    """Bearer token for the init endpoint: system keyring first, then env var."""
    return init_token_source()[0]


def mask_token(token: str) -> str:
    """Hide all but the last four characters; short tokens are hidden entirely."""
    if len(token) <= 8:
        return "*" * len(token)
    return "*" * (len(token) - 4) + token[-4:]


def get_init_token() -> str:
    """Like :func:`optional_init_token` but required.

    Raises:
        RuntimeError: If no token found anywhere, with actionable instructions.
    """
    token = optional_init_token()
    if token:
        return token

    raise RuntimeError(
        "Init endpoint token not found.\n"
        "Set it with: presigned-upload config set-token YOUR_TOKEN\n"
        f"Or: export {TOKEN_ENV_VAR}=your-token"
    )


def bearer_headers(token: str | None) -> dict[str, str]:
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}


def load_config(config_path: Path, **overrides: Any) -> UploaderConfig:
    """Load uploader configuration from JSON, merging with defaults.

    Recognised keys: ``init_url`` (required unless passed in *overrides*),
    ``init_method``, ``init_headers``, ``retry`` (``retries``, ``backoff``,
    ``min_delay_ms``, ``max_delay_ms``, ``reinit_on_auth_error``),
    ``transport``, ``progress_interval_ms``, ``chunk_size``.

    Args:
        config_path: Path to the JSON file.
        **overrides: Top-level keys that win over the file (``None`` values
            are ignored, so CLI options can be passed through unchanged).

    Returns:
        UploaderConfig with values from file merged over defaults.

    Raises:
        ValueError: If ``init_url`` is missing or a value is invalid.
    """
    with open(config_path) as f:
        data = json.load(f)

    return config_from_dict(data, **overrides)


def config_from_dict(data: dict[str, Any], **overrides: Any) -> UploaderConfig:
    """Build an :class:`UploaderConfig` from plain data (see :func:`load_config`)."""
    merged = dict(data)
    retry_data = dict(merged.get("retry") or {})
    for key, value in overrides.items():
        if value is None:
            continue
        if key in RetryPolicy.__dataclass_fields__:
            retry_data[key] = value
        else:
            merged[key] = value

    if not merged.get("init_url"):
        raise ValueError("init_url is required")

    init = InitConfig(
        url=merged["init_url"],
        method=merged.get("init_method", "POST"),
        headers=merged.get("init_headers"),
    )

    kwargs: dict[str, Any] = {}
    if "transport" in merged:
        kwargs["transport"] = merged["transport"]
    if "progress_interval_ms" in merged:
        kwargs["progress_interval_ms"] = int(merged["progress_interval_ms"])
    if "chunk_size" in merged:
        kwargs["chunk_size"] = int(merged["chunk_size"])

    return UploaderConfig(init=init, retry=RetryPolicy(**retry_data), **kwargs)

"""Presigned upload descriptors.

A descriptor is the backend-issued, time-limited authorization for one
direct client-to-store transfer. It comes in exactly two shapes, told apart
by the ``mode`` discriminant:

* ``put``  -- a presigned URL; the file is the raw request body.
* ``post`` -- a presigned POST policy; ``fields`` go into a multipart form
  ahead of the file part.

Backends usually answer in camelCase, so both snake_case names and the
camelCase aliases are accepted on input.
"""

from __future__ import annotations

import time
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter

DEFAULT_FILE_FIELD = "file"


class _DescriptorBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    upload_url: str = Field(
        min_length=1, validation_alias=AliasChoices("upload_url", "uploadUrl", "url")
    )
    key: str = Field(min_length=1)
    expires_at: int | None = Field(
        default=None, validation_alias=AliasChoices("expires_at", "expiresAt")
    )

    def is_expired(self, now_ms: int | None = None) -> bool:
        """True when ``expires_at`` (epoch milliseconds) lies in the past."""
        if self.expires_at is None:
            return False
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return now_ms >= self.expires_at


class PutDescriptor(_DescriptorBase):
    """Presigned PUT URL plus headers that must accompany the transfer."""

    mode: Literal["put"] = "put"
    headers: dict[str, str] = Field(default_factory=dict)


class PostDescriptor(_DescriptorBase):
    """Presigned POST policy.

    The store requires every entry of ``fields`` to precede the file part in
    the multipart body.
    """

    mode: Literal["post"] = "post"
    fields: dict[str, str]
    file_field_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "file_field_name", "postFileFieldName", "fileFieldName"
        ),
    )

    @property
    def file_field(self) -> str:
        return self.file_field_name or DEFAULT_FILE_FIELD


UploadDescriptor = Annotated[
    Union[PutDescriptor, PostDescriptor], Field(discriminator="mode")
]

_descriptor_adapter: TypeAdapter[PutDescriptor | PostDescriptor] = TypeAdapter(
    UploadDescriptor
)


def parse_descriptor(value: Any) -> PutDescriptor | PostDescriptor:
    """Validate *value* into a descriptor.

    Args:
        value: A descriptor instance or a mapping carrying a ``mode`` key.

    Returns:
        The validated descriptor.

    Raises:
        pydantic.ValidationError: If required fields for the declared
            variant are missing or malformed, or ``mode`` is unknown.
    """
    if isinstance(value, (PutDescriptor, PostDescriptor)):
        return value
    return _descriptor_adapter.validate_python(value)


def default_map_response(raw: Any) -> Any:
    """Identity mapping for backends that already answer in descriptor shape."""
    return raw

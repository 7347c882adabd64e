"""Hand-built ``multipart/form-data`` framing for streamed POST uploads.

Building the body ourselves gives an exact ``Content-Length`` up front and
lets the file part be streamed chunk by chunk. Policy fields are always
written before the file part; the store rejects the form otherwise.
"""

from __future__ import annotations

import secrets
from collections.abc import Mapping
from dataclasses import dataclass

from presigned_upload.models import FileRef

CRLF = b"\r\n"


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', "%22").replace("\r", "%0D").replace("\n", "%0A")


@dataclass(frozen=True)
class PostForm:
    """Framing around the file payload of a multipart POST body."""

    boundary: str
    preamble: bytes
    epilogue: bytes
    file_size: int

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    @property
    def content_length(self) -> int:
        return len(self.preamble) + self.file_size + len(self.epilogue)


def encode_post_form(
    fields: Mapping[str, str],
    file_field: str,
    file: FileRef,
    boundary: str | None = None,
) -> PostForm:
    """Encode *fields* followed by the header of the *file_field* part.

    Args:
        fields: Policy fields, written in iteration order.
        file_field: Form field name for the file part.
        file: File whose name and content type go into the part header.
        boundary: Fixed boundary (tests); random when omitted.
    """
    boundary = boundary or secrets.token_hex(16)
    delimiter = b"--" + boundary.encode("ascii")

    parts: list[bytes] = []
    for name, value in fields.items():
        parts += [
            delimiter,
            CRLF,
            f'Content-Disposition: form-data; name="{_quote(name)}"'.encode(),
            CRLF,
            CRLF,
            str(value).encode(),
            CRLF,
        ]
    parts += [
        delimiter,
        CRLF,
        (
            f'Content-Disposition: form-data; name="{_quote(file_field)}"; '
            f'filename="{_quote(file.name)}"'
        ).encode(),
        CRLF,
        f"Content-Type: {file.content_type}".encode(),
        CRLF,
        CRLF,
    ]
    epilogue = CRLF + delimiter + b"--" + CRLF

    return PostForm(
        boundary=boundary,
        preamble=b"".join(parts),
        epilogue=epilogue,
        file_size=file.size,
    )

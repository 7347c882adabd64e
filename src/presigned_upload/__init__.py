"""Direct-to-object-store uploads through presigned PUT URLs and POST policies."""

__version__ = "0.1.0"

from presigned_upload.cancellation import AnyCancelToken, CancelToken
from presigned_upload.descriptors import (
    PostDescriptor,
    PutDescriptor,
    UploadDescriptor,
    parse_descriptor,
)
from presigned_upload.errors import (
    ErrorKind,
    UploadError,
    UploadPhase,
    error_from_status,
    is_retryable,
    normalize_error,
    requires_reinit,
)
from presigned_upload.models import (
    BackoffStrategy,
    FileRef,
    InitConfig,
    RetryPolicy,
    SettledUpload,
    TransportKind,
    UploaderConfig,
    UploadManyResult,
    UploadProgress,
    UploadResult,
)
from presigned_upload.uploader import PresignedUploader, UploadHandle, create_uploader

__all__ = [
    "AnyCancelToken",
    "BackoffStrategy",
    "CancelToken",
    "ErrorKind",
    "FileRef",
    "InitConfig",
    "PostDescriptor",
    "PresignedUploader",
    "PutDescriptor",
    "RetryPolicy",
    "SettledUpload",
    "TransportKind",
    "UploadDescriptor",
    "UploadError",
    "UploadHandle",
    "UploadManyResult",
    "UploadPhase",
    "UploadProgress",
    "UploadResult",
    "UploaderConfig",
    "__version__",
    "create_uploader",
    "error_from_status",
    "is_retryable",
    "normalize_error",
    "parse_descriptor",
    "requires_reinit",
]

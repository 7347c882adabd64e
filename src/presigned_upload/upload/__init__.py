"""Upload orchestration core.

Public API
----------
.. autoclass:: DescriptorInitializer
.. autoclass:: StreamingTransport
.. autoclass:: PlainTransport
.. autoclass:: ProgressThrottler
.. autoclass:: UploadOrchestrator
.. autoclass:: UploadScheduler
.. autoclass:: ProgressAggregator
.. autoclass:: UploadAttemptSM
"""

from presigned_upload.upload.fsm import UploadAttemptSM
from presigned_upload.upload.initializer import DescriptorInitializer
from presigned_upload.upload.multipart import PostForm, encode_post_form
from presigned_upload.upload.orchestrator import AttemptState, UploadOrchestrator
from presigned_upload.upload.scheduler import ProgressAggregator, UploadScheduler
from presigned_upload.upload.throttle import ProgressThrottler
from presigned_upload.upload.transport import (
    PlainTransport,
    StreamingTransport,
    Transport,
    create_transport,
)

__all__ = [
    "AttemptState",
    "DescriptorInitializer",
    "PlainTransport",
    "PostForm",
    "ProgressAggregator",
    "ProgressThrottler",
    "StreamingTransport",
    "Transport",
    "UploadAttemptSM",
    "UploadOrchestrator",
    "UploadScheduler",
    "create_transport",
    "encode_post_form",
]

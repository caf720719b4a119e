"""Relay operations: post a message, upload a file.

RULES:
- No HTTP request/response types in this package (server owns those)
- Failures surface as RelayError / UploadFailedError with a cause string
"""

from slack_relay.core.relay import RelayError, post_message
from slack_relay.core.upload import (
    UploadFailedError,
    UploadOrchestrator,
    UploadPhase,
    UploadState,
)

__all__ = [
    "RelayError",
    "UploadFailedError",
    "UploadOrchestrator",
    "UploadPhase",
    "UploadState",
    "post_message",
]

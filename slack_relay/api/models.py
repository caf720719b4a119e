"""Slack Web API envelope and upload dataclasses.

WHY: Every Slack Web API JSON method answers with the same envelope
shape: {"ok": bool, "error"?: str, ...payload}. The upload flow also
passes two small values between phases (file id and pre-signed URL) and
one decoded file. Typed dataclasses keep these explicit.

HOW: UploadSlot is parsed from the files.getUploadURLExternal envelope
via from_envelope(). DecodedFile is produced by the request decoder once
the base64 payload has been turned into bytes.

RULES:
- UploadSlot.from_envelope raises ValueError on missing/non-string fields
- DecodedFile.data is always fully materialized bytes (known length)
- Neither object is cached or reused across requests
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(frozen=True)
class UploadSlot:
    """Upload slot returned by files.getUploadURLExternal.

    RULES:
    - file_id: Slack file id (e.g. "F123456"), used in the completion call
    - upload_url: pre-signed URL that accepts the raw bytes
    """

    file_id: str
    upload_url: str

    @classmethod
    def from_envelope(cls, envelope: Dict[str, Any]) -> UploadSlot:
        """Extract the slot from an ok=true envelope.

        A collaborator that reports success but omits either field is
        treated as malformed.
        """
        upload_url = envelope.get("upload_url")
        if not isinstance(upload_url, str) or not upload_url:
            raise ValueError("missing upload_url")
        file_id = envelope.get("file_id")
        if not isinstance(file_id, str) or not file_id:
            raise ValueError("missing file_id")
        return cls(file_id=file_id, upload_url=upload_url)


@dataclass(frozen=True)
class DecodedFile:
    """A file upload request after base64 decoding."""

    file_name: str
    data: bytes = field(repr=False)
    channel: str

    @property
    def length(self) -> int:
        return len(self.data)

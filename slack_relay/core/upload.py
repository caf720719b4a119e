"""Three-phase Slack external upload orchestrator.

WHY: Slack's replacement for files.upload is a three-step protocol:
reserve an upload slot, push the bytes to a pre-signed URL, then attach
the file to a channel. Any step can fail after earlier steps already had
side effects on Slack's side, so the caller needs to know exactly which
phase failed and why.

HOW: UploadOrchestrator drives one upload through the states
  init → slot_requested → content_uploaded → completed
with a terminal failed state reachable from any non-terminal one. Each
phase runs only after the previous one succeeded. Every transition is
appended to ``transitions`` and logged.

RULES:
- Phases run strictly in order; phase n+1 never starts if phase n failed
- Each phase is attempted exactly once (no retries)
- Phase 1 failure: transport error, ok=false, non-JSON, or missing
  upload_url/file_id in an ok=true envelope
- Phase 2 failure: transport error only; the upload URL's status and body
  are ignored
- Phase 3 failure: transport error or ok=false
- A slot reserved in phase 1 is never released after a later failure
- Success returns the raw files.completeUploadExternal response text
- One orchestrator instance per upload request
"""

from __future__ import annotations

import enum
import logging
from typing import List, NoReturn, Optional

import httpx

from slack_relay.api.client import (
    COMPLETE_UPLOAD,
    GET_UPLOAD_URL,
    SlackAPIError,
    SlackClient,
    parse_envelope,
)
from slack_relay.api.models import DecodedFile, UploadSlot

logger = logging.getLogger(__name__)


class UploadState(str, enum.Enum):
    """States of a single upload.

    HOW: Inherits from str so values log cleanly as JSON.
    """

    INIT = "init"
    SLOT_REQUESTED = "slot_requested"
    CONTENT_UPLOADED = "content_uploaded"
    COMPLETED = "completed"
    FAILED = "failed"


class UploadPhase(enum.IntEnum):
    """The three protocol steps, numbered as they execute."""

    REQUEST_SLOT = 1
    UPLOAD_CONTENT = 2
    COMPLETE_UPLOAD = 3


_PHASE_TARGET_STATE = {
    UploadPhase.REQUEST_SLOT: UploadState.SLOT_REQUESTED,
    UploadPhase.UPLOAD_CONTENT: UploadState.CONTENT_UPLOADED,
    UploadPhase.COMPLETE_UPLOAD: UploadState.COMPLETED,
}


class UploadFailedError(Exception):
    """Raised when any phase of the upload fails.

    WHY: The HTTP layer only needs "500, cause in the log", but the log
    and the tests need to know which phase broke.

    RULES:
    - phase is the UploadPhase that failed
    - cause is the Slack error code or transport error description
    - file_id is set when the failure happened after a slot was reserved
    """

    def __init__(
        self,
        phase: UploadPhase,
        cause: str,
        file_id: Optional[str] = None,
    ) -> None:
        self.phase = phase
        self.cause = cause
        self.file_id = file_id
        super().__init__(
            "Upload failed in phase {} ({}): {}".format(
                int(phase), phase.name.lower(), cause
            )
        )


class UploadOrchestrator:
    """Drive one file through the Slack external upload protocol.

    WHY: Keeps the phase ordering and the failure classification in one
    place, separate from HTTP request handling.

    HOW: upload() runs the three phases in sequence. _fail() moves the
    state to FAILED and raises UploadFailedError; _advance() records a
    successful phase.

    RULES:
    - Construct a new orchestrator per request (state is per upload)
    - upload() may only be called once per instance
    """

    def __init__(self, client: SlackClient) -> None:
        self._client = client
        self.state = UploadState.INIT
        self.transitions: List[UploadState] = [UploadState.INIT]
        self.failed_phase: Optional[UploadPhase] = None
        self.slot: Optional[UploadSlot] = None

    async def upload(self, decoded: DecodedFile) -> str:
        """Run all three phases and return the completion response text.

        Raises:
            UploadFailedError: at the first phase that fails.
            RuntimeError: if called on an orchestrator that already ran.
        """
        if self.state is not UploadState.INIT:
            raise RuntimeError("UploadOrchestrator instances are single-use")

        logger.info(
            "Starting file upload",
            extra={
                "file_name": decoded.file_name,
                "file_size": decoded.length,
                "channel": decoded.channel,
            },
        )

        slot = await self._request_slot(decoded)
        await self._upload_content(slot, decoded)
        response_text = await self._complete(slot, decoded)

        logger.info(
            "File successfully shared to Slack channel",
            extra={
                "file_id": slot.file_id,
                "file_name": decoded.file_name,
                "channel": decoded.channel,
            },
        )
        return response_text

    # ------------------------------------------------------------------
    # Phase 1: reserve an upload slot
    # ------------------------------------------------------------------

    async def _request_slot(self, decoded: DecodedFile) -> UploadSlot:
        phase = UploadPhase.REQUEST_SLOT
        try:
            text = await self._client.get_query(
                GET_UPLOAD_URL,
                {"filename": decoded.file_name, "length": str(decoded.length)},
            )
        except httpx.HTTPError as exc:
            self._fail(phase, repr(exc))

        try:
            slot = UploadSlot.from_envelope(parse_envelope(text, GET_UPLOAD_URL))
        except SlackAPIError as exc:
            self._fail(phase, exc.error)
        except ValueError as exc:
            self._fail(phase, str(exc))

        self.slot = slot
        self._advance(phase, file_id=slot.file_id)
        return slot

    # ------------------------------------------------------------------
    # Phase 2: push the bytes to the pre-signed URL
    # ------------------------------------------------------------------

    async def _upload_content(self, slot: UploadSlot, decoded: DecodedFile) -> None:
        phase = UploadPhase.UPLOAD_CONTENT
        try:
            await self._client.post_bytes(slot.upload_url, decoded.data)
        except httpx.HTTPError as exc:
            self._fail(phase, repr(exc), file_id=slot.file_id)
        self._advance(phase, file_id=slot.file_id)

    # ------------------------------------------------------------------
    # Phase 3: attach the uploaded file to the channel
    # ------------------------------------------------------------------

    async def _complete(self, slot: UploadSlot, decoded: DecodedFile) -> str:
        phase = UploadPhase.COMPLETE_UPLOAD
        payload = {
            "files": [{"id": slot.file_id, "title": decoded.file_name}],
            "channel_id": decoded.channel,
        }
        try:
            text = await self._client.post_json(COMPLETE_UPLOAD, payload)
        except httpx.HTTPError as exc:
            self._fail(phase, repr(exc), file_id=slot.file_id)

        try:
            parse_envelope(text, COMPLETE_UPLOAD)
        except SlackAPIError as exc:
            self._fail(phase, exc.error, file_id=slot.file_id)

        self._advance(phase, file_id=slot.file_id)
        return text

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    def _advance(self, phase: UploadPhase, file_id: Optional[str] = None) -> None:
        self.state = _PHASE_TARGET_STATE[phase]
        self.transitions.append(self.state)
        logger.debug(
            "Upload phase completed",
            extra={"phase": int(phase), "state": self.state.value, "file_id": file_id},
        )

    def _fail(
        self,
        phase: UploadPhase,
        cause: str,
        file_id: Optional[str] = None,
    ) -> NoReturn:
        self.state = UploadState.FAILED
        self.failed_phase = phase
        self.transitions.append(UploadState.FAILED)
        logger.error(
            "Upload phase failed",
            extra={
                "phase": int(phase),
                "state": self.state.value,
                "file_id": file_id,
                "error": cause,
            },
        )
        raise UploadFailedError(phase, cause, file_id=file_id)

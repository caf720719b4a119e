"""Inbound request decoding: JSON shape errors and base64 payloads.

WHY: A malformed body must become a 400 before any Slack call is made,
so no partial side effect can ever be caused by bad input.

HOW: FastAPI parses the JSON body into the pydantic request models; when
that fails, handle_validation_error() answers 400 with a readable detail
instead of the framework's default 422. decode_file_request() then turns
the base64 payload into bytes for the upload orchestrator.

RULES:
- Base64 is the standard alphabet with padding; anything else is rejected
- The base64 failure detail is exactly "Failed to decode base64 file data";
  the decoder library's message is logged, never returned
- Validation detail lists each failing field as "<field>: <message>"
"""

from __future__ import annotations

import base64
import binascii
import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from slack_relay.api.models import DecodedFile
from slack_relay.server.errors import BadRequestError, problem_response
from slack_relay.server.models import FileUploadRequest

logger = logging.getLogger(__name__)

BASE64_DECODE_ERROR = "Failed to decode base64 file data"


def decode_file_request(payload: FileUploadRequest) -> DecodedFile:
    """Decode the base64 file body of an upload request.

    Raises:
        BadRequestError: if file_data_base64 is not valid base64.
    """
    try:
        data = base64.b64decode(payload.file_data_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        logger.info(
            BASE64_DECODE_ERROR,
            extra={"file_name": payload.file_name, "error": str(exc)},
        )
        raise BadRequestError(BASE64_DECODE_ERROR) from exc

    # Non-zero trailing bits in the last symbol ("aGVsbG9=") decode but are not canonical
    if base64.b64encode(data) != payload.file_data_base64.encode("ascii"):
        logger.info(
            BASE64_DECODE_ERROR,
            extra={"file_name": payload.file_name, "error": "non-canonical encoding"},
        )
        raise BadRequestError(BASE64_DECODE_ERROR)

    return DecodedFile(
        file_name=payload.file_name,
        data=data,
        channel=payload.channel,
    )


def describe_validation_error(exc: RequestValidationError) -> str:
    """Render a validation failure as one human-readable line."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        msg = err.get("msg", "Invalid value")
        ctx_error = (err.get("ctx") or {}).get("error")
        if err.get("type") == "json_invalid" and ctx_error:
            msg = "{} ({})".format(msg, ctx_error)
            loc = ""
        parts.append("{}: {}".format(loc, msg) if loc else msg)
    return "; ".join(parts) or "Invalid request body"


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Serve body validation failures as 400 problem details."""
    detail = describe_validation_error(exc)
    logger.info(
        "Request body rejected",
        extra={"path": request.url.path, "status": 400, "detail": detail},
    )
    return problem_response(BadRequestError.status_code, detail)

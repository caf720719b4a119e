"""Per-request error taxonomy and problem-details responses.

WHY: Clients should see exactly one error shape no matter where a request
failed: a malformed body, bad base64, or Slack rejecting the call. RFC
7807 problem details ({type, title, status, detail} served as
application/problem+json) is that shape.

HOW: Handlers raise BadRequestError or InternalServerError (both ApiError
subclasses). register_exception_handlers() installs the FastAPI handler that
turns them into problem responses via problem_response().

RULES:
- BadRequestError: 400, detail shown to the client as given
- InternalServerError: 500, detail is always "Internal Server Error";
  the real cause only goes to the log
- type is always "about:blank"; title is the HTTP reason phrase
"""

from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

PROBLEM_JSON = "application/problem+json"
UNKNOWN_REASON = "Unknown Error"


class ApiError(Exception):
    """Base class for errors that map directly to an HTTP status."""

    status_code = 500

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class BadRequestError(ApiError):
    """Client sent something we cannot decode. Never reaches Slack."""

    status_code = 400


class InternalServerError(ApiError):
    """Slack or the network failed while serving a valid request.

    ``cause`` is logged; the client only sees the generic reason phrase.
    """

    status_code = 500

    def __init__(self, cause: str) -> None:
        self.cause = cause
        super().__init__(reason_phrase(500))


def reason_phrase(status_code: int) -> str:
    """Canonical HTTP reason phrase, or "Unknown Error" for odd codes."""
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return UNKNOWN_REASON


def problem_response(status_code: int, detail: str) -> JSONResponse:
    """Build an application/problem+json response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "type": "about:blank",
            "title": reason_phrase(status_code),
            "status": status_code,
            "detail": detail,
        },
        media_type=PROBLEM_JSON,
    )


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


async def _handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    if isinstance(exc, InternalServerError):
        logger.error(
            "Request failed",
            extra={"path": request.url.path, "error": exc.cause},
        )
    else:
        logger.info(
            "Request rejected",
            extra={"path": request.url.path, "status": exc.status_code, "detail": exc.detail},
        )
    return problem_response(exc.status_code, exc.detail)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the ApiError handler on ``app``."""
    app.add_exception_handler(ApiError, _handle_api_error)

"""Request tracing and problem-details normalization stages.

WHY: Every request needs a correlation id, an entry log line, and an exit
log line with status and latency, whatever the handler did. Every 4xx/5xx
response needs the same problem-details body, including the ones the
framework itself produces (404 unknown route, 405 wrong method).

HOW: Two plain ``async def stage(request, call_next)`` functions. They
are registered with ``app.middleware("http")`` in create_app(), tracing
outermost, so tracing sees the final, normalized status. Because they are
ordinary coroutines they can be tested with any fake ``call_next``.

RULES:
- Request id header is x-request-id; an inbound non-empty value is reused
- The resolved id is written back into the request headers before dispatch
  and bound to the logging context for the duration of the request
- Tracing never alters the response body and never fails the request;
  header-write errors are logged and swallowed
- An exception escaping the handler becomes a 500 problem response
- Responses already typed application/problem+json pass through untouched
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from fastapi import Request, Response
from starlette.datastructures import MutableHeaders

from slack_relay.observability import generate_request_id, reset_request_id, set_request_id
from slack_relay.server.errors import PROBLEM_JSON, problem_response, reason_phrase

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"

CallNext = Callable[[Request], Awaitable[Response]]

_LEVEL_BY_OUTCOME = {
    "success": logging.INFO,
    "redirect": logging.INFO,
    "client_error": logging.WARNING,
    "server_error": logging.ERROR,
    "other": logging.WARNING,
}

_MESSAGE_BY_OUTCOME = {
    "success": "Request completed",
    "redirect": "Request redirected",
    "client_error": "Client error",
    "server_error": "Server error",
    "other": "Unexpected status",
}


@dataclass(frozen=True)
class RequestContext:
    """Per-request tracing state, stored on ``request.state.context``."""

    request_id: str
    start_time: float


def classify_status(status_code: int) -> str:
    """Map an HTTP status to success/redirect/client_error/server_error/other."""
    if 200 <= status_code < 300:
        return "success"
    if 300 <= status_code < 400:
        return "redirect"
    if 400 <= status_code < 500:
        return "client_error"
    if 500 <= status_code < 600:
        return "server_error"
    return "other"


# ---------------------------------------------------------------------------
# Stage 1 (outermost): request tracing
# ---------------------------------------------------------------------------


async def trace_requests(request: Request, call_next: CallNext) -> Response:
    """Assign a request id, log entry and exit, echo the id on the response."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
    method = request.method
    path = request.url.path

    logger.info(
        "Incoming request",
        extra={
            "request_id": request_id,
            "method": method,
            "path": path,
            "query": request.url.query or None,
            "version": request.scope.get("http_version"),
            "user_agent": request.headers.get("user-agent"),
            "client_ip": _client_ip(request),
            "content_length": _content_length(request),
        },
    )

    try:
        MutableHeaders(scope=request.scope)[REQUEST_ID_HEADER] = request_id
    except (UnicodeEncodeError, ValueError):
        logger.warning("Could not set request id header on request", exc_info=True)

    token = set_request_id(request_id)
    try:
        context = RequestContext(request_id=request_id, start_time=time.monotonic())
        request.state.context = context

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled error while processing request",
                extra={"method": method, "path": path},
            )
            response = problem_response(500, reason_phrase(500))

        latency_ms = int((time.monotonic() - context.start_time) * 1000)
        outcome = classify_status(response.status_code)
        logger.log(
            _LEVEL_BY_OUTCOME[outcome],
            _MESSAGE_BY_OUTCOME[outcome],
            extra={
                "method": method,
                "path": path,
                "status": response.status_code,
                "latency_ms": latency_ms,
                "outcome": outcome,
            },
        )

        try:
            response.headers[REQUEST_ID_HEADER] = request_id
        except (UnicodeEncodeError, ValueError):
            logger.warning("Could not set request id header on response", exc_info=True)
        return response
    finally:
        reset_request_id(token)


def _client_ip(request: Request) -> str:
    return (
        request.headers.get("x-forwarded-for")
        or request.headers.get("x-real-ip")
        or "unknown"
    )


def _content_length(request: Request) -> Optional[int]:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Stage 2: problem-details normalization
# ---------------------------------------------------------------------------


async def normalize_problem_details(request: Request, call_next: CallNext) -> Response:
    """Give every 4xx/5xx response the problem-details body.

    Handlers that already answer with application/problem+json (the
    ApiError handlers) win; everything else gets a generic body built
    from the status code's reason phrase.
    """
    response = await call_next(request)
    status_code = response.status_code
    if not 400 <= status_code < 600:
        return response

    content_type = response.headers.get("content-type", "")
    if content_type.startswith(PROBLEM_JSON):
        return response

    body_iterator = getattr(response, "body_iterator", None)
    if body_iterator is not None:
        async for _ in body_iterator:
            pass

    replacement = problem_response(status_code, reason_phrase(status_code))
    replacement.raw_headers.extend(
        (key, value)
        for key, value in response.raw_headers
        if key not in (b"content-type", b"content-length")
    )
    return replacement

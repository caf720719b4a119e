"""Unit tests for the tracing and problem-details middleware stages.

WHY: Both stages wrap every request. They are plain coroutines, so they
can be exercised without an app by handing them a hand-built Starlette
Request and a fake ``call_next``.

HOW: _make_request() builds an ASGI scope; fake call_next coroutines
return canned responses or raise. caplog captures the structured log
records so levels and extra fields can be asserted.

RULES:
- The downstream view of headers is read via Request(request.scope),
  exactly how the routed handler sees them
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Dict, Optional

import pytest
from fastapi import Request, Response
from fastapi.responses import JSONResponse

from slack_relay.observability import get_request_id
from slack_relay.server.errors import PROBLEM_JSON, problem_response
from slack_relay.server.middleware import (
    REQUEST_ID_HEADER,
    RequestContext,
    classify_status,
    normalize_problem_details,
    trace_requests,
)


def _make_request(
    headers: Optional[Dict[str, str]] = None,
    method: str = "POST",
    path: str = "/slack/message",
    query: bytes = b"",
) -> Request:
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": query,
        "headers": [
            (k.lower().encode("latin-1"), v.encode("latin-1"))
            for k, v in (headers or {}).items()
        ],
        "server": ("testserver", 80),
        "client": ("127.0.0.1", 50000),
    }
    return Request(scope)


def _responder(response: Response, seen: Optional[list] = None):
    async def call_next(request: Request) -> Response:
        if seen is not None:
            seen.append(request)
        return response

    return call_next


def _records(caplog, message: str):
    return [r for r in caplog.records if r.getMessage() == message]


# ---------------------------------------------------------------------------
# classify_status
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "status, outcome",
    [
        (200, "success"),
        (204, "success"),
        (301, "redirect"),
        (400, "client_error"),
        (404, "client_error"),
        (500, "server_error"),
        (503, "server_error"),
        (101, "other"),
        (600, "other"),
    ],
)
def test_classify_status(status, outcome):
    assert classify_status(status) == outcome


# ---------------------------------------------------------------------------
# trace_requests
# ---------------------------------------------------------------------------


class TestTraceRequests:

    def test_inbound_id_is_echoed(self):
        request = _make_request({"X-Request-ID": "abc-123"})
        response = asyncio.run(trace_requests(request, _responder(Response("ok"))))
        assert response.headers[REQUEST_ID_HEADER] == "abc-123"

    def test_missing_id_is_generated_uuid4(self):
        response = asyncio.run(trace_requests(_make_request(), _responder(Response("ok"))))
        value = response.headers[REQUEST_ID_HEADER]
        assert uuid.UUID(value).version == 4

    def test_empty_id_is_replaced(self):
        request = _make_request({"x-request-id": ""})
        response = asyncio.run(trace_requests(request, _responder(Response("ok"))))
        assert response.headers[REQUEST_ID_HEADER] != ""
        uuid.UUID(response.headers[REQUEST_ID_HEADER])

    def test_generated_ids_are_distinct(self):
        ids = {
            asyncio.run(
                trace_requests(_make_request(), _responder(Response("ok")))
            ).headers[REQUEST_ID_HEADER]
            for _ in range(5)
        }
        assert len(ids) == 5

    def test_id_injected_into_request_headers(self):
        seen = []
        response = asyncio.run(
            trace_requests(_make_request(), _responder(Response("ok"), seen))
        )
        downstream = Request(seen[0].scope)
        assert downstream.headers[REQUEST_ID_HEADER] == response.headers[REQUEST_ID_HEADER]

    def test_id_bound_to_logging_context_during_call(self):
        captured = []

        async def call_next(request):
            captured.append(get_request_id())
            return Response("ok")

        asyncio.run(trace_requests(_make_request({"x-request-id": "ctx-1"}), call_next))
        assert captured == ["ctx-1"]

    def test_context_stored_on_request_state(self):
        seen = []
        request = _make_request({"x-request-id": "ctx-2"})
        asyncio.run(trace_requests(request, _responder(Response("ok"), seen)))
        context = seen[0].state.context
        assert isinstance(context, RequestContext)
        assert context.request_id == "ctx-2"

    def test_body_is_untouched(self):
        original = Response(b"raw-bytes", status_code=201, media_type="text/plain")
        response = asyncio.run(trace_requests(_make_request(), _responder(original)))
        assert response is original
        assert response.body == b"raw-bytes"
        assert response.status_code == 201

    def test_exception_becomes_problem_500(self, caplog):
        async def call_next(request):
            raise RuntimeError("boom")

        with caplog.at_level(logging.INFO, logger="slack_relay"):
            response = asyncio.run(trace_requests(_make_request(), call_next))

        assert response.status_code == 500
        assert response.headers["content-type"] == PROBLEM_JSON
        assert json.loads(response.body)["detail"] == "Internal Server Error"
        assert REQUEST_ID_HEADER in response.headers
        assert _records(caplog, "Server error")

    def test_entry_log_fields(self, caplog):
        request = _make_request(
            {
                "x-request-id": "log-1",
                "user-agent": "pytest",
                "x-real-ip": "10.0.0.2",
                "content-length": "17",
            },
            query=b"a=1",
        )
        with caplog.at_level(logging.INFO, logger="slack_relay"):
            asyncio.run(trace_requests(request, _responder(Response("ok"))))

        (record,) = _records(caplog, "Incoming request")
        assert record.levelno == logging.INFO
        assert record.request_id == "log-1"
        assert record.method == "POST"
        assert record.path == "/slack/message"
        assert record.query == "a=1"
        assert record.version == "1.1"
        assert record.user_agent == "pytest"
        assert record.client_ip == "10.0.0.2"
        assert record.content_length == 17

    def test_forwarded_for_preferred_over_real_ip(self, caplog):
        request = _make_request({"x-forwarded-for": "1.2.3.4", "x-real-ip": "10.0.0.2"})
        with caplog.at_level(logging.INFO, logger="slack_relay"):
            asyncio.run(trace_requests(request, _responder(Response("ok"))))
        (record,) = _records(caplog, "Incoming request")
        assert record.client_ip == "1.2.3.4"

    def test_unknown_client_ip_and_bad_content_length(self, caplog):
        request = _make_request({"content-length": "lots"})
        with caplog.at_level(logging.INFO, logger="slack_relay"):
            asyncio.run(trace_requests(request, _responder(Response("ok"))))
        (record,) = _records(caplog, "Incoming request")
        assert record.client_ip == "unknown"
        assert record.content_length is None

    @pytest.mark.parametrize(
        "status, message, level",
        [
            (200, "Request completed", logging.INFO),
            (302, "Request redirected", logging.INFO),
            (404, "Client error", logging.WARNING),
            (502, "Server error", logging.ERROR),
        ],
    )
    def test_exit_log_level_follows_status(self, caplog, status, message, level):
        with caplog.at_level(logging.INFO, logger="slack_relay"):
            asyncio.run(
                trace_requests(_make_request(), _responder(Response(status_code=status)))
            )
        (record,) = _records(caplog, message)
        assert record.levelno == level
        assert record.status == status
        assert record.latency_ms >= 0


# ---------------------------------------------------------------------------
# normalize_problem_details
# ---------------------------------------------------------------------------


class TestNormalizeProblemDetails:

    def test_success_passes_through(self):
        original = JSONResponse({"ok": True})
        result = asyncio.run(normalize_problem_details(_make_request(), _responder(original)))
        assert result is original

    def test_plain_error_is_replaced(self):
        original = JSONResponse({"detail": "Not Found"}, status_code=404)
        result = asyncio.run(normalize_problem_details(_make_request(), _responder(original)))
        assert result.status_code == 404
        assert result.headers["content-type"] == PROBLEM_JSON
        assert json.loads(result.body) == {
            "type": "about:blank",
            "title": "Not Found",
            "status": 404,
            "detail": "Not Found",
        }

    def test_server_error_is_replaced(self):
        original = Response("oops", status_code=503, media_type="text/plain")
        result = asyncio.run(normalize_problem_details(_make_request(), _responder(original)))
        body = json.loads(result.body)
        assert body["title"] == "Service Unavailable"
        assert body["status"] == 503

    def test_existing_problem_body_is_untouched(self):
        original = problem_response(400, "Failed to decode base64 file data")
        before = bytes(original.body)
        result = asyncio.run(normalize_problem_details(_make_request(), _responder(original)))
        assert result is original
        assert result.body == before

    def test_problem_content_type_with_charset_passes(self):
        original = Response(
            b'{"custom": true}',
            status_code=422,
            headers={"content-type": "application/problem+json; charset=utf-8"},
        )
        result = asyncio.run(normalize_problem_details(_make_request(), _responder(original)))
        assert result is original
        assert result.body == b'{"custom": true}'

    def test_non_body_headers_are_kept(self):
        original = JSONResponse(
            {"detail": "Method Not Allowed"},
            status_code=405,
            headers={"allow": "POST"},
        )
        result = asyncio.run(normalize_problem_details(_make_request(), _responder(original)))
        assert result.headers["allow"] == "POST"
        assert result.headers["content-type"] == PROBLEM_JSON
        assert int(result.headers["content-length"]) == len(result.body)

    def test_unknown_status_code(self):
        original = Response(status_code=499)
        result = asyncio.run(normalize_problem_details(_make_request(), _responder(original)))
        body = json.loads(result.body)
        assert body["title"] == "Unknown Error"
        assert body["detail"] == "Unknown Error"
        assert body["status"] == 499

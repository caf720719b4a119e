"""Async HTTP client for the Slack Web API.

WHY: The relay and the upload orchestrator both talk to Slack: JSON POST
for chat.postMessage and files.completeUploadExternal, a query-string GET
for files.getUploadURLExternal, and a raw-byte POST to the pre-signed
upload URL. This module hides httpx details behind one small class so the
callers only deal with method names, payloads, and envelope errors.

HOW: SlackClient wraps a single httpx.AsyncClient with Bearer auth. The
same instance is shared by all concurrent requests; it keeps no per-call
state. Each helper performs exactly one outbound request and returns the
raw response text; parse_envelope() turns that text into a dict and
raises SlackAPIError when Slack says ok=false.

RULES:
- One call = one outbound request, no retries
- URL = settings.slack_api_base_url + "/" + method name
- Bearer token on every Slack API call, never on the pre-signed upload URL
- Timeout comes from settings.request_timeout_s (None = no timeout)
- Transport failures propagate as httpx.HTTPError
- post_bytes() never inspects the response status or body
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from slack_relay import __version__
from slack_relay.config import Settings
from slack_relay.observability import get_request_id

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Slack Web API method names
# ---------------------------------------------------------------------------

POST_MESSAGE = "chat.postMessage"
GET_UPLOAD_URL = "files.getUploadURLExternal"
COMPLETE_UPLOAD = "files.completeUploadExternal"

_REQUEST_ID_HEADER = "x-request-id"
_UNKNOWN_ERROR = "unknown_error"


class SlackAPIError(Exception):
    """Raised when Slack answers with ok=false or an unusable envelope.

    WHY: Callers need to tell a protocol-level rejection (invalid_auth,
    channel_not_found, ...) apart from a network failure.

    HOW: Carries the envelope's ``error`` field (or a description of why
    the envelope could not be read) as ``error``.

    RULES:
    - error is never empty; "unknown_error" when Slack omitted it
    """

    def __init__(self, error: str, method: Optional[str] = None) -> None:
        self.error = error or _UNKNOWN_ERROR
        self.method = method
        if method:
            super().__init__("Slack API {} failed: {}".format(method, self.error))
        else:
            super().__init__("Slack API failed: {}".format(self.error))


class SlackClient:
    """Thin async client for the Slack Web API.

    WHY: Centralizes auth, base URL handling, timeouts, and request-id
    propagation for every outbound call.

    HOW: Owns one httpx.AsyncClient. Use ``async with SlackClient(...)``
    for standalone scripts, or create it once and call aclose() at
    shutdown (what the FastAPI app does).

    RULES:
    - transport is for tests (httpx.MockTransport); production uses the
      default connection pool
    - The client is safe to share across concurrent requests
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = settings.slack_api_base_url
        self._client = httpx.AsyncClient(
            headers={"User-Agent": "slack-relay/{}".format(__version__)},
            timeout=httpx.Timeout(settings.request_timeout_s),
            transport=transport,
        )
        self._auth = {"Authorization": "Bearer {}".format(settings.slack_bot_token)}

    async def __aenter__(self) -> SlackClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def method_url(self, method: str) -> str:
        return "{}/{}".format(self._base_url, method)

    # ------------------------------------------------------------------
    # Outbound calls
    # ------------------------------------------------------------------

    async def post_json(self, method: str, payload: Mapping[str, Any]) -> str:
        """POST a JSON body to a Slack method and return the response text."""
        logger.debug("Calling Slack API", extra={"api_endpoint": method})
        resp = await self._client.post(
            self.method_url(method),
            json=dict(payload),
            headers=self._headers(),
        )
        return resp.text

    async def get_query(self, method: str, params: Mapping[str, str]) -> str:
        """GET a Slack method with query parameters and return the response text."""
        logger.debug("Calling Slack API", extra={"api_endpoint": method})
        resp = await self._client.get(
            self.method_url(method),
            params=dict(params),
            headers=self._headers(),
        )
        return resp.text

    async def post_bytes(self, url: str, data: bytes) -> None:
        """POST raw bytes to an absolute URL (the pre-signed upload URL).

        Only transport success is observed: the status code and body of
        the upload endpoint are not part of the contract.
        """
        await self._client.post(
            url,
            content=data,
            headers={"Content-Type": "application/octet-stream"},
        )

    def _headers(self) -> Dict[str, str]:
        headers = dict(self._auth)
        request_id = get_request_id()
        if request_id:
            headers[_REQUEST_ID_HEADER] = request_id
        return headers


def parse_envelope(text: str, method: Optional[str] = None) -> Dict[str, Any]:
    """Decode a Slack envelope and enforce ok=true.

    WHY: Every Slack JSON method reports failure in-band with HTTP 200 and
    ok=false, so the HTTP status alone says nothing.

    RULES:
    - Non-JSON or non-object bodies raise SlackAPIError("invalid_response")
    - ok missing or not exactly true raises SlackAPIError(envelope["error"])
    - Returns the decoded dict on success
    """
    try:
        envelope = json.loads(text)
    except ValueError:
        raise SlackAPIError("invalid_response", method)
    if not isinstance(envelope, dict):
        raise SlackAPIError("invalid_response", method)

    if envelope.get("ok") is not True:
        error = envelope.get("error")
        raise SlackAPIError(str(error) if error else _UNKNOWN_ERROR, method)
    return envelope

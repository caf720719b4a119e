"""Message relay: post one text message to a Slack channel.

WHY: The simpler of the two operations is a single chat.postMessage call,
but it still has to classify failures the same way the upload flow does
so the HTTP layer can map them to a single 500 response.

RULES:
- Exactly one outbound call, no retries
- Success returns Slack's response text verbatim (not re-serialized)
- Transport errors and ok=false both raise RelayError
"""

from __future__ import annotations

import logging

import httpx

from slack_relay.api.client import POST_MESSAGE, SlackAPIError, SlackClient, parse_envelope

logger = logging.getLogger(__name__)


class RelayError(Exception):
    """Raised when chat.postMessage fails for any reason.

    ``cause`` is the Slack error code or the transport error text; it is
    logged but never shown to the HTTP client.
    """

    def __init__(self, cause: str) -> None:
        self.cause = cause
        super().__init__("Failed to post message to Slack: {}".format(cause))


async def post_message(client: SlackClient, channel: str, text: str) -> str:
    """Post ``text`` to ``channel`` and return the raw envelope text."""
    try:
        response_text = await client.post_json(
            POST_MESSAGE, {"channel": channel, "text": text}
        )
    except httpx.HTTPError as exc:
        logger.warning(
            "Slack API call failed",
            extra={"api_endpoint": POST_MESSAGE, "channel": channel, "error": repr(exc)},
        )
        raise RelayError(repr(exc)) from exc

    try:
        parse_envelope(response_text, POST_MESSAGE)
    except SlackAPIError as exc:
        logger.warning(
            "Slack API returned error response",
            extra={"api_endpoint": POST_MESSAGE, "channel": channel, "error": exc.error},
        )
        raise RelayError(exc.error) from exc

    logger.debug("Slack API call successful", extra={"channel": channel})
    return response_text

"""Slack Web API client package.

WHY: Both the message relay and the upload orchestrator call Slack. This
package owns the single outbound HTTP surface so no other module touches
httpx directly.

RULES:
- All HTTP calls to Slack go through SlackClient
- Authentication is via the Bearer token from Settings
"""

from slack_relay.api.client import SlackAPIError, SlackClient, parse_envelope
from slack_relay.api.models import DecodedFile, UploadSlot

__all__ = ["DecodedFile", "SlackAPIError", "SlackClient", "UploadSlot", "parse_envelope"]

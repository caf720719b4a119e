"""Slack relay — HTTP front door for posting messages and files to Slack.

WHY: Internal tools (CI jobs, cron scripts, n8n flows) need to post text
and files to Slack without each one holding the bot token or learning the
three-step external upload protocol. This package exposes two small JSON
endpoints and does the Slack Web API work on their behalf.

HOW: Three layers. api (authenticated httpx client for the Slack Web
API), core (message relay and the upload orchestrator), server (FastAPI
app with request tracing and problem-details error normalization).

RULES:
- Successful calls return Slack's raw JSON text unchanged
- Every error response is application/problem+json
- Every response carries an x-request-id header
"""

__version__ = "0.1.0"

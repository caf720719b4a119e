"""Pydantic request/response models for the HTTP API.

WHY: FastAPI uses these to validate inbound JSON bodies and to document
the endpoints in /docs. Keeping them in one module makes the public
contract easy to review.

HOW: One model per request body plus the problem-details and health
response shapes. All fields carry Field(description=...) for OpenAPI.

RULES:
- Request models accept exactly the fields the relay forwards to Slack
- No semantic validation of channel ids or message text (Slack does that)
- ProblemDetails mirrors what server.errors.problem_response() emits
- Python 3.9+ compatible (no PEP 604 unions in runtime annotations)
"""

from __future__ import annotations

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class MessageRequest(BaseModel):
    """Body of POST /slack/message."""

    channel: str = Field(description="Slack channel id (e.g. 'C123456').")
    text: str = Field(description="Message text, passed to chat.postMessage as-is.")

    model_config = {"json_schema_extra": {
        "examples": [{"channel": "C123456", "text": "hello"}]
    }}


class FileUploadRequest(BaseModel):
    """Body of POST /slack/upload_base64.

    RULES:
    - file_data_base64 uses the standard alphabet with padding
    - file_name becomes both the Slack filename and the file title
    """

    file_name: str = Field(description="File name shown in Slack.")
    file_data_base64: str = Field(description="File content, standard base64 with padding.")
    channel: str = Field(description="Slack channel id to share the file to.")

    model_config = {"json_schema_extra": {
        "examples": [
            {"file_name": "hello.txt", "file_data_base64": "aGVsbG8=", "channel": "C123456"}
        ]
    }}


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ProblemDetails(BaseModel):
    """RFC 7807 error body served as application/problem+json."""

    type: str = Field(default="about:blank", description="Problem type URI.")
    title: str = Field(description="HTTP reason phrase for the status.")
    status: int = Field(description="HTTP status code.")
    detail: str = Field(description="Human-readable explanation.")

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "type": "about:blank",
                "title": "Bad Request",
                "status": 400,
                "detail": "Failed to decode base64 file data",
            }
        ]
    }}


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="Service version string.", json_schema_extra={"example": "0.1.0"})

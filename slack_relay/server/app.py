"""FastAPI application: Slack relay routes, middleware chain, entry point.

WHY: Internal clients need a plain HTTP/JSON way to post messages and
files to Slack. FastAPI gives request validation and OpenAPI docs; the
middleware chain adds request ids, access logs, and uniform error bodies.

HOW: create_app(settings) builds a fresh app per call. Settings and the
shared SlackClient live on ``app.state`` and reach handlers through
FastAPI dependencies. Middleware order (outermost first):
trace_requests → normalize_problem_details → exception handlers → routes.

RULES:
- No module-level app or settings; tests build their own app
- Success bodies are Slack's raw response text, JSON-encoded as a string
- Relay and upload failures become 500 problem details (generic detail)
- Decoding happens before any Slack call
- No request-body size limit is enforced here
- The shared SlackClient is closed on shutdown
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Annotated, Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError

from slack_relay import __version__
from slack_relay.api.client import SlackClient
from slack_relay.config import ConfigurationError, Settings, load_settings
from slack_relay.core.relay import RelayError, post_message
from slack_relay.core.upload import UploadFailedError, UploadOrchestrator
from slack_relay.observability import configure_logging
from slack_relay.server.decoder import decode_file_request, handle_validation_error
from slack_relay.server.errors import InternalServerError, register_exception_handlers
from slack_relay.server.middleware import normalize_problem_details, trace_requests
from slack_relay.server.models import (
    FileUploadRequest,
    HealthResponse,
    MessageRequest,
    ProblemDetails,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "slack-relay"

_ERROR_RESPONSES = {
    400: {"model": ProblemDetails, "description": "Malformed request body"},
    500: {"model": ProblemDetails, "description": "Slack rejected the call or was unreachable"},
}

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_slack_client(request: Request) -> SlackClient:
    return request.app.state.slack_client


SlackClientDep = Annotated[SlackClient, Depends(get_slack_client)]


# ---------------------------------------------------------------------------
# Endpoints: Slack
# ---------------------------------------------------------------------------


@router.post(
    "/slack/message",
    response_model=str,
    tags=["slack"],
    summary="Post a text message",
    description=(
        "Posts the text to the channel via chat.postMessage. On success the "
        "body is Slack's raw JSON response, encoded as a JSON string."
    ),
    responses=_ERROR_RESPONSES,
)
async def post_slack_message(payload: MessageRequest, client: SlackClientDep) -> str:
    logger.info(
        "Received a message to post to Slack",
        extra={"channel": payload.channel, "text_length": len(payload.text)},
    )
    try:
        return await post_message(client, payload.channel, payload.text)
    except RelayError as exc:
        raise InternalServerError(exc.cause) from exc


@router.post(
    "/slack/upload_base64",
    response_model=str,
    tags=["slack"],
    summary="Upload a base64-encoded file",
    description=(
        "Decodes the file and shares it to the channel using Slack's "
        "three-step external upload (files.getUploadURLExternal, upload, "
        "files.completeUploadExternal). On success the body is the raw "
        "completion response, encoded as a JSON string."
    ),
    responses=_ERROR_RESPONSES,
)
async def upload_slack_file(payload: FileUploadRequest, client: SlackClientDep) -> str:
    logger.info(
        "Received a file to upload to Slack",
        extra={"file_name": payload.file_name, "channel": payload.channel},
    )
    decoded = decode_file_request(payload)

    orchestrator = UploadOrchestrator(client)
    try:
        return await orchestrator.upload(decoded)
    except UploadFailedError as exc:
        raise InternalServerError(
            "phase {}: {}".format(int(exc.phase), exc.cause)
        ) from exc


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness check for load balancers and orchestrators.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close the shared Slack client on shutdown."""
    yield
    await app.state.slack_client.aclose()
    logger.info("Server shutdown complete")


def create_app(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the relay application.

    WHY: Explicit construction keeps settings out of module globals and
    lets tests point the Slack client at an httpx.MockTransport.

    RULES:
    - ``transport`` is only for tests; None uses real network I/O
    - Stages registered last run outermost
    """
    app = FastAPI(
        lifespan=lifespan,
        title="Slack Relay API",
        description=(
            "Relays text messages and base64-encoded files to the Slack Web "
            "API. Every response carries an x-request-id header; every error "
            "is application/problem+json."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.slack_client = SlackClient(settings, transport=transport)

    register_exception_handlers(app)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.include_router(router)

    app.middleware("http")(normalize_problem_details)
    app.middleware("http")(trace_requests)

    return app


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_api() -> None:
    """Entry point for the slack-relay console script.

    RULES:
    - Exits with status 1 when settings cannot be loaded
    - uvicorn handles SIGINT/SIGTERM with a graceful shutdown
    - uvicorn's own logging config is disabled so all output is JSONL
    """
    import uvicorn

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        configure_logging()
        logger.error(
            "Failed to load settings",
            extra={"error": str(exc), "config_loaded": False},
        )
        sys.exit(1)

    configure_logging(settings.log_level)
    logger.info(
        "Starting application",
        extra={"service": SERVICE_NAME, "version": __version__, "config_loaded": True},
    )

    app = create_app(settings)

    logger.info(
        "Starting HTTP server",
        extra={"addr": "{}:{}".format(settings.host, settings.port), "port": settings.port},
    )
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        access_log=False,
    )

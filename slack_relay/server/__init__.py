"""HTTP surface: FastAPI app, middleware stages, request decoding, errors."""

from slack_relay.server.app import create_app, run_api

__all__ = ["create_app", "run_api"]

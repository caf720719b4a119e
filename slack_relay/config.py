"""Settings, environment defaults, and .env loading.

WHY: The relay needs exactly one secret (the Slack bot token) and a few
knobs (API base URL, outbound timeout, bind address, log level). Loading
them once at startup into an immutable object keeps handlers free of
ambient global state and lets tests build settings directly.

HOW: python-dotenv loads the .env file on import. load_settings() reads
the process environment (or an explicit mapping) and returns a frozen
Settings dataclass that create_app() threads through application state.

RULES:
- SLACK_BOT_TOKEN is required; missing or empty raises ConfigurationError
- SLACK_API_BASE_URL defaults to https://slack.com/api, trailing "/" stripped
- SLACK_HTTP_TIMEOUT_S unset or empty means no timeout on outbound calls
- Settings are never mutated after load_settings() returns
- The token is never included in repr() or logs
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

from slack_relay.observability import VALID_LOG_LEVELS

# Load .env from the working directory (where the service is started)
load_dotenv()

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_SLACK_API_BASE_URL = "https://slack.com/api"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_LOG_LEVEL = "INFO"


class ConfigurationError(ValueError):
    """Raised when required settings are missing or malformed.

    WHY: Startup must abort with a clear message instead of serving
    requests that can only fail downstream.

    RULES:
    - Message names the offending environment variable
    - Only raised at startup, never per request
    """


@dataclass(frozen=True)
class Settings:
    """Immutable process-wide configuration.

    WHY: Every request handler needs the token and base URL, but nothing
    may change them while the server runs.

    RULES:
    - request_timeout_s=None disables outbound timeouts entirely
    - slack_api_base_url never ends with "/"
    """

    slack_bot_token: str = field(repr=False)
    slack_api_base_url: str = DEFAULT_SLACK_API_BASE_URL
    request_timeout_s: Optional[float] = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "slack_api_base_url", self.slack_api_base_url.rstrip("/")
        )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables.

    WHY: Keeps the secret out of source code and lets deployments change
    the downstream URL (e.g. a mock Slack server in integration tests).

    HOW: Reads from ``environ`` (defaults to os.environ, populated by
    python-dotenv) and validates each value.

    RULES:
    - Raises ConfigurationError if SLACK_BOT_TOKEN is missing or blank
    - Raises ConfigurationError if a numeric variable or LOG_LEVEL is invalid
    - Never returns a default/placeholder token
    """
    env = os.environ if environ is None else environ

    token = env.get("SLACK_BOT_TOKEN", "").strip()
    if not token:
        raise ConfigurationError("Missing environment variable SLACK_BOT_TOKEN")

    base_url = env.get("SLACK_API_BASE_URL", "").strip() or DEFAULT_SLACK_API_BASE_URL

    return Settings(
        slack_bot_token=token,
        slack_api_base_url=base_url,
        request_timeout_s=_parse_timeout(env.get("SLACK_HTTP_TIMEOUT_S", "")),
        host=env.get("HOST", "").strip() or DEFAULT_HOST,
        port=_parse_port(env.get("PORT", "")),
        log_level=_parse_log_level(env.get("LOG_LEVEL", "")),
    )


def _parse_timeout(raw: str) -> Optional[float]:
    raw = raw.strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(
            "SLACK_HTTP_TIMEOUT_S must be a number of seconds, got {!r}".format(raw)
        )
    if value <= 0:
        raise ConfigurationError("SLACK_HTTP_TIMEOUT_S must be positive")
    return value


def _parse_log_level(raw: str) -> str:
    level = (raw.strip() or DEFAULT_LOG_LEVEL).upper()
    if level not in VALID_LOG_LEVELS:
        raise ConfigurationError(
            "LOG_LEVEL must be one of {}, got {!r}".format(
                ", ".join(sorted(VALID_LOG_LEVELS)), raw
            )
        )
    return level


def _parse_port(raw: str) -> int:
    raw = raw.strip()
    if not raw:
        return DEFAULT_PORT
    try:
        port = int(raw)
    except ValueError:
        raise ConfigurationError("PORT must be an integer, got {!r}".format(raw))
    if not 0 < port < 65536:
        raise ConfigurationError("PORT out of range: {}".format(port))
    return port

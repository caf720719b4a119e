"""Package entry point for ``python -m slack_relay``.

WHY: Lets the service start without the console script being installed
(e.g. ``python -m slack_relay`` inside a container).

RULES:
- Configuration comes from the environment / .env, not from arguments
"""

from slack_relay.server.app import run_api

if __name__ == "__main__":
    run_api()

"""
Main module for the streaming relay server.
"""

from __future__ import annotations

import uvicorn

from stream_relay.config import Configuration
from stream_relay.logging_utils import configure_logging
from stream_relay.server import create_app


def main() -> None:
    """Main entry point - load configuration and serve the relay."""
    config = Configuration()
    configure_logging(config.get_logging_config().get("level", "INFO"))

    app = create_app(config)
    server_config = config.get_server_config()

    uvicorn.run(
        app,
        host=server_config["host"],
        port=server_config["port"],
        log_config=None,
    )


if __name__ == "__main__":
    main()

"""
Storefront - Main entry point.

Loads configuration, configures logging and serves the HTTP API with
uvicorn. The runtime container is started and stopped by the app lifespan.

Usage:
    python -m backend.storefront.main

Configuration is entirely via environment variables.
See config.py and api/settings.py for all available settings.

Invariants:
    - Configuration errors abort startup before anything connects
    - Logging is configured once, before the app is built
"""

from __future__ import annotations

import logging
import sys

import json_log_formatter
import uvicorn

from .api import ApiSettings, create_app
from .config import ServerConfig
from .server import Storefront

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    settings = ApiSettings()
    app = create_app(Storefront(config), settings)

    logger.info("Serving Storefront API", extra={"host": settings.host, "port": settings.port})
    # log_config=None keeps the handlers installed above
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()

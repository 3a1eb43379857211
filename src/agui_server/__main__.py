"""Entry point for running the AG-UI weather server."""

import logging

import uvicorn

from .config import get_settings

logger = logging.getLogger(__name__)


def main():
    """Run the AG-UI weather server."""
    settings = get_settings()

    logger.info("Starting AG-UI server on %s:%s", settings.app_host, settings.app_port)

    uvicorn.run(
        "agui_server.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()

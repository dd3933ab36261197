import sys
from typing import List, Optional

import uvicorn

from duf_backend.server import create_app
from duf_shared.config import Settings, load_settings
from duf_shared.logging_config import setup_logger

# Set up logger
logger = setup_logger(__name__)


def build_server(settings: Settings) -> uvicorn.Server:
    """Wrap the application for `settings` in a uvicorn server."""
    app = create_app(settings)
    config = uvicorn.Config(
        app,
        host=settings.address,
        port=settings.port,
        log_level="warning",  # access lines come from our own middleware
        loop="asyncio",
        timeout_keep_alive=30,
        timeout_graceful_shutdown=10,
    )
    return uvicorn.Server(config)


def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    try:
        settings = load_settings(argv)
    except ValueError as e:
        logger.critical(f"Invalid configuration: {e}")
        sys.exit(1)

    server = build_server(settings)
    print(f"Files served on http://{settings.address}:{settings.port}")
    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Main: Received keyboard interrupt, shutting down.")
    except Exception as e:
        logger.critical(f"Server critical error: {str(e)}", exc_info=True)
        sys.exit(1)
    finally:
        logger.info("Main: Server shutdown complete.")


if __name__ == "__main__":
    main()

"""
Container image puller service.

Pulls container images from a Docker Registry v2 / OCI registry without a
local container engine and exports them as docker-loadable tar archives.

Features:
    - Registry token exchange and multi-arch manifest resolution
    - Concurrent, cached blob downloads with per-blob timeouts
    - Download progress streamed as Server-Sent Events
    - Legacy multi-layer archive export (docker load compatible)
    - Docker Hub search and tag listing
    - Configurable via environment variables

Endpoints:
    - GET /api/docker/token
    - GET /api/docker/manifest
    - GET /api/docker/manifest-detail
    - GET /api/docker/pull-image
    - GET /api/docker/assemble-image
    - GET /api/docker/search
    - GET /api/docker/tags

Environment Variables:
    LOG_LEVEL, FLASK_HOST, FLASK_PORT, REGISTRY_URL, AUTH_URL, AUTH_SERVICE,
    HUB_URL, DOWNLOAD_DIR, TMP_DIR, CONCURRENT_DOWNLOADS, BLOB_TIMEOUT,
    REQUEST_TIMEOUT, CHUNK_SIZE, HTTPS_PROXY, HTTP_PROXY,
    MAX_IMAGE_NAME_LENGTH, MAX_TAG_LENGTH

Example:
    $ LOG_LEVEL=DEBUG python app.py
    $ curl "localhost:3000/api/docker/token?imageName=nginx"

See README.md for full documentation.
"""

import logging

from puller.config import config
from puller.routes import create_app

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

app = create_app(config)


def main():
    """Main entry point for the image puller application."""
    debug_mode = logger.getEffectiveLevel() == logging.DEBUG
    logger.info(f"Starting image puller service on {config.FLASK_HOST}:{config.FLASK_PORT}")
    logger.info(f"Configuration: {config}")
    logger.info(f"Log level: {logging.getLevelName(logger.getEffectiveLevel())}")
    if debug_mode:
        logger.info("Flask debug mode enabled")
    app.run(host=config.FLASK_HOST, port=config.FLASK_PORT, debug=debug_mode, threaded=True)


if __name__ == "__main__":
    main()

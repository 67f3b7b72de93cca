"""
Configuration module for the image puller service.

Loads all configuration from environment variables with sensible defaults.
"""

import os


class Config:
    """
    Service configuration from environment variables.

    Loads all configuration values from environment variables with sensible defaults.
    All settings can be overridden by setting the corresponding environment variable.
    """

    def __init__(self):
        """
        Initialize configuration from environment variables.

        Environment Variables:
            LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO
            FLASK_HOST: Server bind address. Default: 0.0.0.0
            FLASK_PORT: Server bind port. Default: 3000
            REGISTRY_URL: Registry base URL. Default: https://registry-1.docker.io
            AUTH_URL: Token endpoint. Default: https://auth.docker.io/token
            AUTH_SERVICE: Token service name. Default: registry.docker.io
            HUB_URL: Docker Hub API base URL. Default: https://hub.docker.com
            DOWNLOAD_DIR: Blob cache root. Default: ./downloads
            TMP_DIR: Root for archive working directories. Default: ./tmp
            CONCURRENT_DOWNLOADS: Download worker count. Default: 3
            BLOB_TIMEOUT: Per-blob deadline in seconds. Default: 600
            REQUEST_TIMEOUT: Timeout for non-streaming requests in seconds. Default: 30
            CHUNK_SIZE: Streaming chunk size in bytes. Default: 65536
            HTTPS_PROXY / HTTP_PROXY: Upstream proxy URL. Default: unset
            MAX_IMAGE_NAME_LENGTH: Maximum image name length. Default: 255
            MAX_TAG_LENGTH: Maximum tag length. Default: 128
        """
        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # Server
        self.FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
        self.FLASK_PORT = int(os.getenv("FLASK_PORT", "3000"))

        # Upstream endpoints
        self.REGISTRY_URL = os.getenv("REGISTRY_URL", "https://registry-1.docker.io").rstrip("/")
        self.AUTH_URL = os.getenv("AUTH_URL", "https://auth.docker.io/token")
        self.AUTH_SERVICE = os.getenv("AUTH_SERVICE", "registry.docker.io")
        self.HUB_URL = os.getenv("HUB_URL", "https://hub.docker.com").rstrip("/")
        self.PROXY_URL = os.getenv("HTTPS_PROXY") or os.getenv("HTTP_PROXY") or None

        # Local storage
        self.DOWNLOAD_DIR = os.getenv("DOWNLOAD_DIR", os.path.join(os.getcwd(), "downloads"))
        self.TMP_DIR = os.getenv("TMP_DIR", os.path.join(os.getcwd(), "tmp"))

        # Downloads
        self.CONCURRENT_DOWNLOADS = int(os.getenv("CONCURRENT_DOWNLOADS", "3"))
        self.BLOB_TIMEOUT = float(os.getenv("BLOB_TIMEOUT", "600"))  # seconds
        self.REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))  # seconds
        self.CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "65536"))

        # Validation limits
        self.MAX_IMAGE_NAME_LENGTH = int(os.getenv("MAX_IMAGE_NAME_LENGTH", "255"))
        self.MAX_TAG_LENGTH = int(os.getenv("MAX_TAG_LENGTH", "128"))

    def __repr__(self):
        """String representation for logging."""
        return (
            f"Config(LOG_LEVEL={self.LOG_LEVEL}, "
            f"FLASK_HOST={self.FLASK_HOST}, "
            f"FLASK_PORT={self.FLASK_PORT}, "
            f"REGISTRY_URL={self.REGISTRY_URL}, "
            f"DOWNLOAD_DIR={self.DOWNLOAD_DIR}, "
            f"CONCURRENT_DOWNLOADS={self.CONCURRENT_DOWNLOADS}, "
            f"BLOB_TIMEOUT={self.BLOB_TIMEOUT}, "
            f"PROXY={'set' if self.PROXY_URL else 'unset'})"
        )


# Global config instance
config = Config()

"""
Container image puller and exporter.

Pulls images from a Docker Registry v2 / OCI distribution registry without a
local container engine and re-packages them as legacy ``docker save``
archives that ``docker load`` accepts.

Features:
    - Anonymous bearer token exchange
    - Multi-architecture manifest index resolution (single manifests normalized)
    - Concurrent blob downloads with a fixed worker pool and per-blob deadlines
    - Size-validated blob cache, partial downloads resumed by re-download
    - Real-time progress over Server-Sent Events
    - Streaming tar export in the legacy multi-layer layout
    - Docker Hub search and tag listing
    - Configurable via environment variables

Pull Flow:
    1. GET /api/docker/token            -> bearer token
    2. GET /api/docker/manifest         -> manifest index, pick a platform
    3. GET /api/docker/manifest-detail  -> config + ordered layers
    4. GET /api/docker/pull-image       -> progress events, summary or error
    5. GET /api/docker/assemble-image   -> <image>-<tag>.tar

See README.md for full documentation.
"""

__version__ = "0.1.0"

# Import key components for convenience
from .config import Config
from .errors import (
    PullerError,
    AuthMissingError,
    UpstreamError,
    BlobTimeoutError,
    PartialFailureError,
    AssemblyError,
)
from .validation import normalize_image_name, digest_hex, digest_filename
from .client import RegistryClient
from .auth import get_token
from .manifest import resolve_index, resolve_detail
from .cache import probe
from .downloader import DownloadManager
from .progress import ProgressChannel, PullSession
from .assembler import ImageAssembler

__all__ = [
    "Config",
    "PullerError",
    "AuthMissingError",
    "UpstreamError",
    "BlobTimeoutError",
    "PartialFailureError",
    "AssemblyError",
    "normalize_image_name",
    "digest_hex",
    "digest_filename",
    "RegistryClient",
    "get_token",
    "resolve_index",
    "resolve_detail",
    "probe",
    "DownloadManager",
    "ProgressChannel",
    "PullSession",
    "ImageAssembler",
]

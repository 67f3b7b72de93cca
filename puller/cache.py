"""
Blob cache module for the image puller service.

Decides whether a previously downloaded blob can be reused. A cached blob is
valid only while its file size equals the size declared in the manifest; the
content is not hashed against the digest.
"""

import logging
import os
from typing import NamedTuple

from .validation import digest_filename

logger = logging.getLogger(__name__)

LAYER_SUFFIX = ".tar"
CONFIG_SUFFIX = ".json"


class CacheProbe(NamedTuple):
    hit: bool
    path: str


def image_cache_dir(root: str, image: str) -> str:
    """
    Per-image cache directory, created on demand.

    Args:
        root: Cache root (``DOWNLOAD_DIR``)
        image: Normalized image name, e.g. "library/nginx"
    """
    path = os.path.join(root, *image.split("/"))
    os.makedirs(path, exist_ok=True)
    return path


def blob_path(cache_dir: str, digest: str, suffix: str = LAYER_SUFFIX) -> str:
    """
    Deterministic local path of a blob.

    Example:
        >>> blob_path("/cache/library/nginx", "sha256:abc")
        '/cache/library/nginx/sha256_abc.tar'
    """
    return os.path.join(cache_dir, digest_filename(digest) + suffix)


def probe(cache_dir: str, descriptor, suffix: str = LAYER_SUFFIX) -> CacheProbe:
    """
    Check whether the blob described by *descriptor* is already cached.

    A hit requires the file to exist and its size to equal ``descriptor.size``.
    On a miss the returned path is the write target; any partial or stale file
    there gets overwritten.
    """
    path = blob_path(cache_dir, descriptor.digest, suffix)
    try:
        size = os.path.getsize(path)
    except OSError:
        return CacheProbe(False, path)

    if size == descriptor.size:
        logger.debug(f"Cache hit: {descriptor.digest} ({size} bytes)")
        return CacheProbe(True, path)

    logger.debug(f"Cache stale: {descriptor.digest} has {size} bytes, expected {descriptor.size}")
    return CacheProbe(False, path)

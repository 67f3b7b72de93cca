"""
Input validation and naming module for the image puller service.

Provides image name normalization, digest naming helpers, and request
parameter validation.
"""

import json
import logging
import re
from flask import abort

from .config import config

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "library"

DIGEST_PATTERN = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[a-zA-Z0-9=_-]+$")


def normalize_image_name(raw_name: str) -> str:
    """
    Map a bare image name to its fully qualified registry path.

    Single-segment names get the default ``library/`` namespace, names that
    already contain a slash are returned trimmed but otherwise untouched.

    Examples:
        >>> normalize_image_name("nginx")
        'library/nginx'
        >>> normalize_image_name(" bitnami/redis ")
        'bitnami/redis'
        >>> normalize_image_name("")
        ''
    """
    trimmed = (raw_name or "").strip()
    if not trimmed or "/" in trimmed:
        return trimmed
    return f"{DEFAULT_NAMESPACE}/{trimmed}"


def repo_tag_name(raw_name: str) -> str:
    """Name written into ``RepoTags`` and ``repositories`` of an exported archive."""
    return (raw_name or "").strip()


def safe_file_base_name(raw_name: str) -> str:
    """
    File-system safe variant of an image name.

    Example:
        >>> safe_file_base_name("bitnami/redis")
        'bitnami_redis'
    """
    return (raw_name or "").strip().replace("/", "_")


def digest_hex(digest: str) -> str:
    """
    Strip the algorithm prefix from a digest.

    Example:
        >>> digest_hex("sha256:abc")
        'abc'
    """
    return digest.split(":", 1)[-1]


def digest_filename(digest: str) -> str:
    """
    Collision-free file name stem for a digest (colon replaced by underscore).

    Example:
        >>> digest_filename("sha256:abc")
        'sha256_abc'
    """
    return digest.replace(":", "_", 1)


def validate_image_name(name: str) -> None:
    """
    Validate image name before it is embedded in a registry URL or a local path.

    Args:
        name: Image name to validate (e.g., "nginx" or "bitnami/redis")

    Raises:
        HTTPException: 400 Bad Request if name is invalid

    Validation Rules:
        - Must be 1-{MAX_IMAGE_NAME_LENGTH} characters (configurable)
        - Only alphanumeric characters, dots (.), hyphens (-), underscores (_), and slashes (/)
        - No ".." path segments
    """
    if not name or len(name) > config.MAX_IMAGE_NAME_LENGTH:
        logger.warning(f"Invalid image name length: {len(name or '')}")
        abort(400, f"Invalid image name: must be 1-{config.MAX_IMAGE_NAME_LENGTH} characters")

    if not re.match(r"^[a-zA-Z0-9._/-]+$", name):
        logger.warning(f"Invalid image name format: {name}")
        abort(400, "Invalid image name: only alphanumeric, dots, hyphens, underscores, and slashes allowed")

    if any(part in ("", ".", "..") for part in name.split("/")):
        logger.warning(f"Invalid image name path segment: {name}")
        abort(400, "Invalid image name: empty or relative path segments are not allowed")

    logger.debug(f"Image name validated: {name}")


def validate_tag(tag: str) -> None:
    """
    Validate container image tag.

    Raises:
        HTTPException: 400 Bad Request if tag is invalid

    Validation Rules:
        - Must be 1-{MAX_TAG_LENGTH} characters (configurable)
        - Only alphanumeric characters, dots (.), hyphens (-), and underscores (_)
    """
    if not tag or len(tag) > config.MAX_TAG_LENGTH:
        logger.warning(f"Invalid tag length: {len(tag or '')}")
        abort(400, f"Invalid tag: must be 1-{config.MAX_TAG_LENGTH} characters")

    if not re.match(r"^[a-zA-Z0-9._-]+$", tag):
        logger.warning(f"Invalid tag format: {tag}")
        abort(400, "Invalid tag: only alphanumeric, dots, hyphens, and underscores allowed")

    logger.debug(f"Tag validated: {tag}")


def is_digest(reference: str) -> bool:
    """True when *reference* has the ``<algorithm>:<encoded>`` digest form."""
    return bool(reference) and DIGEST_PATTERN.match(reference) is not None


def validate_reference(reference: str) -> None:
    """
    Validate a manifest reference, which is either a digest or a tag.

    Raises:
        HTTPException: 400 Bad Request if the reference is neither
    """
    if is_digest(reference):
        logger.debug(f"Digest validated: {reference}")
        return
    validate_tag(reference)


def parse_json_param(name: str, raw: str | None):
    """
    Decode a JSON-encoded query parameter.

    Raises:
        HTTPException: 400 Bad Request if the parameter is missing or not JSON
    """
    if not raw:
        abort(400, f"Missing parameter: {name}")
    try:
        return json.loads(raw)
    except ValueError as e:
        logger.warning(f"Invalid JSON in parameter {name}: {e}")
        abort(400, f"Invalid JSON in parameter: {name}")

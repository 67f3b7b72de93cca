"""
Manifest resolution module for the image puller service.

Fetches manifest indexes (normalizing single-platform answers into index
shape) and per-platform manifest details from the registry.
"""

import logging

from pydantic import ValidationError

from .config import config
from .client import bearer_headers, json_object
from .errors import ManifestShapeError, UpstreamError
from .models import ManifestDetail

logger = logging.getLogger(__name__)

MANIFEST_LIST_TYPE = "application/vnd.docker.distribution.manifest.list.v2+json"
MANIFEST_V2S2_TYPE = "application/vnd.docker.distribution.manifest.v2+json"
MANIFEST_OCI_INDEX_TYPE = "application/vnd.oci.image.index.v1+json"
MANIFEST_OCI_TYPE = "application/vnd.oci.image.manifest.v1+json"

INDEX_ACCEPT = f"{MANIFEST_LIST_TYPE},{MANIFEST_OCI_INDEX_TYPE}"

UNKNOWN_PLATFORM = {"architecture": "unknown", "os": "unknown"}


def _manifest_url(cfg, image: str, reference: str) -> str:
    return f"{cfg.REGISTRY_URL}/v2/{image}/manifests/{reference}"


def normalize_index(body: dict, reference: str, digest: str | None = None,
                    content_type: str | None = None, size: int = 0) -> dict:
    """
    Return *body* unchanged if it is already an index, otherwise wrap it.

    A single concrete manifest becomes a one-entry index whose platform is the
    ``unknown/unknown`` sentinel, so downstream code handles one shape only.

    Args:
        body: Decoded registry response
        reference: Tag or digest that was requested
        digest: ``Docker-Content-Digest`` header of the response, if any
        content_type: Content-Type header of the response, if any
        size: Length of the response body in bytes

    Example:
        >>> normalize_index({"schemaVersion": 2, "mediaType": "m", "config": {}, "layers": []}, "latest")
        {'manifests': [{'digest': 'latest', 'mediaType': 'm', 'platform': {'architecture': 'unknown', 'os': 'unknown'}, 'size': 0}], 'mediaType': 'm', 'schemaVersion': 2}
    """
    if isinstance(body.get("manifests"), list):
        return body

    media_type = body.get("mediaType") or content_type or ""
    return {
        "manifests": [
            {
                "digest": digest or reference,
                "mediaType": media_type,
                "platform": dict(UNKNOWN_PLATFORM),
                "size": size,
            }
        ],
        "mediaType": media_type,
        "schemaVersion": body.get("schemaVersion", 2),
    }


def resolve_index(client, image: str, tag: str, token: str, cfg=None) -> dict:
    """
    Fetch the manifest index for *image*:*tag*.

    Requests both the Docker manifest list and the OCI index media types.
    Registries may answer with a concrete manifest instead (when the tag is
    not multi-arch); that answer is normalized with ``normalize_index``.

    Returns:
        {"schemaVersion": int, "mediaType": str, "manifests": [...]}

    Raises:
        UpstreamError: registry answered non-2xx (status preserved), or with a
            body that is not a JSON object (502)
    """
    cfg = cfg or config
    logger.info(f"Resolving manifest index: image='{image}', tag='{tag}'")

    resp = client.get_checked(
        _manifest_url(cfg, image, tag),
        f"Manifest request for {image}:{tag}",
        headers=bearer_headers(token, INDEX_ACCEPT),
    )
    body = json_object(resp, f"Manifest request for {image}:{tag}")
    index = normalize_index(
        body,
        tag,
        digest=resp.headers.get("Docker-Content-Digest"),
        content_type=resp.headers.get("Content-Type"),
        size=len(resp.content or b""),
    )
    if index is not body:
        logger.info(f"Registry returned a single manifest for {image}:{tag}, synthesized one-entry index")
    logger.debug(f"Index for {image}:{tag} has {len(index['manifests'])} manifest(s)")
    return index


def resolve_detail(client, image: str, reference: str, token: str, media_type: str, cfg=None) -> dict:
    """
    Fetch the concrete manifest for one platform.

    Args:
        client: ``RegistryClient`` used for the request
        image: Canonical repository name
        reference: Manifest digest (or tag)
        token: Bearer token
        media_type: Exact media type to accept, taken from the index entry

    Returns:
        {"config": {...}, "layers": [...], "mediaType": str, "schemaVersion": int}

    Raises:
        UpstreamError: registry answered non-2xx, including 404 (status preserved),
            or with a body that is not JSON (502)
        ManifestShapeError: the response is not an object with config/layers, e.g. an index was
            returned because the wrong media type was requested
    """
    cfg = cfg or config
    logger.info(f"Resolving manifest detail: image='{image}', reference='{reference}', mediaType='{media_type}'")

    resp = client.get_checked(
        _manifest_url(cfg, image, reference),
        f"Manifest detail request for {image}@{reference}",
        headers=bearer_headers(token, media_type),
    )
    try:
        body = resp.json()
    except ValueError as e:
        logger.error(f"Manifest for {image}@{reference} is not JSON: {e}")
        raise UpstreamError(f"Manifest for {image}@{reference} is not valid JSON", 502) from e
    try:
        detail = ManifestDetail.model_validate(body)
    except ValidationError as e:
        found = body.get("mediaType", "unknown") if isinstance(body, dict) else f"JSON {type(body).__name__}"
        logger.error(f"Unusable manifest for {image}@{reference} (accept={media_type}): {e}")
        raise ManifestShapeError(
            f"Manifest for {image}@{reference} is not a single-platform manifest "
            f"(requested {media_type or 'no media type'}, got {found})"
        ) from e

    logger.debug(f"Manifest detail for {image}@{reference}: {len(detail.layers)} layer(s)")
    return body

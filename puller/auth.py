"""
Registry authentication module for the image puller service.

Exchanges a repository scope for an anonymous pull bearer token.
"""

import logging

from .config import config
from .client import json_object
from .errors import UpstreamError

logger = logging.getLogger(__name__)


def get_token(client, image: str, scope: str = "pull", cfg=None) -> dict:
    """
    Request a bearer token for *image* from the registry token endpoint.

    Args:
        client: ``RegistryClient`` used for the request
        image: Canonical repository name (e.g. "library/nginx"), already normalized
        scope: Requested action(s), e.g. "pull"
        cfg: Configuration override (defaults to the global config)

    Returns:
        {"token": str, "expires_in": int | None}

    Raises:
        UpstreamError: the token endpoint answered non-2xx (status preserved),
            returned a body that is not a JSON object, or returned no token (502)

    Example:
        GET https://auth.docker.io/token?service=registry.docker.io&scope=repository:library/nginx:pull
    """
    cfg = cfg or config
    logger.info(f"Requesting token: image='{image}', scope='{scope}'")

    resp = client.get_checked(
        cfg.AUTH_URL,
        f"Token request for {image}",
        params={
            "service": cfg.AUTH_SERVICE,
            "scope": f"repository:{image}:{scope}",
        },
    )
    body = json_object(resp, f"Token request for {image}")
    token = body.get("token") or body.get("access_token")
    if not token:
        logger.error(f"Token endpoint returned no token for {image}")
        raise UpstreamError(f"Token endpoint returned no token for {image}", 502)

    logger.debug(f"Token issued for {image}, expires_in={body.get('expires_in')}")
    return {"token": token, "expires_in": body.get("expires_in")}

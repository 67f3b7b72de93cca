"""
Docker Hub search and tag listing for the image puller service.

Thin pass-through adapters over the Hub web API used by the front end to
pick an image and a tag before pulling.
"""

import logging
import re

from .client import json_object
from .config import config
from .errors import UpstreamError
from .validation import normalize_image_name

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 25


def _clamp_paging(page, page_size) -> tuple[int, int]:
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(page_size)
    except (TypeError, ValueError):
        page_size = 10
    return max(1, page), min(MAX_PAGE_SIZE, max(1, page_size))


def _natural_key(name: str):
    return [(0, int(part), "") if part.isdigit() else (1, 0, part) for part in re.split(r"(\d+)", name) if part]


def sort_tags(tags: list[dict]) -> list[dict]:
    """
    Order tags with ``latest`` first, then by name in natural descending order.

    Example:
        >>> [t["name"] for t in sort_tags([{"name": "1.9"}, {"name": "latest"}, {"name": "1.10"}])]
        ['latest', '1.10', '1.9']
    """
    others = sorted((t for t in tags if t["name"] != "latest"), key=lambda t: _natural_key(t["name"]), reverse=True)
    return [t for t in tags if t["name"] == "latest"] + others


def search_repositories(client, query: str, page=1, page_size=10, cfg=None) -> dict:
    """
    Search Docker Hub repositories.

    Returns:
        {"count": int, "results": [{"name", "namespace", "fullName", "description",
                                    "is_official", "star_count", "pull_count"}]}

    Raises:
        UpstreamError: Hub answered non-2xx (status preserved)
    """
    cfg = cfg or config
    query = (query or "").strip()
    if not query:
        return {"count": 0, "results": []}

    page, page_size = _clamp_paging(page, page_size)
    logger.info(f"Searching Docker Hub: query='{query}', page={page}, page_size={page_size}")

    resp = client.get_checked(
        f"{cfg.HUB_URL}/v2/search/repositories/",
        f"Hub search for '{query}'",
        params={"query": query, "page": page, "page_size": page_size},
    )
    body = json_object(resp, f"Hub search for '{query}'")
    results = [
        {
            "name": item.get("name", ""),
            "namespace": item.get("namespace", ""),
            "fullName": item.get("repo_name") or f"{item.get('namespace', '')}/{item.get('name', '')}",
            "description": item.get("description") or "",
            "is_official": bool(item.get("is_official")),
            "star_count": item.get("star_count") or 0,
            "pull_count": item.get("pull_count") or 0,
        }
        for item in body.get("results", [])
    ]
    count = body.get("count")
    return {"count": count if count is not None else len(results), "results": results}


def list_tags(client, raw_image: str, query: str = "", page=1, page_size=10, cfg=None) -> dict:
    """
    List the tags of a Docker Hub repository.

    A 404 from the Hub (unknown repository) is an empty result, not an error.

    Returns:
        {"count": int, "results": [{"name", "last_updated"}]}

    Raises:
        UpstreamError: Hub answered non-2xx other than 404 (status preserved)
    """
    cfg = cfg or config
    image = normalize_image_name(raw_image)
    namespace, _, repo = image.partition("/")
    if not namespace or not repo:
        return {"count": 0, "results": []}

    page, page_size = _clamp_paging(page, page_size)
    params = {"page": page, "page_size": page_size}
    query = (query or "").strip()
    if query:
        params["name"] = query
    logger.info(f"Listing tags: image='{image}', query='{query}', page={page}")

    try:
        resp = client.get_checked(
            f"{cfg.HUB_URL}/v2/repositories/{namespace}/{repo}/tags",
            f"Tag listing for {image}",
            params=params,
        )
    except UpstreamError as e:
        if e.status_code == 404:
            logger.info(f"No tags found for {image}")
            return {"count": 0, "results": []}
        raise

    body = json_object(resp, f"Tag listing for {image}")
    results = sort_tags([
        {"name": item["name"], "last_updated": item.get("last_updated")}
        for item in body.get("results", [])
    ])
    count = body.get("count")
    return {"count": count if count is not None else len(results), "results": results}

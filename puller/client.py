"""
Outbound HTTP client for the image puller service.

A thin wrapper around ``requests.Session`` that adds upstream proxy support,
a default timeout and status checking. One instance is constructed
explicitly and passed to every component that talks to the network, so
tests can hand in a stub transport instead.
"""

import logging

import requests

from . import __version__
from .errors import UpstreamError

logger = logging.getLogger(__name__)

USER_AGENT = f"image-puller/{__version__}"


def bearer_headers(token: str | None, accept: str | None = None) -> dict:
    """
    Build request headers for an authenticated registry call.

    Example:
        >>> bearer_headers("abc", "application/json")
        {'Authorization': 'Bearer abc', 'Accept': 'application/json'}
    """
    headers = {}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    if accept:
        headers["Accept"] = accept
    return headers


def check_response(resp, what: str):
    """
    Raise ``UpstreamError`` carrying the upstream status for a non-2xx response.

    Args:
        resp: Response returned by ``RegistryClient.get``
        what: Human-readable description of the request for the error message

    Returns:
        The response itself, for chaining
    """
    if 200 <= resp.status_code < 300:
        return resp
    logger.warning(f"{what} failed with status {resp.status_code}")
    raise UpstreamError(f"{what} failed: upstream returned {resp.status_code}", resp.status_code)


def json_object(resp, what: str) -> dict:
    """
    Decode a response body that must be a JSON object.

    Raises:
        UpstreamError: body is not JSON, or is JSON but not an object (502)
    """
    try:
        body = resp.json()
    except ValueError as e:
        logger.error(f"{what} returned a body that is not JSON: {e}")
        raise UpstreamError(f"{what} failed: upstream returned invalid JSON", 502) from e
    if not isinstance(body, dict):
        logger.error(f"{what} returned a JSON {type(body).__name__} instead of an object")
        raise UpstreamError(f"{what} failed: expected a JSON object, got {type(body).__name__}", 502)
    return body


class RegistryClient:
    """
    HTTP client shared by the auth client, manifest resolver, download manager,
    assembler and Hub proxy.

    Usage:
        client = RegistryClient(proxy_url="http://127.0.0.1:7890")
        resp = client.get(url, headers=bearer_headers(token), stream=True)
        ...
        client.close()
    """

    def __init__(self, proxy_url: str | None = None, timeout: float = 30.0, session=None):
        """
        Args:
            proxy_url: Optional HTTP(S) proxy all upstream traffic is routed through
            timeout: Default connect/read timeout in seconds
            session: Pre-built ``requests.Session`` (a new one is created if omitted)
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})
        if proxy_url:
            self.session.proxies.update({"http": proxy_url, "https": proxy_url})
            logger.info(f"Routing upstream requests through proxy {proxy_url}")

    def get(self, url: str, headers: dict | None = None, params: dict | None = None,
            stream: bool = False, timeout: float | None = None) -> requests.Response:
        """
        Issue a GET request.

        Transport errors (``requests.RequestException``) propagate unchanged so
        streaming callers can tell timeouts apart from other failures.
        """
        logger.debug(f"GET {url} params={params} stream={stream}")
        return self.session.get(
            url,
            headers=headers,
            params=params,
            stream=stream,
            timeout=timeout if timeout is not None else self.timeout,
        )

    def get_checked(self, url: str, what: str, headers: dict | None = None,
                    params: dict | None = None) -> requests.Response:
        """
        Issue a non-streaming GET request and enforce a 2xx status.

        Raises:
            UpstreamError: non-2xx status (status preserved) or transport failure (502)
        """
        try:
            resp = self.get(url, headers=headers, params=params)
        except requests.RequestException as e:
            logger.error(f"{what} failed: {e}")
            raise UpstreamError(f"{what} failed: {e}", 502) from e
        return check_response(resp, what)

    def close(self):
        self.session.close()

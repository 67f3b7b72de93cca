"""Stub transport and blob helpers shared by the test modules."""

from __future__ import annotations

import json
import threading
import time
from pathlib import Path

import requests

from puller.client import RegistryClient

REGISTRY = "https://registry.test"
AUTH = "https://auth.test/token"
HUB = "https://hub.test"


def make_digest(char: str) -> str:
    return "sha256:" + char * 64


DIGEST_A = make_digest("a")
DIGEST_B = make_digest("b")
DIGEST_C = make_digest("c")
CONFIG_DIGEST = make_digest("f")

CONFIG_BYTES = b'{"architecture":"amd64","os":"linux","rootfs":{"type":"layers"}}'

LAYER_MEDIA_TYPE = "application/vnd.docker.image.rootfs.diff.tar.gzip"
CONFIG_MEDIA_TYPE = "application/vnd.docker.container.image.v1+json"


class FakeResponse:
    """Minimal stand-in for ``requests.Response`` used by streaming tests."""

    def __init__(self, status_code=200, chunks=(), headers=None, delay=0.0):
        self.status_code = status_code
        self.chunks = list(chunks)
        self.headers = headers or {}
        self.delay = delay
        self.closed = False
        self.on_close = None

    @property
    def content(self) -> bytes:
        return b"".join(self.chunks)

    def json(self):
        return json.loads(self.content)

    def iter_content(self, chunk_size=1):
        for chunk in self.chunks:
            if self.delay:
                time.sleep(self.delay)
            if self.closed:
                raise requests.ConnectionError("connection closed")
            yield chunk

    def close(self):
        if not self.closed and self.on_close:
            self.on_close()
        self.closed = True


def chunked(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


class StubClient(RegistryClient):
    """
    Registry client answering requests from a table keyed by the last URL
    segment (the blob digest) instead of the network.

    Tracks how many responses are open at once, so tests can check the
    download pool width.
    """

    def __init__(self, responses: dict | None = None):
        super().__init__()
        self.responses = responses or {}
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def get(self, url, headers=None, params=None, stream=False, timeout=None):
        with self._lock:
            self.calls.append({"url": url, "headers": headers, "stream": stream, "timeout": timeout})
        factory = self.responses.get(url.rsplit("/", 1)[-1])
        if factory is None:
            return FakeResponse(status_code=404)
        resp = factory() if callable(factory) else factory
        if isinstance(resp, Exception):
            raise resp

        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

        def release():
            with self._lock:
                self.in_flight -= 1

        resp.on_close = release
        return resp

    def blob_urls(self) -> list[str]:
        return [c["url"] for c in self.calls if "/blobs/" in c["url"]]


def blob_cache(download_dir: str, image: str = "library/nginx") -> Path:
    path = Path(download_dir, *image.split("/"))
    path.mkdir(parents=True, exist_ok=True)
    return path


def seed_blob(download_dir: str, digest: str, data: bytes, image: str = "library/nginx",
              suffix: str = ".tar") -> Path:
    path = blob_cache(download_dir, image) / (digest.replace(":", "_") + suffix)
    path.write_bytes(data)
    return path

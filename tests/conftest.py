"""Shared test fixtures for the image puller."""

from __future__ import annotations

from pathlib import Path

import pytest

from puller.client import RegistryClient
from puller.config import Config
from puller.models import Descriptor, Layer

from tests.helpers import (
    AUTH,
    CONFIG_BYTES,
    CONFIG_DIGEST,
    CONFIG_MEDIA_TYPE,
    DIGEST_A,
    DIGEST_B,
    HUB,
    LAYER_MEDIA_TYPE,
    REGISTRY,
)


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def cfg(tmp_path: Path) -> Config:
    config = Config()
    config.REGISTRY_URL = REGISTRY
    config.AUTH_URL = AUTH
    config.AUTH_SERVICE = "registry.test"
    config.HUB_URL = HUB
    config.PROXY_URL = None
    config.DOWNLOAD_DIR = str(tmp_path / "downloads")
    config.TMP_DIR = str(tmp_path / "tmp")
    config.CONCURRENT_DOWNLOADS = 3
    config.BLOB_TIMEOUT = 5
    config.CHUNK_SIZE = 16
    return config


@pytest.fixture()
def client():
    c = RegistryClient()
    yield c
    c.close()


# ---------------------------------------------------------------------------
# Descriptor fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def layer_a() -> Layer:
    return Layer(digest=DIGEST_A, size=100, media_type=LAYER_MEDIA_TYPE)


@pytest.fixture()
def layer_b() -> Layer:
    return Layer(digest=DIGEST_B, size=200, media_type=LAYER_MEDIA_TYPE)


@pytest.fixture()
def config_descriptor() -> Descriptor:
    return Descriptor(digest=CONFIG_DIGEST, size=len(CONFIG_BYTES), media_type=CONFIG_MEDIA_TYPE)

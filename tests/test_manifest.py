import json

import pytest
import requests
import requests_mock

from puller import manifest
from puller.errors import ManifestShapeError, UpstreamError

from tests.helpers import CONFIG_DIGEST, DIGEST_A, DIGEST_B, REGISTRY, make_digest

INDEX = {
    "schemaVersion": 2,
    "mediaType": manifest.MANIFEST_LIST_TYPE,
    "manifests": [
        {
            "digest": make_digest("1"),
            "mediaType": manifest.MANIFEST_V2S2_TYPE,
            "platform": {"architecture": "amd64", "os": "linux"},
            "size": 1570,
        },
        {
            "digest": make_digest("2"),
            "mediaType": manifest.MANIFEST_V2S2_TYPE,
            "platform": {"architecture": "arm", "os": "linux", "variant": "v7"},
            "size": 1570,
        },
    ],
}

DETAIL = {
    "schemaVersion": 2,
    "mediaType": manifest.MANIFEST_V2S2_TYPE,
    "config": {
        "mediaType": "application/vnd.docker.container.image.v1+json",
        "digest": CONFIG_DIGEST,
        "size": 7023,
    },
    "layers": [
        {"mediaType": "application/vnd.docker.image.rootfs.diff.tar.gzip", "digest": DIGEST_A, "size": 100},
        {"mediaType": "application/vnd.docker.image.rootfs.diff.tar.gzip", "digest": DIGEST_B, "size": 200},
    ],
}

MANIFEST_URL = f"{REGISTRY}/v2/library/nginx/manifests/"


def test_resolve_index_returns_list_unchanged(client, cfg):
    with requests_mock.Mocker() as m:
        m.get(MANIFEST_URL + "latest", json=INDEX)
        index = manifest.resolve_index(client, "library/nginx", "latest", "tok", cfg=cfg)

        assert index == INDEX
        headers = m.request_history[0].headers
        assert headers["Authorization"] == "Bearer tok"
        assert headers["Accept"] == manifest.INDEX_ACCEPT
        assert manifest.MANIFEST_LIST_TYPE in headers["Accept"]
        assert manifest.MANIFEST_OCI_INDEX_TYPE in headers["Accept"]


def test_resolve_index_normalizes_single_manifest(client, cfg):
    body = json.dumps(DETAIL).encode()
    with requests_mock.Mocker() as m:
        m.get(
            MANIFEST_URL + "1.25",
            content=body,
            headers={"Docker-Content-Digest": make_digest("9"), "Content-Type": manifest.MANIFEST_V2S2_TYPE},
        )
        index = manifest.resolve_index(client, "library/nginx", "1.25", "tok", cfg=cfg)

    assert index["mediaType"] == DETAIL["mediaType"]
    assert index["schemaVersion"] == DETAIL["schemaVersion"]
    assert index["manifests"] == [
        {
            "digest": make_digest("9"),
            "mediaType": manifest.MANIFEST_V2S2_TYPE,
            "platform": {"architecture": "unknown", "os": "unknown"},
            "size": len(body),
        }
    ]


def test_normalize_index_defaults():
    index = manifest.normalize_index({"mediaType": manifest.MANIFEST_OCI_TYPE, "layers": []}, "v1")

    assert index["schemaVersion"] == 2
    assert index["manifests"][0]["digest"] == "v1"
    assert index["manifests"][0]["mediaType"] == manifest.MANIFEST_OCI_TYPE
    assert index["manifests"][0]["platform"] == {"architecture": "unknown", "os": "unknown"}


def test_normalize_index_is_identity_for_index():
    assert manifest.normalize_index(INDEX, "latest") is INDEX


def test_resolve_index_error_status(client, cfg):
    with requests_mock.Mocker() as m:
        m.get(MANIFEST_URL + "nope", status_code=404, json={"errors": []})
        with pytest.raises(UpstreamError) as exc:
            manifest.resolve_index(client, "library/nginx", "nope", "tok", cfg=cfg)

    assert exc.value.status_code == 404


def test_resolve_detail(client, cfg):
    digest = make_digest("1")
    with requests_mock.Mocker() as m:
        m.get(MANIFEST_URL + digest, json=DETAIL)
        detail = manifest.resolve_detail(
            client, "library/nginx", digest, "tok", manifest.MANIFEST_V2S2_TYPE, cfg=cfg
        )

        assert detail == DETAIL
        assert m.request_history[0].headers["Accept"] == manifest.MANIFEST_V2S2_TYPE


def test_resolve_detail_404_is_hard_error(client, cfg):
    digest = make_digest("1")
    with requests_mock.Mocker() as m:
        m.get(MANIFEST_URL + digest, status_code=404)
        with pytest.raises(UpstreamError) as exc:
            manifest.resolve_detail(client, "library/nginx", digest, "tok", manifest.MANIFEST_V2S2_TYPE, cfg=cfg)

    assert exc.value.status_code == 404


def test_resolve_detail_wrong_shape(client, cfg):
    digest = make_digest("1")
    with requests_mock.Mocker() as m:
        m.get(MANIFEST_URL + digest, json=INDEX)
        with pytest.raises(ManifestShapeError, match="not a single-platform manifest"):
            manifest.resolve_detail(client, "library/nginx", digest, "tok", manifest.MANIFEST_LIST_TYPE, cfg=cfg)


def test_resolve_detail_transport_error(client, cfg):
    digest = make_digest("1")
    with requests_mock.Mocker() as m:
        m.get(MANIFEST_URL + digest, exc=requests.ConnectionError("boom"))
        with pytest.raises(UpstreamError) as exc:
            manifest.resolve_detail(client, "library/nginx", digest, "tok", manifest.MANIFEST_V2S2_TYPE, cfg=cfg)

    assert exc.value.status_code == 502


def test_resolve_detail_non_object_body(client, cfg):
    digest = make_digest("1")
    with requests_mock.Mocker() as m:
        m.get(MANIFEST_URL + digest, json=[1, 2])
        with pytest.raises(ManifestShapeError, match="got JSON list") as exc:
            manifest.resolve_detail(client, "library/nginx", digest, "tok", manifest.MANIFEST_V2S2_TYPE, cfg=cfg)

    assert exc.value.status_code == 502


def test_resolve_detail_invalid_json(client, cfg):
    digest = make_digest("1")
    with requests_mock.Mocker() as m:
        m.get(MANIFEST_URL + digest, text="<html>maintenance</html>")
        with pytest.raises(UpstreamError, match="not valid JSON") as exc:
            manifest.resolve_detail(client, "library/nginx", digest, "tok", manifest.MANIFEST_V2S2_TYPE, cfg=cfg)

    assert exc.value.status_code == 502


@pytest.mark.parametrize("kwargs", [{"json": ["a"]}, {"text": "not json"}])
def test_resolve_index_rejects_non_object_body(client, cfg, kwargs):
    with requests_mock.Mocker() as m:
        m.get(MANIFEST_URL + "latest", **kwargs)
        with pytest.raises(UpstreamError) as exc:
            manifest.resolve_index(client, "library/nginx", "latest", "tok", cfg=cfg)

    assert exc.value.status_code == 502

import pytest
import requests_mock

from puller import auth
from puller.errors import UpstreamError

from tests.helpers import AUTH


def test_get_token(client, cfg):
    with requests_mock.Mocker() as m:
        m.get(AUTH, json={"token": "abc", "expires_in": 300, "issued_at": "2024-01-01T00:00:00Z"})
        result = auth.get_token(client, "library/nginx", cfg=cfg)

        assert result == {"token": "abc", "expires_in": 300}
        assert m.call_count == 1
        qs = m.request_history[0].qs
        assert qs["service"] == ["registry.test"]
        assert qs["scope"] == ["repository:library/nginx:pull"]


def test_get_token_custom_scope(client, cfg):
    with requests_mock.Mocker() as m:
        m.get(AUTH, json={"token": "abc"})
        auth.get_token(client, "bitnami/redis", scope="pull,push", cfg=cfg)

        assert m.request_history[0].qs["scope"] == ["repository:bitnami/redis:pull,push"]


def test_get_token_access_token_field(client, cfg):
    with requests_mock.Mocker() as m:
        m.get(AUTH, json={"access_token": "xyz"})
        assert auth.get_token(client, "library/nginx", cfg=cfg)["token"] == "xyz"


def test_get_token_upstream_status_preserved(client, cfg):
    with requests_mock.Mocker() as m:
        m.get(AUTH, status_code=401, json={"details": "denied"})
        with pytest.raises(UpstreamError) as exc:
            auth.get_token(client, "library/nginx", cfg=cfg)

        assert exc.value.status_code == 401
        assert m.call_count == 1


def test_get_token_missing_token(client, cfg):
    with requests_mock.Mocker() as m:
        m.get(AUTH, json={})
        with pytest.raises(UpstreamError, match="no token") as exc:
            auth.get_token(client, "library/nginx", cfg=cfg)

        assert exc.value.status_code == 502


@pytest.mark.parametrize("kwargs", [{"json": ["t0k"]}, {"text": "<html></html>"}])
def test_get_token_rejects_non_object_body(client, cfg, kwargs):
    with requests_mock.Mocker() as m:
        m.get(AUTH, **kwargs)
        with pytest.raises(UpstreamError) as exc:
            auth.get_token(client, "library/nginx", cfg=cfg)

    assert exc.value.status_code == 502
